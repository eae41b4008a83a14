import argparse
import logging
import sys

from datatrees import datatree, dtfield

from textmesh.font_loader import FontLoader
from textmesh.mesh_cache import MeshCache
from textmesh.mesh_data_generator import generate_text_mesh
from textmesh.mesh_system import mesh_data_to_stl
from textmesh.text_mesh import (
    DEFAULT_FONT_SIZE,
    FontStyle,
    Quality,
    SizeUnit,
    TextMesh,
    TextMeshException,
    TextMeshSize,
    TextMeshStyle,
)

log = logging.getLogger(__name__)

QUALITY_NAMES = {"low": Quality.LOW, "medium": Quality.MEDIUM, "high": Quality.HIGH}


def parse_quality(quality_str: str) -> Quality:
    """Parses "low", "medium", "high" or a positive integer."""
    named = QUALITY_NAMES.get(quality_str.strip().lower())
    if named is not None:
        return named
    try:
        return Quality.custom(int(quality_str))
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"Invalid quality '{quality_str}': {e}") from e


def add_bool_arg(parser, name, help_text, default=False):
    parser.add_argument(f"--{name}", action="store_true", help=help_text)
    parser.add_argument(
        f"--no-{name}", action="store_false", dest=name.replace("-", "_"), help=f"Disable: {help_text}"
    )
    parser.set_defaults(**{name.replace("-", "_"): default})


@datatree
class TextMeshMainRunner:
    """Parses arguments, generates a text mesh and optionally exports it as STL."""

    argv: list[str] | None = None
    _args: argparse.Namespace | None = dtfield(default=None, init=False)
    parser: argparse.ArgumentParser = dtfield(self_default=lambda s: s._make_parser(), init=False)
    cache: MeshCache = dtfield(default_factory=MeshCache, init=False)

    @property
    def args(self) -> argparse.Namespace:
        if self._args is None:
            self._args = self.parser.parse_args(self.argv)
        return self._args

    def _make_parser(self) -> argparse.ArgumentParser:
        parser = argparse.ArgumentParser(description="Generate a 3D mesh of a text string.")
        parser.add_argument("text", type=str, help="The text to render.")
        parser.add_argument("--font", type=str, required=True, help="Path to a .ttf or .otf font.")

        # --- Sizes, in the same units as the TextMesh records ---
        parser.add_argument(
            "--font-size", type=float, default=DEFAULT_FONT_SIZE, help="Font size magnitude."
        )
        parser.add_argument(
            "--depth", type=float, default=DEFAULT_FONT_SIZE * 2, help="Extrusion depth magnitude."
        )
        parser.add_argument(
            "--width", type=float, default=DEFAULT_FONT_SIZE * 16, help="Layout box width."
        )
        parser.add_argument(
            "--height", type=float, default=DEFAULT_FONT_SIZE * 8, help="Layout box height."
        )
        add_bool_arg(parser, "wrapping", "Wrap text at the box width.", default=True)

        # --- Style ---
        parser.add_argument("--uppercase", action="store_true", help="Render the text upper case.")
        parser.add_argument("--lowercase", action="store_true", help="Render the text lower case.")
        parser.add_argument(
            "--quality",
            type=parse_quality,
            default=Quality.MEDIUM,
            help="Curve quality: low, medium, high or a positive integer.",
        )

        # --- Output ---
        parser.add_argument("--stl", type=str, default=None, help="Write a binary STL to this path.")
        parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging.")
        return parser

    def text_mesh(self) -> TextMesh:
        font_style = FontStyle.NONE
        if self.args.uppercase:
            font_style |= FontStyle.UPPERCASE
        if self.args.lowercase:
            font_style |= FontStyle.LOWERCASE
        return TextMesh(
            text=self.args.text,
            style=TextMeshStyle(
                font_size=SizeUnit(self.args.font_size),
                font_style=font_style,
                mesh_quality=self.args.quality,
            ),
            size=TextMeshSize(
                width=SizeUnit(self.args.width),
                height=SizeUnit(self.args.height),
                depth=SizeUnit(self.args.depth),
                wrapping=self.args.wrapping,
            ),
        )

    def run(self) -> int:
        logging.basicConfig(
            level=logging.DEBUG if self.args.verbose else logging.WARNING,
            format="%(levelname)s %(name)s: %(message)s",
        )
        log.debug(f"Arguments: {self.args}")
        try:
            font = FontLoader().load_path(self.args.font)
            mesh_data = generate_text_mesh(self.text_mesh(), font, self.cache)
        except TextMeshException as e:
            print(f"Error: {e}", file=sys.stderr)
            return 1

        print(
            f"vertices={mesh_data.vertex_count} triangles={mesh_data.triangle_count} "
            f"cached glyphs={len(self.cache)}"
        )

        if self.args.stl:
            if mesh_data.is_empty:
                print("Warning: No geometry to export to STL.", file=sys.stderr)
            else:
                mesh_data_to_stl(mesh_data, filename=self.args.stl)
                print(f"Exported STL: {self.args.stl}")
        return 0


def main(argv: list[str] | None = None) -> int:
    """Console entry point."""
    return TextMeshMainRunner(argv).run()


if __name__ == "__main__":
    sys.exit(main())
