"""
Font resources for text meshes.

TextMeshFont wraps a fontTools TTFont and is the glyph source used by the mesh
generator. It provides:

1. Outlines: glyph contours in em units (font units / unitsPerEm). Quadratic
   (TrueType) and cubic (CFF) curves are flattened into straight segments, the
   number of segments per curve comes from the requested Quality. Composite glyphs
   are decomposed by the fontTools BasePen machinery.
2. Glyph meshes: the outline extruded into a solid by the tessellator.

FontAssets is a small registry of loaded fonts keyed by FontHandle. It records
CREATED/REMOVED events so a host can tell when text waiting on a font can be
generated.
"""

import enum
import io
import logging
import os

import numpy as np
from datatrees import datatree, dtfield
from fontTools.pens.basePen import BasePen
from fontTools.ttLib import TTFont

from textmesh.tessellator import GlyphMesh, GlyphNotFound, GlyphTessellator
from textmesh.text_mesh import FontHandle, Quality, TextMeshException
from textmesh.text_utils import CubicSpline, QuadraticSpline

log = logging.getLogger(__name__)

DEFAULT_FALLBACK_CHAR = "?"


class FontLoadError(TextMeshException):
    """Font data could not be parsed."""


class ContourPen(BasePen):
    """Collects flattened glyph contours, scaled by scale."""

    def __init__(self, glyph_set, segments: int, scale: float):
        super().__init__(glyph_set)
        self.segments = segments
        self.scale = scale
        self.contours: list[np.ndarray] = []
        self._current: list[tuple[float, float]] = []

    def _flush(self):
        if len(self._current) >= 3:
            self.contours.append(np.array(self._current, dtype=float) * self.scale)
        self._current = []

    def _moveTo(self, pt):
        self._flush()
        self._current = [tuple(pt)]

    def _lineTo(self, pt):
        self._current.append(tuple(pt))

    def _qCurveToOne(self, pt1, pt2):
        p0 = self._getCurrentPoint()
        spline = QuadraticSpline(np.array([p0, pt1, pt2], dtype=float))
        self._current.extend(tuple(p) for p in spline.flatten(self.segments))

    def _curveToOne(self, pt1, pt2, pt3):
        p0 = self._getCurrentPoint()
        spline = CubicSpline(np.array([p0, pt1, pt2, pt3], dtype=float))
        self._current.extend(tuple(p) for p in spline.flatten(self.segments))

    def _closePath(self):
        self._flush()

    def _endPath(self):
        # Open contours are closed implicitly, a glyph has no use for open paths.
        self._flush()


@datatree
class TextMeshFont:
    """A loaded font usable as the glyph source of generate_text_mesh."""

    ttf_font: TTFont
    fallback_char: str = DEFAULT_FALLBACK_CHAR
    name: str | None = None
    units_per_em: int = dtfield(init=False, default=1000)
    _cmap: dict = dtfield(init=False, repr=False, default=None)
    _glyph_set: object = dtfield(init=False, repr=False, default=None)
    tessellator: GlyphTessellator = dtfield(
        self_default=lambda s: GlyphTessellator(s), init=False, repr=False, compare=False
    )

    def __post_init__(self):
        try:
            units_per_em = self.ttf_font["head"].unitsPerEm
        except KeyError:
            units_per_em = 0
        if units_per_em <= 0:
            log.warning("Font has no usable unitsPerEm, assuming 1000")
            units_per_em = 1000
        self.units_per_em = units_per_em
        self._cmap = self.ttf_font.getBestCmap() or {}
        self._glyph_set = self.ttf_font.getGlyphSet()
        if self.name is None:
            self.name = self.family_name

    @property
    def family_name(self) -> str | None:
        if "name" not in self.ttf_font:
            return None
        return self.ttf_font["name"].getDebugName(1)

    def has_glyph(self, char: str) -> bool:
        return len(char) == 1 and ord(char) in self._cmap

    def outline(self, char: str, quality: Quality) -> list[np.ndarray]:
        """Returns the glyph contours for char in em units.

        Raises:
            GlyphNotFound: The font does not map the character or its glyph can't be drawn.
        """
        if not self.has_glyph(char):
            raise GlyphNotFound(char)
        glyph_name = self._cmap[ord(char)]
        if glyph_name not in self._glyph_set:
            raise GlyphNotFound(char, f"Glyph '{glyph_name}' for {char!r} missing from glyph set")

        pen = ContourPen(self._glyph_set, quality.curve_segments, 1.0 / self.units_per_em)
        try:
            self._glyph_set[glyph_name].draw(pen)
        except Exception as e:
            log.error(f"Error drawing glyph '{glyph_name}': {e}", exc_info=True)
            raise GlyphNotFound(char, f"Glyph '{glyph_name}' could not be drawn: {e}") from e
        return pen.contours

    def glyph_mesh(self, char: str, quality: Quality, depth: float) -> GlyphMesh:
        """Tessellates char into a solid of the given depth (em units)."""
        return self.tessellator(char, quality, depth)


@datatree
class FontLoader:
    """Creates TextMeshFont objects from font file data."""

    fallback_char: str = DEFAULT_FALLBACK_CHAR

    EXTENSIONS = ("ttf", "otf")

    def load_bytes(self, data: bytes, name: str | None = None) -> TextMeshFont:
        try:
            ttf_font = TTFont(io.BytesIO(data))
            if "cmap" not in ttf_font or "head" not in ttf_font:
                raise FontLoadError("Font is missing the 'cmap' or 'head' table")
            return TextMeshFont(ttf_font, fallback_char=self.fallback_char, name=name)
        except FontLoadError:
            raise
        except Exception as e:
            log.error(f"Failed to load font {name or '<bytes>'}: {e}")
            raise FontLoadError(f"Could not load font {name or '<bytes>'}: {e}") from e

    def load_path(self, path: str | os.PathLike) -> TextMeshFont:
        path = os.fspath(path)
        extension = os.path.splitext(path)[1].lower().lstrip(".")
        if extension not in self.EXTENSIONS:
            log.warning(f"Unexpected font file extension '{extension}' for {path}")
        try:
            with open(path, "rb") as f:
                data = f.read()
        except OSError as e:
            raise FontLoadError(f"Could not read font file {path}: {e}") from e
        return self.load_bytes(data, name=os.path.basename(path))


class AssetEventKind(enum.Enum):
    CREATED = "created"
    REMOVED = "removed"


@datatree(frozen=True)
class AssetEvent:
    kind: AssetEventKind
    handle: FontHandle


def _as_handle(handle: FontHandle | str) -> FontHandle:
    return handle if isinstance(handle, FontHandle) else FontHandle(str(handle))


@datatree
class FontAssets:
    """Registry of loaded fonts. A handle with no font registered is "not loaded"."""

    loader: FontLoader = dtfield(default_factory=FontLoader)
    _fonts: dict = dtfield(default_factory=dict, init=False, repr=False)
    _events: list = dtfield(default_factory=list, init=False, repr=False)

    def add(self, handle: FontHandle | str, font: TextMeshFont) -> FontHandle:
        handle = _as_handle(handle)
        self._fonts[handle] = font
        self._events.append(AssetEvent(AssetEventKind.CREATED, handle))
        log.debug(f"Font {handle.id} loaded")
        return handle

    def load_path(self, handle: FontHandle | str, path: str | os.PathLike) -> FontHandle:
        return self.add(handle, self.loader.load_path(path))

    def remove(self, handle: FontHandle | str) -> TextMeshFont | None:
        handle = _as_handle(handle)
        font = self._fonts.pop(handle, None)
        if font is not None:
            self._events.append(AssetEvent(AssetEventKind.REMOVED, handle))
            log.debug(f"Font {handle.id} removed")
        return font

    def get(self, handle: FontHandle | str | None) -> TextMeshFont | None:
        if handle is None:
            return None
        return self._fonts.get(_as_handle(handle))

    def is_loaded(self, handle: FontHandle | str | None) -> bool:
        return self.get(handle) is not None

    def drain_events(self) -> list[AssetEvent]:
        events, self._events = self._events, []
        return events

    def __contains__(self, handle) -> bool:
        return self.is_loaded(handle)

    def __len__(self) -> int:
        return len(self._fonts)
