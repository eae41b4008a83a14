"""
Text layout and mesh assembly.

generate_text_mesh() walks the (case folded) text, fetches each glyph's solid
from the MeshCache (tessellating on a miss), places it at the layout cursor and
appends it to one combined vertex/normal/index buffer.

Layout is deliberately simple: left to right, glyphs are placed edge to edge using
their bounding boxes plus a fixed spacing, rows are wrapped when the cursor gets
near the right edge of the box. The box is centered on the origin, the first row
starts at the top left corner.

All lengths are dimensionless scalars: a SizeUnit magnitude divided by UNIT_SCALE.
Glyph meshes are in em units and are scaled by the font size scalar on placement.
"""

from dataclasses import dataclass
import logging

import numpy as np
from datatrees import datatree, dtfield

from textmesh.mesh_cache import CacheKey, MeshCache
from textmesh.tessellator import GlyphMesh, GlyphNotFound, TessellationFailed
from textmesh.text_mesh import Quality, TextMesh, TextMeshException

log = logging.getLogger(__name__)

# Horizontal and vertical gap between glyphs and rows, in font size scalars.
SPACING = (0.08, 0.10)
# Advance of a space, in font size scalars, spacing is added on top.
SPACE_ADVANCE = 0.2
TAB_STOP = 4
# A tab column is as wide as the advance of this glyph.
TAB_REFERENCE_CHAR = "0"
PLACEHOLDER_UV = (0.0, 1.0)


class FontSizeUnresolved(TextMeshException):
    """The font size is automatic, automatic sizing is not implemented."""


class DepthUnresolved(TextMeshException):
    """No concrete extrusion depth. Flat (2D) text meshes are not implemented."""


class FontNotReady(TextMeshException):
    """The font has not been loaded yet. Retry once it is available."""


class MeshDataInvalid(TextMeshException):
    """A MeshData buffer violates its invariants."""


@dataclass(frozen=True, eq=False)
class MeshData:
    """The combined text mesh.

    vertices: (N, 3) float32 positions.
    normals: (N, 3) float32 normals.
    indices: (K,) uint32 triangle list, K is a multiple of 3.
    uvs: (N, 2) float32 placeholder texture coordinates.
    """

    vertices: np.ndarray
    normals: np.ndarray
    indices: np.ndarray
    uvs: np.ndarray

    @staticmethod
    def empty() -> "MeshData":
        return MeshData(
            vertices=np.empty((0, 3), dtype=np.float32),
            normals=np.empty((0, 3), dtype=np.float32),
            indices=np.empty((0,), dtype=np.uint32),
            uvs=np.empty((0, 2), dtype=np.float32),
        )

    @property
    def vertex_count(self) -> int:
        return len(self.vertices)

    @property
    def triangle_count(self) -> int:
        return len(self.indices) // 3

    @property
    def is_empty(self) -> bool:
        return self.vertex_count == 0

    def triangles(self) -> np.ndarray:
        """The indices as (K / 3, 3)."""
        return self.indices.reshape((-1, 3))

    def validate(self) -> "MeshData":
        n = len(self.vertices)
        if len(self.normals) != n or len(self.uvs) != n:
            raise MeshDataInvalid(
                f"Buffer lengths differ: vertices={n} normals={len(self.normals)} "
                f"uvs={len(self.uvs)}"
            )
        if len(self.indices) % 3 != 0:
            raise MeshDataInvalid(f"Index count {len(self.indices)} is not a multiple of 3")
        if len(self.indices) and int(self.indices.max()) >= n:
            raise MeshDataInvalid(f"Index {int(self.indices.max())} out of range for {n} vertices")
        return self


@datatree
class LayoutCursor:
    """Where the next glyph goes. Local to one generate_text_mesh call."""

    x: float
    y: float
    line_start: float
    row_max_height: float = 0.0
    column: int = 0
    vertex_offset: int = 0

    def new_row(self, spacing_y: float):
        self.x = self.line_start
        self.y -= self.row_max_height + spacing_y
        self.row_max_height = 0.0
        self.column = 0


def _resolve_box(value, name: str) -> float:
    scalar = value.as_scalar()
    if scalar is None:
        log.warning(f"Automatic {name} is not implemented, using 0")
        return 0.0
    return scalar


@datatree
class TextLayout:
    """Places glyph meshes for one call and accumulates the combined buffers."""

    font: object = dtfield(doc="Glyph source: glyph_mesh(char, quality, depth) and fallback_char.")
    cache: MeshCache
    quality: Quality
    depth: float
    scale: float = dtfield(doc="Font size scalar, glyph meshes are scaled by this.")
    width: float
    height: float
    wrapping: bool

    spacing_x: float = dtfield(self_default=lambda s: SPACING[0] * s.scale, init=False)
    spacing_y: float = dtfield(self_default=lambda s: SPACING[1] * s.scale, init=False)
    space_advance: float = dtfield(
        self_default=lambda s: SPACE_ADVANCE * s.scale + s.spacing_x, init=False
    )
    line_start: float = dtfield(self_default=lambda s: -s.width / 2, init=False)
    line_end: float = dtfield(self_default=lambda s: s.width / 2, init=False)
    cursor: LayoutCursor = dtfield(
        self_default=lambda s: LayoutCursor(
            x=s.line_start, y=s.height / 2 - s.scale, line_start=s.line_start
        ),
        init=False,
    )
    vertices: list = dtfield(default_factory=list, init=False, repr=False)
    normals: list = dtfield(default_factory=list, init=False, repr=False)
    indices: list = dtfield(default_factory=list, init=False, repr=False)
    _tab_advance: float | None = dtfield(default=None, init=False, repr=False)

    def glyph_mesh(self, char: str) -> GlyphMesh:
        """Cached mesh for char, the fallback glyph's mesh if the font lacks char."""
        key = CacheKey.new_3d(char, self.depth)
        try:
            return self.cache.get_or_insert(
                key, lambda: self.font.glyph_mesh(char, self.quality, self.depth)
            )
        except GlyphNotFound as e:
            fallback = self.font.fallback_char
            log.warning(f"{e}, substituting fallback glyph {fallback!r}")
            mesh = self._fallback_mesh(fallback)
            self.cache.insert(key, mesh)
            return mesh

    def _fallback_mesh(self, fallback: str) -> GlyphMesh:
        key = CacheKey.new_3d(fallback, self.depth)
        try:
            return self.cache.get_or_insert(
                key, lambda: self.font.glyph_mesh(fallback, self.quality, self.depth)
            )
        except GlyphNotFound as e:
            raise TessellationFailed(f"Fallback glyph {fallback!r} is unavailable: {e}") from e

    @property
    def tab_advance(self) -> float:
        """Advance of one tab column, that of TAB_REFERENCE_CHAR plus spacing."""
        if self._tab_advance is None:
            mesh = self.glyph_mesh(TAB_REFERENCE_CHAR)
            if mesh.is_empty:
                self._tab_advance = self.space_advance
            else:
                (xmin, _), (xmax, _) = mesh.extents()
                self._tab_advance = float(xmax - xmin) * self.scale + self.spacing_x
        return self._tab_advance

    def add_text(self, text: str):
        for char in text:
            self.add_char(char)

    def add_char(self, char: str):
        cursor = self.cursor
        if char == "\t":
            columns = TAB_STOP - cursor.column % TAB_STOP
            cursor.x += self.tab_advance * columns
            cursor.column += columns
            return
        if char == "\n":
            cursor.new_row(self.spacing_y)
            return
        if char == "\r":
            return
        if char.isspace():
            cursor.x += self.space_advance
            cursor.column += 1
            return

        mesh = self.glyph_mesh(char)
        if mesh.is_empty:
            # A mapped glyph without ink, e.g. a zero width space.
            cursor.x += self.space_advance
            cursor.column += 1
            return

        (xmin, ymin), (xmax, ymax) = mesh.extents()
        s = self.scale
        offset = np.array([cursor.x - xmin * s, cursor.y, 0.0])
        self.vertices.append(mesh.vertices.astype(np.float64) * s + offset)
        self.normals.append(mesh.normals)
        self.indices.append(mesh.indices.astype(np.int64).reshape(-1) + cursor.vertex_offset)
        cursor.vertex_offset += mesh.vertex_count

        cursor.row_max_height = max(cursor.row_max_height, float(ymax - ymin) * s)
        cursor.x += float(xmax - xmin) * s + self.spacing_x
        cursor.column += 1

        if self.wrapping and cursor.x + s + self.spacing_x > self.line_end:
            cursor.new_row(self.spacing_y)

    def build(self) -> MeshData:
        if not self.vertices:
            return MeshData.empty()
        vertices = np.vstack(self.vertices).astype(np.float32)
        uvs = np.tile(np.array(PLACEHOLDER_UV, dtype=np.float32), (len(vertices), 1))
        return MeshData(
            vertices=vertices,
            normals=np.vstack(self.normals).astype(np.float32),
            indices=np.concatenate(self.indices).astype(np.uint32),
            uvs=uvs,
        ).validate()


def generate_text_mesh(
    text_mesh: TextMesh, font, cache: MeshCache | None = None
) -> MeshData:
    """Lays out text_mesh.text with font and returns the combined mesh.

    Args:
        text_mesh: The text and its style and layout box.
        font: Glyph source, e.g. a TextMeshFont. None means the font is not loaded.
        cache: Glyph mesh cache. When None a cache local to this call is used, so
            repeated characters are still only tessellated once.

    Raises:
        FontNotReady: font is None.
        FontSizeUnresolved: The font size is automatic.
        DepthUnresolved: No depth, or an automatic one.
        TessellationFailed: A glyph, or the fallback glyph, could not be tessellated.
    """
    log.debug(f"Generate text mesh: {text_mesh.text!r}")

    if font is None:
        raise FontNotReady("Font is not loaded")

    style = text_mesh.style
    size = text_mesh.size

    scale = style.font_size.as_scalar()
    if scale is None:
        raise FontSizeUnresolved("Font automatic sizing has not been implemented")

    depth = size.depth.as_scalar() if size.depth is not None else None
    if depth is None:
        raise DepthUnresolved("A concrete depth is required, flat text meshes are not implemented")

    ignored = style.font_style.unimplemented()
    if ignored:
        log.debug(f"Ignoring unimplemented font style flags {ignored}")

    if cache is None:
        cache = MeshCache()

    layout = TextLayout(
        font=font,
        cache=cache,
        quality=style.mesh_quality,
        depth=depth,
        scale=scale,
        width=_resolve_box(size.width, "width"),
        height=_resolve_box(size.height, "height"),
        wrapping=size.wrapping,
    )
    layout.add_text(style.font_style.apply_case(text_mesh.text))
    return layout.build()
