"""
Glyph tessellation: flat glyph outlines to closed, extruded solids.

The outline contours are first passed through a manifold3d CrossSection using the
non-zero fill rule. That resolves the different winding conventions of TrueType and
CFF outlines and merges overlapping contours. Each connected component of the
cross section (one outer ring plus its holes) is then turned into a solid:

    - a bottom cap at z=0 facing -Z and a top cap at z=depth facing +Z, both
      triangulated with earcut,
    - one quad per contour edge for the side walls, facing outwards.

Faces do not share vertices so every vertex carries the exact flat normal of its
face. Triangles are wound counter-clockwise when seen from outside the solid.
"""

from dataclasses import dataclass
import logging

import manifold3d as m3d
import mapbox_earcut
import numpy as np
from datatrees import datatree, dtfield

from textmesh.text_mesh import Quality, TextMeshException
from textmesh.text_utils import clean_contour, extentsof, get_polygon_signed_area

log = logging.getLogger(__name__)


class GlyphNotFound(TextMeshException):
    """The font has no outline for the character."""

    def __init__(self, char: str, message: str | None = None):
        super().__init__(message or f"No outline for character {char!r}")
        self.char = char


class TessellationFailed(TextMeshException):
    """An outline could not be turned into a mesh."""


def _make_array(v, t: type[np.float32 | np.float64 | np.uint32]) -> np.ndarray | None:
    """Condition array to be C-style contiguous and writeable."""
    if v is None:
        return None
    if not isinstance(v, np.ndarray) or not (
        v.flags.c_contiguous and v.flags.writeable and v.dtype == t
    ):
        v = np.array(v, dtype=t, order="C")
    return v


def _frozen(v: np.ndarray) -> np.ndarray:
    v.flags.writeable = False
    return v


@dataclass(frozen=True, eq=False)
class GlyphMesh:
    """Tessellated solid of one glyph in glyph (em) space.

    vertices: (N, 3) float32 positions.
    normals: (N, 3) float32 unit normals, one per vertex.
    indices: (M, 3) uint32 triangles indexing into vertices.
    """

    vertices: np.ndarray
    normals: np.ndarray
    indices: np.ndarray

    @staticmethod
    def from_arrays(vertices, normals, indices) -> "GlyphMesh":
        vertices = _make_array(vertices, np.float32).reshape((-1, 3))
        normals = _make_array(normals, np.float32).reshape((-1, 3))
        indices = _make_array(indices, np.uint32).reshape((-1, 3))
        if len(vertices) != len(normals):
            raise TessellationFailed(
                f"Vertex/normal count mismatch {len(vertices)} != {len(normals)}"
            )
        if indices.size and int(indices.max()) >= len(vertices):
            raise TessellationFailed("Triangle index out of range")
        return GlyphMesh(_frozen(vertices), _frozen(normals), _frozen(indices))

    @staticmethod
    def empty() -> "GlyphMesh":
        return GlyphMesh.from_arrays(np.empty((0, 3)), np.empty((0, 3)), np.empty((0, 3)))

    @property
    def vertex_count(self) -> int:
        return len(self.vertices)

    @property
    def triangle_count(self) -> int:
        return len(self.indices)

    @property
    def is_empty(self) -> bool:
        return self.vertex_count == 0

    def extents(self) -> np.ndarray:
        """[[xmin, ymin], [xmax, ymax]] of the vertices."""
        if self.is_empty:
            return np.zeros((2, 2))
        return extentsof(self.vertices[:, :2])


def _triangulate(verts_array: np.ndarray, rings: np.ndarray) -> np.ndarray:
    """Calls mapbox_earcut.triangulate_float32 or float64 depending on the given dtype."""
    if verts_array.dtype == np.float32:
        tris = mapbox_earcut.triangulate_float32(verts_array, rings)
    elif verts_array.dtype == np.float64:
        tris = mapbox_earcut.triangulate_float64(verts_array, rings)
    else:
        raise ValueError("verts_array must be a numpy array of float32 or float64")
    return np.asarray(tris, dtype=np.int64).reshape((-1, 3))


def _orient_rings(rings: list[np.ndarray]) -> list[np.ndarray]:
    """Orders rings outer first, outer counter-clockwise and holes clockwise.

    With this orientation the solid is always on the left of each edge.
    """
    areas = [get_polygon_signed_area(r) for r in rings]
    outer = int(np.argmax(np.abs(areas)))
    ordered = [rings[outer]] + [r for i, r in enumerate(rings) if i != outer]
    ordered_areas = [areas[outer]] + [a for i, a in enumerate(areas) if i != outer]
    result = []
    for i, (ring, area) in enumerate(zip(ordered, ordered_areas)):
        wants_ccw = i == 0
        if (area > 0) != wants_ccw:
            ring = ring[::-1]
        result.append(np.ascontiguousarray(ring))
    return result


@datatree
class SolidBuilder:
    """Accumulates caps and walls of extruded components into one vertex buffer."""

    depth: float
    vertices: list = dtfield(default_factory=list, init=False)
    normals: list = dtfield(default_factory=list, init=False)
    indices: list = dtfield(default_factory=list, init=False)
    vertex_count: int = dtfield(default=0, init=False)

    def _append(self, vertices: np.ndarray, normals: np.ndarray, tris: np.ndarray):
        self.vertices.append(vertices)
        self.normals.append(normals)
        self.indices.append(tris + self.vertex_count)
        self.vertex_count += len(vertices)

    def add_component(self, rings: list[np.ndarray]):
        rings = _orient_rings(rings)
        points = np.vstack(rings).astype(np.float64)
        ring_ends = _make_array(np.cumsum([len(r) for r in rings]), np.uint32)

        tris = _triangulate(points, ring_ends)
        if len(tris) == 0:
            log.debug(f"Earcut produced no triangles for component with {len(points)} points")
        else:
            # Earcut does not promise a winding, make every cap triangle CCW from +Z.
            p0, p1, p2 = points[tris[:, 0]], points[tris[:, 1]], points[tris[:, 2]]
            cross = (p1[:, 0] - p0[:, 0]) * (p2[:, 1] - p0[:, 1]) - (p1[:, 1] - p0[:, 1]) * (
                p2[:, 0] - p0[:, 0]
            )
            tris = np.where((cross < 0)[:, np.newaxis], tris[:, ::-1], tris)

        n = len(points)
        self._add_cap(points, tris[:, ::-1], 0.0, -1.0)
        self._add_cap(points, tris, self.depth, 1.0)
        for ring in rings:
            self._add_walls(ring)
        log.debug(f"Extruded component: {len(rings)} rings, {n} outline points")

    def _add_cap(self, points: np.ndarray, tris: np.ndarray, z: float, nz: float):
        if len(tris) == 0:
            return
        vertices = np.column_stack((points, np.full(len(points), z)))
        normals = np.tile((0.0, 0.0, nz), (len(points), 1))
        self._append(vertices, normals, tris)

    def _add_walls(self, ring: np.ndarray):
        a = ring
        b = np.roll(ring, -1, axis=0)
        d = b - a
        length = np.linalg.norm(d, axis=1)
        keep = length > 0
        a, b, d, length = a[keep], b[keep], d[keep], length[keep]
        count = len(a)
        if count == 0:
            return

        lo = np.zeros((count, 1))
        hi = np.full((count, 1), self.depth)
        quads = np.stack(
            (np.hstack((a, lo)), np.hstack((b, lo)), np.hstack((b, hi)), np.hstack((a, hi))),
            axis=1,
        ).reshape((-1, 3))

        # Outward normal of an edge with the solid on its left.
        edge_normals = np.column_stack((d[:, 1] / length, -d[:, 0] / length, np.zeros(count)))
        normals = np.repeat(edge_normals, 4, axis=0)

        base = 4 * np.arange(count)[:, np.newaxis]
        tris = np.vstack((
            np.hstack((base, base + 1, base + 2)),
            np.hstack((base, base + 2, base + 3)),
        ))
        self._append(quads, normals, tris)

    def build(self) -> GlyphMesh:
        if not self.vertices:
            return GlyphMesh.empty()
        return GlyphMesh.from_arrays(
            np.vstack(self.vertices), np.vstack(self.normals), np.vstack(self.indices)
        )


def tessellate(contours: list[np.ndarray], depth: float) -> GlyphMesh:
    """Extrudes closed 2D contours (em units) into a solid glyph mesh of the given depth.

    Args:
        contours: List of (n, 2) arrays, each a closed contour. A repeated closing
            point is allowed.
        depth: Extrusion distance along +Z, must be positive.

    Returns:
        The GlyphMesh. An empty contour list gives an empty mesh.
    """
    if not depth > 0:
        raise TessellationFailed(f"Extrusion depth must be positive, got {depth}")

    cleaned = [clean_contour(c) for c in contours]
    cleaned = [c for c in cleaned if len(c) >= 3]
    if not cleaned:
        return GlyphMesh.empty()

    try:
        cross_section = m3d.CrossSection(
            [_make_array(c, np.float32) for c in cleaned], m3d.FillRule.NonZero
        )
    except Exception as e:
        log.error(f"Failed to build cross section from {len(cleaned)} contours: {e}")
        raise TessellationFailed(f"Invalid outline: {e}") from e

    if cross_section.is_empty():
        return GlyphMesh.empty()

    builder = SolidBuilder(depth=float(depth))
    for component in cross_section.decompose():
        rings = [clean_contour(np.asarray(p)) for p in component.to_polygons()]
        rings = [r for r in rings if len(r) >= 3]
        if rings:
            builder.add_component(rings)
    return builder.build()


@datatree
class GlyphTessellator:
    """Tessellates glyphs of an outline source, counting the tessellations performed."""

    outline_source: object = dtfield(
        compare=False, doc="Object with outline(char, quality) -> contours."
    )
    tessellation_count: int = dtfield(default=0, init=False)

    def __call__(self, char: str, quality: Quality, depth: float) -> GlyphMesh:
        contours = self.outline_source.outline(char, quality)
        self.tessellation_count += 1
        return tessellate(contours, depth)
