"""
Cache of tessellated glyph meshes.

Within one font a glyph's solid depends only on the character and the
extrusion depth, not on the font size or color, so meshes are keyed on
(character, quantized depth). Keys carry no font identity, a cache must only
ever be used with one font.
Depth is quantized to 1/DEPTH_QUANTIZATION so numerically equal depths always
map to the same key.

The cache is a plain mutable object and is not safe for concurrent use. The
owner passes it to one generate_text_mesh call at a time.
"""

from collections import OrderedDict
import logging
from typing import Callable

from datatrees import datatree, dtfield

from textmesh.tessellator import GlyphMesh

log = logging.getLogger(__name__)

DEPTH_QUANTIZATION = 100


@datatree(frozen=True)
class CacheKey:
    char: str
    depth_key: int = dtfield(doc="Extrusion depth in 1/DEPTH_QUANTIZATION units.")

    @classmethod
    def new_3d(cls, char: str, depth: float) -> "CacheKey":
        return cls(char, int(round(depth * DEPTH_QUANTIZATION)))


@datatree
class MeshCache:
    """Glyph mesh cache. Unbounded by default, least recently used eviction when
    max_entries is set. Stored meshes are never modified."""

    max_entries: int | None = None
    hits: int = dtfield(default=0, init=False)
    misses: int = dtfield(default=0, init=False)
    meshes: OrderedDict = dtfield(default_factory=OrderedDict, init=False, repr=False)

    def __post_init__(self):
        if self.max_entries is not None and self.max_entries < 1:
            raise ValueError(f"max_entries must be at least 1, got {self.max_entries}")

    def get(self, key: CacheKey) -> GlyphMesh | None:
        mesh = self.meshes.get(key)
        if mesh is not None and self.max_entries is not None:
            self.meshes.move_to_end(key)
        return mesh

    def get_or_insert(self, key: CacheKey, factory: Callable[[], GlyphMesh]) -> GlyphMesh:
        """Returns the mesh for key, calling factory once to create it on a miss.

        Exceptions from factory propagate and nothing is stored.
        """
        mesh = self.get(key)
        if mesh is not None:
            self.hits += 1
            return mesh
        self.misses += 1
        log.debug(f"Glyph mesh cache miss for {key}")
        mesh = factory()
        self.insert(key, mesh)
        return mesh

    def insert(self, key: CacheKey, mesh: GlyphMesh):
        if key in self.meshes:
            return
        self.meshes[key] = mesh
        if self.max_entries is not None:
            while len(self.meshes) > self.max_entries:
                evicted, _ = self.meshes.popitem(last=False)
                log.debug(f"Evicted glyph mesh {evicted}")

    def clear(self):
        self.meshes.clear()

    def __contains__(self, key: CacheKey) -> bool:
        return key in self.meshes

    def __len__(self) -> int:
        return len(self.meshes)
