"""
Host integration for text meshes.

TextMeshSystem keeps the generated MeshData of a set of keyed TextMesh
configurations up to date. A host calls text_mesh() with its current
configurations (e.g. once per frame) and gets back only the meshes that were
(re)generated. Text whose font is not loaded yet is parked until a font
CREATED event arrives through font_loaded().
"""

import copy
import logging
from typing import Hashable, Iterable, Mapping

import numpy as np
from datatrees import datatree, dtfield
from stl import mesh, Mode

from textmesh.font_loader import AssetEvent, AssetEventKind, FontAssets
from textmesh.mesh_cache import MeshCache
from textmesh.mesh_data_generator import FontNotReady, MeshData, generate_text_mesh
from textmesh.text_mesh import FontHandle, TextMesh, TextMeshException

log = logging.getLogger(__name__)


@datatree
class TextMeshState:
    """Per entity generation state.

    font_loaded is None until the first generation attempt. error holds the
    message of the last failed generation, None after a success.
    """

    font_loaded: bool | None = None
    error: str | None = None


@datatree
class TextMeshSystem:
    """Generates and regenerates meshes for changed TextMesh entities.

    Glyph meshes are cached per font handle, entities using the same font share
    its cache. A font's cache is dropped whenever that handle is loaded or
    removed so replaced fonts never reuse stale glyphs.
    """

    fonts: FontAssets = dtfield(default_factory=FontAssets)
    max_cache_entries: int | None = dtfield(
        default=None, doc="LRU bound for each per font cache, None is unbounded."
    )
    caches: dict = dtfield(default_factory=dict, init=False, repr=False)
    meshes: dict = dtfield(default_factory=dict, init=False, repr=False)
    states: dict = dtfield(default_factory=dict, init=False, repr=False)
    _seen: dict = dtfield(default_factory=dict, init=False, repr=False)
    _dirty: set = dtfield(default_factory=set, init=False, repr=False)

    def cache_for(self, handle: FontHandle | None) -> MeshCache:
        cache = self.caches.get(handle)
        if cache is None:
            cache = MeshCache(max_entries=self.max_cache_entries)
            self.caches[handle] = cache
        return cache

    def text_mesh(self, text_meshes: Mapping[Hashable, TextMesh]) -> dict[Hashable, MeshData]:
        """Regenerates the meshes of new, changed or newly unblocked entities.

        A failure to generate one entity is logged and recorded on its state,
        the remaining entities are still processed. The failed entity is retried
        when its TextMesh changes or its font is (re)loaded.

        Returns:
            key to MeshData for the entities generated by this call.
        """
        for key in [k for k in self.states if k not in text_meshes]:
            self._forget(key)

        updated = {}
        for key, text_mesh in text_meshes.items():
            state = self.states.setdefault(key, TextMeshState())
            if self._seen.get(key) == text_mesh and key not in self._dirty:
                continue
            self._seen[key] = copy.deepcopy(text_mesh)
            self._dirty.discard(key)

            handle = text_mesh.style.font
            font = self.fonts.get(handle)
            cache = self.cache_for(handle) if font is not None else None
            try:
                mesh_data = generate_text_mesh(text_mesh, font, cache)
            except FontNotReady:
                log.debug(f"Font {handle} not loaded, deferring {key!r}")
                state.font_loaded = False
                continue
            except TextMeshException as e:
                log.error(f"Failed to generate text mesh for {key!r}: {e}")
                state.font_loaded = True
                state.error = str(e)
                continue

            state.font_loaded = True
            state.error = None
            self.meshes[key] = mesh_data
            updated[key] = mesh_data
        return updated

    def font_loaded(self, events: Iterable[AssetEvent] | None = None):
        """Applies font asset events, marking entities using a new font for regeneration."""
        if events is None:
            events = self.fonts.drain_events()
        for event in events:
            if self.caches.pop(event.handle, None) is not None:
                log.debug(f"Dropped glyph mesh cache of font {event.handle.id}")
            for key, text_mesh in self._seen.items():
                if text_mesh.style.font != event.handle:
                    continue
                state = self.states[key]
                if event.kind == AssetEventKind.CREATED:
                    state.font_loaded = True
                    self._dirty.add(key)
                elif event.kind == AssetEventKind.REMOVED:
                    state.font_loaded = False

    def _forget(self, key):
        self.states.pop(key, None)
        self.meshes.pop(key, None)
        self._seen.pop(key, None)
        self._dirty.discard(key)


def mesh_data_to_stl(mesh_data: MeshData, filename: str, file_obj=None, mode=Mode.AUTOMATIC):
    """Writes a MeshData as STL, either to filename or to a file-like object.

    Args:
        mesh_data: The mesh to write.
        filename: Path to save the STL file, also used as the solid name when
            writing to file_obj.
        file_obj: Optional file-like object to write to instead of a file.
        mode: Mode to use for the STL file.
    """
    data = np.zeros(mesh_data.triangle_count, dtype=mesh.Mesh.dtype)
    data["vectors"] = mesh_data.vertices[mesh_data.triangles()]

    stl_mesh = mesh.Mesh(data)
    stl_mesh.save(filename, fh=file_obj, mode=mode, update_normals=True)
