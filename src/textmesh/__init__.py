from textmesh.text_mesh import (
    DEFAULT_FONT_SIZE,
    UNIT_SCALE,
    FontHandle,
    FontStyle,
    HorizontalAlign,
    Quality,
    SizeUnit,
    TextMesh,
    TextMeshAlignment,
    TextMeshException,
    TextMeshSize,
    TextMeshStyle,
    VerticalAlign,
)
from textmesh.tessellator import GlyphMesh, GlyphNotFound, GlyphTessellator, TessellationFailed
from textmesh.mesh_cache import CacheKey, MeshCache
from textmesh.mesh_data_generator import (
    DepthUnresolved,
    FontNotReady,
    FontSizeUnresolved,
    MeshData,
    MeshDataInvalid,
    generate_text_mesh,
)
from textmesh.font_loader import (
    AssetEvent,
    AssetEventKind,
    FontAssets,
    FontLoader,
    FontLoadError,
    TextMeshFont,
)
from textmesh.mesh_system import TextMeshState, TextMeshSystem, mesh_data_to_stl
