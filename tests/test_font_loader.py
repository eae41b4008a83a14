import numpy as np
import pytest

from textmesh.font_loader import (
    AssetEvent,
    AssetEventKind,
    FontAssets,
    FontLoader,
    FontLoadError,
    TextMeshFont,
)
from textmesh.tessellator import GlyphNotFound
from textmesh.text_mesh import FontHandle, Quality


def test_load_bytes(font):
    assert isinstance(font, TextMeshFont)
    assert font.units_per_em == 1000
    assert font.family_name == "TextMeshTest"
    assert font.name == "test.ttf"
    assert font.fallback_char == "?"
    assert font.has_glyph("A")
    assert not font.has_glyph("z")
    assert not font.has_glyph("AB")


def test_outline_in_em_units(font):
    contours = font.outline("A", Quality.MEDIUM)
    assert len(contours) == 1
    np.testing.assert_allclose(contours[0].min(axis=0), (0.0, 0.0))
    np.testing.assert_allclose(contours[0].max(axis=0), (0.5, 0.7))


def test_outline_with_hole(font):
    contours = font.outline("o", Quality.MEDIUM)
    assert len(contours) == 2
    assert sorted(len(c) for c in contours) == [4, 4]


@pytest.mark.parametrize("quality", [Quality.LOW, Quality.MEDIUM, Quality.HIGH, Quality.custom(1)])
def test_curve_flattening_by_quality(font, quality):
    (contour,) = font.outline("D", quality)
    # Two line points plus two flattened quadratic curves.
    assert len(contour) == 2 + 2 * quality.curve_segments
    # The first curve ends on its on-curve point.
    np.testing.assert_allclose(contour[1 + quality.curve_segments], (0.6, 0.35))


def test_empty_glyph(font):
    assert font.outline(" ", Quality.MEDIUM) == []
    assert font.glyph_mesh(" ", Quality.MEDIUM, 0.25).is_empty


def test_missing_glyph(font):
    with pytest.raises(GlyphNotFound) as e:
        font.outline("z", Quality.MEDIUM)
    assert e.value.char == "z"


def test_glyph_mesh(font):
    mesh = font.glyph_mesh("A", Quality.MEDIUM, 0.25)
    assert mesh.vertex_count == 24
    assert mesh.vertices[:, 2].max() == pytest.approx(0.25)
    assert font.tessellator.tessellation_count == 1


def test_load_bad_bytes():
    with pytest.raises(FontLoadError):
        FontLoader().load_bytes(b"not a font")


def test_load_path(tmp_path, font_bytes):
    path = tmp_path / "test.ttf"
    path.write_bytes(font_bytes)
    font = FontLoader(fallback_char="A").load_path(path)
    assert font.name == "test.ttf"
    assert font.fallback_char == "A"


def test_load_missing_path(tmp_path):
    with pytest.raises(FontLoadError):
        FontLoader().load_path(tmp_path / "missing.ttf")


def test_font_assets(font):
    assets = FontAssets()
    handle = FontHandle("test")
    assert not assets.is_loaded(handle)
    assert assets.get(None) is None

    assert assets.add("test", font) == handle
    assert handle in assets
    assert assets.get(handle) is font
    assert len(assets) == 1

    assert assets.remove(handle) is font
    assert assets.remove(handle) is None
    assert not assets.is_loaded(handle)

    assert assets.drain_events() == [
        AssetEvent(AssetEventKind.CREATED, handle),
        AssetEvent(AssetEventKind.REMOVED, handle),
    ]
    assert assets.drain_events() == []


def test_font_assets_load_path(tmp_path, font_bytes):
    path = tmp_path / "test.ttf"
    path.write_bytes(font_bytes)
    assets = FontAssets()
    handle = assets.load_path("body", path)
    assert assets.get(handle).has_glyph("o")
