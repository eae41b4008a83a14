import io
import logging

import pytest
import stl

from textmesh.font_loader import FontAssets
from textmesh.mesh_data_generator import MeshData, generate_text_mesh
from textmesh.mesh_system import TextMeshSystem, mesh_data_to_stl
from textmesh.text_mesh import FontHandle, SizeUnit, TextMesh, TextMeshSize
from textmesh.textmesh_main import main


HANDLE = FontHandle("body")


@pytest.fixture
def system(fake_font):
    fonts = FontAssets()
    fonts.add(HANDLE, fake_font)
    fonts.drain_events()
    return TextMeshSystem(fonts=fonts)


def test_generates_once(system, fake_font):
    entities = {1: TextMesh.new("ab", HANDLE)}
    updated = system.text_mesh(entities)
    assert set(updated) == {1}
    assert isinstance(updated[1], MeshData)
    assert updated[1].vertex_count == 10
    assert system.meshes[1] is updated[1]
    assert system.states[1].font_loaded is True

    assert system.text_mesh(entities) == {}
    assert fake_font.calls == {"a": 1, "b": 1}


def test_regenerates_on_change(system):
    entities = {1: TextMesh.new("ab", HANDLE), 2: TextMesh.new("a", HANDLE)}
    system.text_mesh(entities)

    entities[1].text = "abab"
    updated = system.text_mesh(entities)
    assert set(updated) == {1}
    assert updated[1].vertex_count == 20

    entities[2] = TextMesh(text="a", style=entities[2].style, size=TextMeshSize(wrapping=False))
    assert set(system.text_mesh(entities)) == {2}


def test_shared_cache(system, fake_font):
    system.text_mesh({1: TextMesh.new("ab", HANDLE), 2: TextMesh.new("ba", HANDLE)})
    assert fake_font.calls == {"a": 1, "b": 1}
    assert len(system.caches[HANDLE]) == 2


def x_extent(mesh_data):
    return float(mesh_data.vertices[:, 0].max() - mesh_data.vertices[:, 0].min())


def test_cache_per_font(system, make_fake_font):
    wide = FontHandle("wide")
    system.fonts.add(wide, make_fake_font().set_width("a", 0.9))
    system.font_loaded()

    updated = system.text_mesh({1: TextMesh.new("a", HANDLE), 2: TextMesh.new("a", wide)})
    assert x_extent(updated[1]) == pytest.approx(0.5 * 0.125, abs=1e-6)
    assert x_extent(updated[2]) == pytest.approx(0.9 * 0.125, abs=1e-6)
    assert set(system.caches) == {HANDLE, wide}


def test_reloaded_font_drops_cache(system, make_fake_font):
    entities = {1: TextMesh.new("a", HANDLE)}
    first = system.text_mesh(entities)[1]
    assert HANDLE in system.caches

    system.fonts.add(HANDLE, make_fake_font().set_width("a", 0.9))
    system.font_loaded()
    assert HANDLE not in system.caches

    second = system.text_mesh(entities)[1]
    assert x_extent(first) == pytest.approx(0.5 * 0.125, abs=1e-6)
    assert x_extent(second) == pytest.approx(0.9 * 0.125, abs=1e-6)


def test_failure_is_isolated(system, caplog):
    entities = {1: TextMesh.new("a", HANDLE), 2: TextMesh.new("a", HANDLE)}
    system.text_mesh(entities)

    entities[1].text = "aa"
    entities[2].style.font_size = SizeUnit.AUTO
    with caplog.at_level(logging.ERROR):
        updated = system.text_mesh(entities)
    assert set(updated) == {1}
    assert updated[1].vertex_count == 8
    assert "automatic sizing" in system.states[2].error
    assert system.states[1].error is None
    assert "Failed to generate text mesh for 2" in caplog.text
    # The last good mesh is kept.
    assert system.meshes[2].vertex_count == 4
    # Unchanged and failed, not retried.
    assert system.text_mesh(entities) == {}

    entities[2].style.font_size = SizeUnit(18)
    assert set(system.text_mesh(entities)) == {2}
    assert system.states[2].error is None


def test_waits_for_font(fake_font):
    fonts = FontAssets()
    system = TextMeshSystem(fonts=fonts)
    entities = {"title": TextMesh.new("ab", HANDLE)}

    assert system.text_mesh(entities) == {}
    assert system.states["title"].font_loaded is False
    assert "title" not in system.meshes
    # Unchanged and still no font event, nothing to do.
    assert system.text_mesh(entities) == {}

    fonts.add(HANDLE, fake_font)
    system.font_loaded()
    assert system.states["title"].font_loaded is True

    updated = system.text_mesh(entities)
    assert set(updated) == {"title"}
    assert system.text_mesh(entities) == {}


def test_font_removed(system):
    entities = {1: TextMesh.new("ab", HANDLE)}
    system.text_mesh(entities)
    system.fonts.remove(HANDLE)
    system.font_loaded()
    assert system.states[1].font_loaded is False
    assert HANDLE not in system.caches


def test_forgets_removed_entities(system):
    system.text_mesh({1: TextMesh.new("ab", HANDLE), 2: TextMesh.new("a", HANDLE)})
    system.text_mesh({2: TextMesh.new("a", HANDLE)})
    assert set(system.meshes) == {2}
    assert set(system.states) == {2}


def test_write_stl(font):
    mesh_data = generate_text_mesh(TextMesh.new("Do", None), font)

    # Use BytesIO instead of a file
    stl_file = io.BytesIO()
    mesh_data_to_stl(mesh_data, "text.stl", file_obj=stl_file)

    # Reset buffer position to start for reading
    stl_file.seek(0)

    mesh = stl.mesh.Mesh.from_file("text.stl", fh=stl_file)
    assert isinstance(mesh, stl.mesh.Mesh)
    assert mesh.v0.shape == (mesh_data.triangle_count, 3)


def test_main(tmp_path, font_bytes, capsys):
    font_path = tmp_path / "test.ttf"
    font_path.write_bytes(font_bytes)
    stl_path = tmp_path / "out.stl"

    status = main(["AoD", "--font", str(font_path), "--quality", "high", "--stl", str(stl_path)])
    assert status == 0
    out = capsys.readouterr().out
    assert "cached glyphs=3" in out
    assert stl_path.exists()


def test_main_uppercase(tmp_path, font_bytes, capsys):
    font_path = tmp_path / "test.ttf"
    font_path.write_bytes(font_bytes)
    assert main(["dd", "--font", str(font_path), "--uppercase", "--lowercase"]) == 0
    assert "cached glyphs=1" in capsys.readouterr().out


def test_main_bad_font(tmp_path, capsys):
    font_path = tmp_path / "bad.ttf"
    font_path.write_bytes(b"garbage")
    assert main(["a", "--font", str(font_path)]) == 1
    assert "Error" in capsys.readouterr().err
