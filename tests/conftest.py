import io
from collections import Counter

import numpy as np
import pytest
from fontTools.fontBuilder import FontBuilder
from fontTools.pens.ttGlyphPen import TTGlyphPen

from textmesh.font_loader import FontLoader
from textmesh.tessellator import GlyphMesh, GlyphNotFound


UNITS_PER_EM = 1000


def _rect(pen, x0, y0, x1, y1, clockwise=True):
    points = [(x0, y0), (x0, y1), (x1, y1), (x1, y0)]
    if not clockwise:
        points = points[::-1]
    pen.moveTo(points[0])
    for p in points[1:]:
        pen.lineTo(p)
    pen.closePath()


def _glyph(draw=None):
    pen = TTGlyphPen(None)
    if draw:
        draw(pen)
    return pen.glyph()


def _draw_D(pen):
    # Straight left edge, two quadratic curves on the right.
    pen.moveTo((0, 0))
    pen.lineTo((0, 700))
    pen.qCurveTo((600, 700), (600, 350))
    pen.qCurveTo((600, 0), (100, 0))
    pen.closePath()


def _draw_o(pen):
    _rect(pen, 0, 0, 600, 600, clockwise=True)
    _rect(pen, 150, 150, 450, 450, clockwise=False)


def build_font_bytes(include_fallback=True) -> bytes:
    """A tiny TrueType font: space, 'A' and '?' rectangles, 'D' with curves, 'o' with a hole."""
    glyphs = {
        ".notdef": _glyph(),
        "space": _glyph(),
        "A": _glyph(lambda pen: _rect(pen, 0, 0, 500, 700)),
        "D": _glyph(_draw_D),
        "o": _glyph(_draw_o),
    }
    cmap = {ord(" "): "space", ord("A"): "A", ord("D"): "D", ord("o"): "o"}
    if include_fallback:
        glyphs["question"] = _glyph(lambda pen: _rect(pen, 0, 0, 400, 700))
        cmap[ord("?")] = "question"

    glyph_order = list(glyphs)
    fb = FontBuilder(UNITS_PER_EM, isTTF=True)
    fb.setupGlyphOrder(glyph_order)
    fb.setupCharacterMap(cmap)
    fb.setupGlyf(glyphs)
    fb.setupHorizontalMetrics({name: (600, 0) for name in glyph_order})
    fb.setupHorizontalHeader(ascent=800, descent=-200)
    fb.setupNameTable({"familyName": "TextMeshTest", "styleName": "Regular"})
    fb.setupOS2(sTypoAscender=800, sTypoDescender=-200, usWinAscent=800, usWinDescent=200)
    fb.setupPost()

    stream = io.BytesIO()
    fb.save(stream)
    return stream.getvalue()


@pytest.fixture(scope="session")
def font_bytes() -> bytes:
    return build_font_bytes()


@pytest.fixture(scope="session")
def font_bytes_no_fallback() -> bytes:
    return build_font_bytes(include_fallback=False)


@pytest.fixture
def font(font_bytes):
    return FontLoader().load_bytes(font_bytes, name="test.ttf")


@pytest.fixture
def font_no_fallback(font_bytes_no_fallback):
    return FontLoader().load_bytes(font_bytes_no_fallback, name="nofallback.ttf")


def _flat_mesh(outline, triangles) -> GlyphMesh:
    vertices = [(x, y, 0.0) for x, y in outline]
    normals = [(0.0, 0.0, 1.0)] * len(vertices)
    return GlyphMesh.from_arrays(vertices, normals, triangles)


class FakeGlyphSource:
    """Glyph source with fixed meshes, counts glyph_mesh calls per character."""

    fallback_char = "?"

    def __init__(self):
        self.meshes = {
            # 4 vertices, 2 triangles.
            "a": _flat_mesh([(0, 0), (0.5, 0), (0.5, 0.5), (0, 0.5)], [(0, 1, 2), (0, 2, 3)]),
            # 6 vertices, 3 triangles.
            "b": _flat_mesh(
                [(0, 0), (0.4, 0), (0.4, 0.4), (0.4, 0.8), (0, 0.8), (0, 0.4)],
                [(0, 1, 2), (0, 2, 5), (5, 2, 3)],
            ),
            "A": _flat_mesh(
                [(0, 0), (0.6, 0), (0.6, 0.7), (0.3, 0.9), (0, 0.7)],
                [(0, 1, 2), (0, 2, 4), (4, 2, 3)],
            ),
            "?": _flat_mesh([(0, 0), (0.3, 0), (0.15, 0.6)], [(0, 1, 2)]),
            # Tab reference glyph, 0.4 wide.
            "0": _flat_mesh([(0, 0), (0.4, 0), (0.4, 0.7), (0, 0.7)], [(0, 1, 2), (0, 2, 3)]),
            # Mapped but without ink.
            "\u200b": GlyphMesh.empty(),
        }
        self.calls = Counter()

    def glyph_mesh(self, char, quality, depth):
        self.calls[char] += 1
        if char not in self.meshes:
            raise GlyphNotFound(char)
        return self.meshes[char]

    def set_width(self, char, width):
        """Replaces char with a width x 0.5 rectangle."""
        self.meshes[char] = _flat_mesh(
            [(0, 0), (width, 0), (width, 0.5), (0, 0.5)], [(0, 1, 2), (0, 2, 3)]
        )
        return self


@pytest.fixture
def fake_font():
    return FakeGlyphSource()


@pytest.fixture
def make_fake_font():
    return FakeGlyphSource
