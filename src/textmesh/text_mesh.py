"""
Text mesh configuration records.

A TextMesh describes what to draw (the text), how to draw it (TextMeshStyle) and
the box it is laid out in (TextMeshSize). These are plain value objects, two
TextMesh instances compare equal when every field matches, which is what the
host integration uses to decide when a mesh needs to be regenerated.
"""

import enum

from datatrees import datatree, dtfield


# Size magnitudes are divided by this to get a dimensionless scalar.
UNIT_SCALE = 144.0

DEFAULT_FONT_SIZE = 18.0

WHITE = (1.0, 1.0, 1.0, 1.0)


class TextMeshException(Exception):
    """Base exception for text mesh generation."""


@datatree(frozen=True)
class SizeUnit:
    """A size magnitude, or None for automatic sizing (not supported by the generator)."""

    value: float | None = dtfield(default=None, doc="Magnitude, None means automatic.")

    @classmethod
    def non_standard(cls, value: float) -> "SizeUnit":
        return cls(float(value))

    @property
    def is_auto(self) -> bool:
        return self.value is None

    def as_scalar(self) -> float | None:
        if self.value is None:
            return None
        return self.value / UNIT_SCALE


SizeUnit.AUTO = SizeUnit(None)


class FontStyle(enum.Flag):
    NONE = 0
    BOLD = 0b1  # Not implemented, accepted and ignored.
    ITALIC = 0b10  # Not implemented, accepted and ignored.
    UNDERLINE = 0b100  # Not implemented, accepted and ignored.
    STRIKETHROUGH = 0b1000  # Not implemented, accepted and ignored.
    LOWERCASE = 0b10000
    UPPERCASE = 0b100000

    def apply_case(self, text: str) -> str:
        """Case folds text. UPPERCASE wins when both case flags are set."""
        if FontStyle.UPPERCASE in self:
            return text.upper()
        if FontStyle.LOWERCASE in self:
            return text.lower()
        return text

    def unimplemented(self) -> "FontStyle":
        return self & (
            FontStyle.BOLD | FontStyle.ITALIC | FontStyle.UNDERLINE | FontStyle.STRIKETHROUGH
        )


@datatree(frozen=True)
class Quality:
    """Outline tessellation quality. Higher values flatten curves into more segments."""

    value: int = dtfield(default=20, doc="Quality level, LOW=10, MEDIUM=20, HIGH=50.")

    @classmethod
    def custom(cls, value: int) -> "Quality":
        if int(value) < 1:
            raise ValueError(f"Quality must be at least 1, got {value}")
        return cls(int(value))

    @property
    def curve_segments(self) -> int:
        """Number of straight segments each outline curve is flattened into."""
        return max(1, self.value // 5)


Quality.LOW = Quality(10)
Quality.MEDIUM = Quality(20)
Quality.HIGH = Quality(50)


@datatree(frozen=True)
class FontHandle:
    """Identifies a font resource in a FontAssets registry."""

    id: str


@datatree
class TextMeshStyle:
    font: FontHandle | None = None
    font_size: SizeUnit = dtfield(default=SizeUnit(DEFAULT_FONT_SIZE))
    font_style: FontStyle = FontStyle.NONE
    color: tuple[float, float, float, float] = WHITE
    mesh_quality: Quality = dtfield(default=Quality(20))


@datatree
class TextMeshSize:
    """The box the text is laid out in. The box is centered on the origin."""

    width: SizeUnit = dtfield(default=SizeUnit(DEFAULT_FONT_SIZE * 16))
    height: SizeUnit = dtfield(default=SizeUnit(DEFAULT_FONT_SIZE * 8))
    depth: SizeUnit | None = dtfield(default=SizeUnit(DEFAULT_FONT_SIZE * 2))
    wrapping: bool = True
    overflow: bool = False


class VerticalAlign(enum.Enum):
    TOP = "top"
    CENTER = "center"
    BOTTOM = "bottom"


class HorizontalAlign(enum.Enum):
    LEFT = "left"
    CENTER = "center"
    RIGHT = "right"


@datatree(frozen=True)
class TextMeshAlignment:
    """Alignment of the text in its box. Not implemented, carried and ignored by layout."""

    vertical: VerticalAlign = VerticalAlign.CENTER
    horizontal: HorizontalAlign = HorizontalAlign.CENTER


@datatree
class TextMesh:
    """Text mesh configuration: the string plus its style and layout box."""

    text: str = "Hello World"
    style: TextMeshStyle = dtfield(default_factory=TextMeshStyle)
    size: TextMeshSize = dtfield(default_factory=TextMeshSize)
    alignment: TextMeshAlignment = dtfield(default_factory=TextMeshAlignment)

    @classmethod
    def new(cls, text, font: FontHandle | None) -> "TextMesh":
        return cls(text=str(text), style=TextMeshStyle(font=font))

    @classmethod
    def new_with_color(
        cls, text, font: FontHandle | None, color: tuple[float, ...]
    ) -> "TextMesh":
        if len(color) == 3:
            color = (*color, 1.0)
        return cls(text=str(text), style=TextMeshStyle(font=font, color=tuple(color)))
