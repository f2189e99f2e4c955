"""Renderer package: canvas, glyph providers, layout, rasterization and encoding."""

from .canvas import SUPPORTED_BIT_DEPTHS, Canvas
from .diff import changed_region
from .encoders import ImageEncoder, OutputFormat, decode_packed, encoder_for, pack_levels
from .errors import CanvasError, EncodeError, FontError, LayoutError, RenderError
from .glyphs import GLYPH_PROVIDER_KINDS, BuiltinGlyphProvider, Glyph, GlyphProvider, TrueTypeGlyphProvider, glyph_provider_for
from .layout import (
    LAYOUT_MODULES,
    BaseLayout,
    FeedListLayout,
    HeadlineLayout,
    LayoutStyle,
    check_blocks,
    layout_for,
    prioritize,
    wrap_text,
)
from .models import DirtyRect, EncodedFrame, LayoutBlock, LayoutResult, RasterStats
from .rasterizer import MISSING_GLYPH_MODES, QUANTIZE_MODES, Rasterizer, load_logo

__all__ = [
    "BaseLayout",
    "BuiltinGlyphProvider",
    "Canvas",
    "CanvasError",
    "DirtyRect",
    "EncodeError",
    "EncodedFrame",
    "FeedListLayout",
    "FontError",
    "GLYPH_PROVIDER_KINDS",
    "Glyph",
    "GlyphProvider",
    "HeadlineLayout",
    "ImageEncoder",
    "LAYOUT_MODULES",
    "LayoutBlock",
    "LayoutError",
    "LayoutResult",
    "LayoutStyle",
    "MISSING_GLYPH_MODES",
    "OutputFormat",
    "QUANTIZE_MODES",
    "RasterStats",
    "Rasterizer",
    "RenderError",
    "SUPPORTED_BIT_DEPTHS",
    "TrueTypeGlyphProvider",
    "changed_region",
    "check_blocks",
    "decode_packed",
    "encoder_for",
    "glyph_provider_for",
    "layout_for",
    "load_logo",
    "pack_levels",
    "prioritize",
    "wrap_text",
]
