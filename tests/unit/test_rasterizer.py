import sys
import tempfile
import unittest
from pathlib import Path
from unittest import mock

import numpy as np
from PIL import Image

sys.path.insert(0, str(Path(__file__).resolve().parent))

from helpers import FixedGlyphProvider

from inkframe_renderer import BuiltinGlyphProvider, Canvas, LayoutError, Rasterizer, load_logo
from inkframe_renderer.models import LayoutBlock


def block(text: str, width: int = 64, x: int = 0, y: int = 0, size: int = 16) -> LayoutBlock:
    return LayoutBlock(x=x, y=y, width=width, height=size, lines=(text,), font_size=size, line_height=size)


class RasterizerTests(unittest.TestCase):
    def test_paints_glyph_ink_black(self):
        canvas = Canvas(64, 16)
        stats = Rasterizer(FixedGlyphProvider()).paint([block("ab")], canvas)
        self.assertEqual(stats.glyphs, 2)
        self.assertEqual(int((canvas.pixels == 0).sum()), 2 * 14 * 7)
        self.assertTrue(canvas.quantized)

    def test_missing_glyph_draws_box(self):
        canvas = Canvas(64, 16)
        stats = Rasterizer(FixedGlyphProvider(missing="b"), missing_glyph="box").paint([block("ab")], canvas)
        self.assertEqual(stats.missing_glyphs, 1)
        self.assertEqual(stats.glyphs, 1)
        # 6x12 hollow rectangle next to the solid "a"
        self.assertEqual(int((canvas.pixels == 0).sum()), 14 * 7 + 2 * 6 + 2 * 10)

    def test_missing_glyph_skip(self):
        canvas = Canvas(64, 16)
        stats = Rasterizer(FixedGlyphProvider(missing="b"), missing_glyph="skip").paint([block("ab")], canvas)
        self.assertEqual(stats.missing_glyphs, 1)
        self.assertEqual(int((canvas.pixels == 0).sum()), 14 * 7)

    def test_ink_is_clipped_to_block(self):
        canvas = Canvas(64, 16)
        stats = Rasterizer(FixedGlyphProvider()).paint([block("abc", width=10)], canvas)
        self.assertTrue((canvas.pixels[:, 10:] == 255).all())
        self.assertEqual(stats.clipped_glyphs, 2)

    def test_empty_blocks_leave_canvas_white(self):
        canvas = Canvas(32, 32)
        Rasterizer(FixedGlyphProvider()).paint([], canvas)
        self.assertTrue((canvas.pixels == 255).all())
        self.assertTrue(canvas.quantized)

    def test_rejects_blocks_outside_canvas(self):
        canvas = Canvas(32, 16)
        with self.assertRaises(LayoutError):
            Rasterizer(FixedGlyphProvider()).paint([block("a", width=64)], canvas)

    def test_threshold_output_is_binary(self):
        canvas = Canvas(120, 24)
        provider = BuiltinGlyphProvider()
        Rasterizer(provider).paint([block("Hello, world", width=120, size=16)], canvas)
        values = set(np.unique(canvas.pixels).tolist())
        self.assertTrue(values <= {0, 255})
        self.assertIn(0, values)

    def test_multi_level_snaps_to_palette(self):
        canvas = Canvas(120, 24, bit_depth=2)
        Rasterizer(BuiltinGlyphProvider()).paint([block("Grey levels", width=120, size=16)], canvas)
        self.assertTrue(set(np.unique(canvas.pixels).tolist()) <= {0, 85, 170, 255})

    def test_floyd_steinberg(self):
        for depth, allowed in ((1, {0, 255}), (4, set(range(0, 256, 17)))):
            canvas = Canvas(120, 24, bit_depth=depth)
            Rasterizer(BuiltinGlyphProvider(), quantize="floyd-steinberg").paint(
                [block("Dithered", width=120, size=18)], canvas
            )
            self.assertTrue(set(np.unique(canvas.pixels).tolist()) <= allowed)

    def test_builtin_font_survives_unsupported_characters(self):
        canvas = Canvas(160, 24)
        stats = Rasterizer(BuiltinGlyphProvider()).paint([block("Grüße 中文 ͸", width=160)], canvas)
        self.assertGreater(stats.glyphs + stats.missing_glyphs, 0)
        self.assertGreaterEqual(stats.missing_glyphs, 1)

    def test_builtin_font_renders_each_glyph_once(self):
        provider = BuiltinGlyphProvider()
        with mock.patch.object(provider, "_render", wraps=provider._render) as render:
            canvas = Canvas(96, 16)
            Rasterizer(provider).paint([block("aaaa", width=96, size=12)], canvas)
            Rasterizer(provider).paint([block("aaaa", width=96, size=12)], Canvas(96, 16))
            self.assertTrue(provider.has_glyph("a", 12))
        # One render for the .notdef reference, one for "a".
        self.assertEqual(render.call_count, 2)

    def test_logo_is_scaled_and_transparency_is_paper(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "logo.png"
            image = Image.new("RGBA", (40, 20), (0, 0, 0, 0))
            image.paste((0, 0, 0, 255), (0, 0, 20, 20))
            image.save(path)
            ink = load_logo(str(path), 10)
        self.assertEqual(ink.shape, (10, 20))
        self.assertGreater(int(ink[5, 2]), 200)
        self.assertLess(int(ink[5, 17]), 30)
        self.assertFalse(ink.flags.writeable)

    def test_unreadable_logo_raises_oserror(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "logo.png"
            path.write_bytes(b"not an image")
            with self.assertRaises(OSError):
                load_logo(str(path), 10)

    def test_logo_block_is_composited_and_clipped(self):
        canvas = Canvas(64, 16)
        logo_block = LayoutBlock(x=4, y=2, width=8, height=8, lines=(), font_size=8, role="logo")
        stats = Rasterizer(FixedGlyphProvider()).paint([logo_block], canvas, np.full((12, 12), 255, dtype=np.uint8))
        self.assertEqual(stats.glyphs, 0)
        self.assertEqual(int((canvas.pixels == 0).sum()), 64)
        self.assertTrue((canvas.pixels[2:10, 4:12] == 0).all())

    def test_logo_block_without_image_stays_blank(self):
        canvas = Canvas(64, 16)
        logo_block = LayoutBlock(x=4, y=2, width=8, height=8, lines=(), font_size=8, role="logo")
        Rasterizer(FixedGlyphProvider()).paint([logo_block], canvas)
        self.assertTrue((canvas.pixels == 255).all())

    def test_unknown_modes(self):
        with self.assertRaises(ValueError):
            Rasterizer(FixedGlyphProvider(), quantize="ordered")
        with self.assertRaises(ValueError):
            Rasterizer(FixedGlyphProvider(), missing_glyph="tofu")


if __name__ == "__main__":
    unittest.main()
