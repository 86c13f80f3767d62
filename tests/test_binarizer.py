from __future__ import annotations

import unittest

import numpy as np

from sheet_omr.tools.binarizer import BinarizeParams, binarize, to_gray


class TestBinarize(unittest.TestCase):
    def test_dark_mark_becomes_foreground(self) -> None:
        frame = np.full((200, 200, 3), 255, dtype=np.uint8)
        frame[90:100, 90:100] = 20
        mask = binarize(frame)
        self.assertEqual(mask.shape, (200, 200))
        self.assertEqual(mask.dtype, np.uint8)
        self.assertTrue(mask[92:98, 92:98].any())
        self.assertFalse(mask[:60, :60].any())
        self.assertFalse(mask[150:, 150:].any())

    def test_uniform_paper_has_no_foreground(self) -> None:
        mask = binarize(np.full((120, 160, 3), 230, dtype=np.uint8))
        self.assertEqual(int(mask.sum()), 0)

    def test_lighting_gradient_is_not_a_mark(self) -> None:
        ramp = np.tile(np.linspace(60, 250, 400).astype(np.uint8), (300, 1))
        mask = binarize(ramp, BinarizeParams(use_clahe=False))
        self.assertLess(np.count_nonzero(mask) / mask.size, 0.01)

    def test_mark_in_shadow_survives(self) -> None:
        ramp = np.tile(np.linspace(60, 250, 400).astype(np.uint8), (300, 1))
        ramp[140:160, 40:60] = 15  # the shadowed end of the page
        mask = binarize(ramp, BinarizeParams(use_clahe=False))
        self.assertTrue(mask[142:158, 42:58].any())

    def test_accepts_grayscale_and_bgra(self) -> None:
        gray = np.full((64, 64), 200, dtype=np.uint8)
        bgra = np.full((64, 64, 4), 200, dtype=np.uint8)
        self.assertEqual(binarize(gray).shape, (64, 64))
        self.assertEqual(to_gray(bgra).shape, (64, 64))

    def test_block_size_must_be_odd(self) -> None:
        with self.assertRaises(ValueError):
            BinarizeParams(block_size=30)
        with self.assertRaises(ValueError):
            BinarizeParams(block_size=1)


if __name__ == "__main__":
    unittest.main()
