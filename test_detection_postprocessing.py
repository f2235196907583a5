#!/usr/bin/env python3
"""
Letterbox preprocessing and raw-output decoding for the local plate model.

Run:
  python -m unittest test_detection_postprocessing
"""

from __future__ import annotations

import unittest

import numpy as np

from plate_privacy.errors import InferenceError
from plate_privacy.geometry import DetectionRegion
from plate_privacy.imaging import RasterImage
from plate_privacy.postprocessing import candidates_from_output, decode, to_image_region
from plate_privacy.preprocessing import LETTERBOX_FILL, LetterboxTransform, letterbox, prepare


def _solid(width: int, height: int, rgb=(10, 200, 30)) -> RasterImage:
    return RasterImage.from_array(np.full((height, width, 3), rgb, dtype=np.uint8))


def _raw_output(*boxes) -> np.ndarray:
    """Build a 1x5xN model output from (cx, cy, w, h, conf) tuples."""
    out = np.zeros((1, 5, max(1, len(boxes))), dtype=np.float64)
    for i, box in enumerate(boxes):
        out[0, :, i] = box
    return out


class PrepareTest(unittest.TestCase):
    def test_tensor_layout_is_channel_major(self):
        tensor, transform = prepare(_solid(1280, 720, (255, 0, 51)))

        self.assertEqual(tensor.shape, (1, 3, 640, 640))
        self.assertEqual(tensor.dtype, np.float32)
        self.assertAlmostEqual(float(tensor[0, 0, 320, 320]), 1.0)
        self.assertAlmostEqual(float(tensor[0, 1, 320, 320]), 0.0)
        self.assertAlmostEqual(float(tensor[0, 2, 320, 320]), 0.2, places=5)
        self.assertLessEqual(float(tensor.max()), 1.0)
        self.assertGreaterEqual(float(tensor.min()), 0.0)

        self.assertEqual(transform, LetterboxTransform(scale=0.5, pad_x=0, pad_y=140, original_width=1280, original_height=720))

    def test_padding_uses_gray_fill(self):
        tensor, _ = prepare(_solid(1280, 720))
        gray = LETTERBOX_FILL[0] / 255.0
        # Top and bottom bands are padding.
        for c in range(3):
            self.assertAlmostEqual(float(tensor[0, c, 0, 0]), gray, places=6)
            self.assertAlmostEqual(float(tensor[0, c, 639, 639]), gray, places=6)
            self.assertAlmostEqual(float(tensor[0, c, 139, 320]), gray, places=6)
        self.assertAlmostEqual(float(tensor[0, 1, 140, 320]), 200 / 255.0, places=6)

    def test_odd_padding_floors_top_side(self):
        # 100x97 -> 640x621, 19 px of vertical padding: 9 on top, 10 below.
        canvas, transform = letterbox(_solid(100, 97))
        self.assertEqual(transform.pad_x, 0)
        self.assertEqual(transform.pad_y, 9)
        self.assertEqual(tuple(canvas[8, 320]), LETTERBOX_FILL)
        self.assertEqual(tuple(canvas[9, 320]), (10, 200, 30))
        self.assertEqual(tuple(canvas[629, 320]), (10, 200, 30))
        self.assertEqual(tuple(canvas[630, 320]), LETTERBOX_FILL)

    def test_portrait_pads_horizontally(self):
        _, transform = letterbox(_solid(960, 1280))
        self.assertEqual((transform.scale, transform.pad_x, transform.pad_y), (0.5, 80, 0))


class DecodeTest(unittest.TestCase):
    def setUp(self):
        self.identity = LetterboxTransform(scale=1.0, pad_x=0, pad_y=0, original_width=640, original_height=640)

    def test_confidence_equal_to_threshold_is_rejected(self):
        raw = _raw_output((100, 100, 60, 20, 0.25), (400, 400, 60, 20, 0.2500001))
        regions = decode(raw, self.identity, confidence_threshold=0.25, iou_threshold=0.45)
        self.assertEqual(len(regions), 1)
        self.assertGreater(regions[0].xmin, 300)

    def test_worked_example(self):
        transform = LetterboxTransform(scale=0.5, pad_x=80, pad_y=0, original_width=960, original_height=1280)
        raw = _raw_output((320, 320, 100, 40, 0.9))

        box = candidates_from_output(raw, 0.25)[0]
        # x = (320 - 80) / 0.5 = 480, y = 640, w = 200, h = 80
        self.assertEqual(to_image_region(box, transform), DetectionRegion(380, 600, 580, 680))

        # Margin: max(5, 10% of 200) = 20 px on every side.
        regions = decode(raw, transform, 0.25, 0.45)
        self.assertEqual(regions, [DetectionRegion(360, 580, 600, 700)])

    def test_full_square_maps_to_full_image(self):
        image = _solid(1280, 720)
        _, transform = prepare(image)
        raw = _raw_output((320, 320, 640, 640, 0.9))
        box = candidates_from_output(raw, 0.25)[0]
        self.assertEqual(to_image_region(box, transform), DetectionRegion(0, 0, 1280, 720))
        self.assertEqual(decode(raw, transform), [DetectionRegion(0, 0, 1280, 720)])

    def test_small_regions_are_dropped(self):
        raw = _raw_output(
            (100, 100, 2, 2, 0.9),  # 2x2
            (200, 200, 40, 4, 0.9),  # 4 px tall
            (0, 300, 6, 30, 0.9),  # clamps to 3 px wide at the left edge
            (400, 400, 60, 20, 0.9),  # a real plate
        )
        regions = decode(raw, self.identity, 0.25, 0.45)
        self.assertEqual(len(regions), 1)
        for r in regions:
            self.assertGreaterEqual(r.width, 5)
            self.assertGreaterEqual(r.height, 5)

    def test_margin_has_a_floor(self):
        raw = _raw_output((320, 320, 20, 10, 0.9))
        regions = decode(raw, self.identity, 0.25, 0.45, margin_ratio=0.10, min_margin_px=5)
        # 20 px wide -> 10% is 2 px, floor of 5 px applies.
        self.assertEqual(regions, [DetectionRegion(305, 310, 335, 330)])

    def test_margin_of_edge_plate_uses_its_full_width(self):
        # 200 px plate centred at x=10: clamped to 110 px, margin still 10% of 200.
        raw = _raw_output((10, 320, 200, 40, 0.9))
        self.assertEqual(decode(raw, self.identity, 0.25, 0.45), [DetectionRegion(0, 280, 130, 360)])

    def test_non_finite_candidates_are_dropped(self):
        raw = _raw_output(
            (320, 320, np.inf, 40, 0.9),
            (100, np.nan, 60, 20, 0.9),
            (400, 400, 60, 20, np.inf),
            (500, 500, 60, 20, 0.9),
        )
        self.assertEqual(len(candidates_from_output(raw, 0.25)), 1)
        self.assertEqual(decode(raw, self.identity, 0.25, 0.45), [DetectionRegion(464, 484, 536, 516)])

    def test_duplicates_collapse_to_one_region(self):
        raw = _raw_output((320, 320, 100, 40, 0.8), (321, 320, 100, 40, 0.8), (322, 321, 100, 40, 0.7))
        self.assertEqual(len(decode(raw, self.identity, 0.25, 0.45)), 1)

    def test_regions_stay_inside_the_image(self):
        transform = LetterboxTransform(scale=0.5, pad_x=80, pad_y=0, original_width=960, original_height=1280)
        raw = _raw_output((90, 10, 40, 40, 0.9), (550, 630, 40, 40, 0.9))
        for r in decode(raw, transform):
            self.assertGreaterEqual(r.xmin, 0)
            self.assertGreaterEqual(r.ymin, 0)
            self.assertLessEqual(r.xmax, 960)
            self.assertLessEqual(r.ymax, 1280)
            self.assertLess(r.xmin, r.xmax)
            self.assertLess(r.ymin, r.ymax)

    def test_accepts_unbatched_output(self):
        raw = _raw_output((320, 320, 100, 40, 0.9))[0]
        self.assertEqual(len(decode(raw, self.identity)), 1)

    def test_rejects_unexpected_output_shape(self):
        with self.assertRaises(InferenceError):
            decode(np.zeros((1, 8400, 5)), self.identity)


if __name__ == "__main__":
    unittest.main(verbosity=2)
