#!/usr/bin/env python3
"""
Environment-driven pipeline configuration.

Run:
  python -m unittest test_config
"""

from __future__ import annotations

import unittest

from plate_privacy.config import DetectionMethod, PipelineConfig


class PipelineConfigTest(unittest.TestCase):
    def test_defaults(self):
        cfg = PipelineConfig.from_env({})
        self.assertIs(cfg.detection_method, DetectionMethod.LOCAL_MODEL)
        self.assertEqual(cfg.confidence_threshold, 0.25)
        self.assertEqual(cfg.iou_threshold, 0.45)
        self.assertEqual(cfg.max_output_size, (1920, 1080))
        self.assertEqual(cfg.jpeg_quality, 85)
        self.assertEqual(cfg.blur_sigma, 20.0)
        self.assertEqual(cfg.margin_ratio, 0.10)
        self.assertEqual(cfg.min_margin_px, 5)
        self.assertEqual(cfg.min_region_px, 5)
        self.assertEqual(cfg.watermark_text, "AutoExplora.cl")
        self.assertEqual(cfg.remote_regions, ("cl",))
        self.assertFalse(cfg.has_remote_credentials)
        self.assertFalse(cfg.detect_on_original)

    def test_token_selects_remote_api(self):
        cfg = PipelineConfig.from_env({"PLATE_RECOGNIZER_API_TOKEN": " abc "})
        self.assertIs(cfg.detection_method, DetectionMethod.REMOTE_API)
        self.assertEqual(cfg.remote_api_token, "abc")
        self.assertNotIn("abc", repr(cfg))

    def test_overrides(self):
        cfg = PipelineConfig.from_env(
            {
                "PLATE_DETECTION_METHOD": "none",
                "PLATE_CONFIDENCE_THRESHOLD": "0.4",
                "PLATE_BLUR_SIGMA": "35",
                "PLATE_BLUR_EXPAND": "0.2",
                "UPLOAD_IMAGE_MAX_WIDTH": "1280",
                "UPLOAD_IMAGE_MAX_HEIGHT": "720",
                "PLATE_RECOGNIZER_REGIONS": "cl, ar,",
                "PLATE_DETECT_ON_ORIGINAL": "yes",
                "PLATE_DETECTION_REMOTE_FALLBACK": "0",
            }
        )
        self.assertIs(cfg.detection_method, DetectionMethod.NONE)
        self.assertEqual(cfg.confidence_threshold, 0.4)
        self.assertEqual(cfg.blur_sigma, 35.0)
        self.assertEqual(cfg.margin_ratio, 0.2)
        self.assertEqual(cfg.max_output_size, (1280, 720))
        self.assertEqual(cfg.remote_regions, ("cl", "ar"))
        self.assertTrue(cfg.detect_on_original)
        self.assertFalse(cfg.remote_fallback)

    def test_invalid_values_fail_fast(self):
        for env in (
            {"PLATE_CONFIDENCE_THRESHOLD": "1.5"},
            {"PLATE_IOU_THRESHOLD": "abc"},
            {"PLATE_BLUR_SIGMA": "0"},
            {"UPLOAD_IMAGE_JPEG_QUALITY": "101"},
            {"PLATE_DETECTION_METHOD": "tesseract"},
            {"PLATE_DETECT_ON_ORIGINAL": "maybe"},
        ):
            with self.subTest(env=env):
                with self.assertRaises(ValueError):
                    PipelineConfig.from_env(env)

    def test_config_is_immutable(self):
        cfg = PipelineConfig()
        with self.assertRaises(AttributeError):
            cfg.blur_sigma = 1.0  # type: ignore[misc]


if __name__ == "__main__":
    unittest.main(verbosity=2)
