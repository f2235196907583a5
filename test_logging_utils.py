#!/usr/bin/env python3
"""
JSON log formatting and secret redaction.

Run:
  python -m unittest test_logging_utils
"""

from __future__ import annotations

import json
import logging
import unittest

from plate_privacy.logging_utils import JsonLogFormatter, redact_secrets


class LoggingUtilsTest(unittest.TestCase):
    def _record(self, msg, *args, **extra):
        record = logging.LogRecord("plate_privacy.test", logging.WARNING, __file__, 1, msg, args, None)
        for k, v in extra.items():
            setattr(record, k, v)
        return record

    def test_redacts_tokens(self):
        self.assertEqual(redact_secrets("Authorization: Token abc123"), "Authorization: Token REDACTED")
        self.assertEqual(redact_secrets("GET /x?api_key=abc&y=1"), "GET /x?api_key=REDACTED&y=1")
        self.assertEqual(redact_secrets(""), "")

    def test_json_payload_includes_extra_fields(self):
        record = self._record("Processed %d plate(s)", 2, event="image_processed", plates=2, region=object())
        payload = json.loads(JsonLogFormatter().format(record))

        self.assertEqual(payload["level"], "WARNING")
        self.assertEqual(payload["logger"], "plate_privacy.test")
        self.assertEqual(payload["msg"], "Processed 2 plate(s)")
        self.assertEqual(payload["event"], "image_processed")
        self.assertEqual(payload["plates"], 2)
        self.assertIsInstance(payload["region"], str)
        self.assertNotIn("args", payload)

    def test_json_message_is_redacted(self):
        record = self._record("request failed: %s", "Token s3cr3t rejected")
        payload = json.loads(JsonLogFormatter().format(record))
        self.assertNotIn("s3cr3t", payload["msg"])


if __name__ == "__main__":
    unittest.main(verbosity=2)
