from __future__ import annotations

import json
import logging
import unittest

from timeclock.logging_utils import JsonFormatter, request_id_var, resolve_log_level
from timeclock.models import EntryStatus


def _record(**extra: object) -> logging.LogRecord:
    record = logging.LogRecord("timeclock.entries", logging.INFO, __file__, 1, "entry_approved", None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class JsonFormatterTests(unittest.TestCase):
    def test_extra_fields_and_enums_are_serialized(self) -> None:
        payload = json.loads(JsonFormatter(service="TimeclockCore").format(_record(entry_id=5, status=EntryStatus.APPROVED)))

        self.assertEqual(payload["message"], "entry_approved")
        self.assertEqual(payload["service"], "TimeclockCore")
        self.assertEqual(payload["entry_id"], 5)
        self.assertEqual(payload["status"], "approved")

    def test_request_id_comes_from_context(self) -> None:
        token = request_id_var.set("req-42")
        try:
            payload = json.loads(JsonFormatter().format(_record()))
            explicit = json.loads(JsonFormatter().format(_record(request_id="req-override")))
        finally:
            request_id_var.reset(token)

        self.assertEqual(payload["request_id"], "req-42")
        self.assertEqual(explicit["request_id"], "req-override")
        self.assertNotIn("request_id", json.loads(JsonFormatter().format(_record())))

    def test_level_names_resolve(self) -> None:
        self.assertEqual(resolve_log_level("debug"), logging.DEBUG)
        self.assertEqual(resolve_log_level(logging.WARNING), logging.WARNING)
        self.assertEqual(resolve_log_level("chatty"), logging.INFO)


if __name__ == "__main__":
    unittest.main()
