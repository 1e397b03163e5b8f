"""Tests for logging setup."""

import json
import logging

from bacnet_signatures.logging_config import JSONFormatter, setup_logging


class TestJSONFormatter:
    def test_formats_one_json_object(self):
        record = logging.LogRecord(
            name="bacnet_signatures.mapping.manager",
            level=logging.INFO,
            pathname=__file__,
            lineno=1,
            msg="Assigned equipment %s to signature %s",
            args=("vav-2.9", "sig_1"),
            exc_info=None,
        )
        entry = json.loads(JSONFormatter().format(record))
        assert entry["level"] == "INFO"
        assert entry["logger"] == "bacnet_signatures.mapping.manager"
        assert entry["message"] == "Assigned equipment vav-2.9 to signature sig_1"
        assert "exception" not in entry


class TestSetupLogging:
    def setup_method(self):
        self.root = logging.getLogger()
        self.saved = (self.root.level, list(self.root.handlers))

    def teardown_method(self):
        self.root.setLevel(self.saved[0])
        self.root.handlers = self.saved[1]

    def test_json_output(self):
        setup_logging("DEBUG", json_output=True)
        assert self.root.level == logging.DEBUG
        assert len(self.root.handlers) == 1
        assert isinstance(self.root.handlers[0].formatter, JSONFormatter)

    def test_unknown_level_falls_back_to_info(self):
        setup_logging("chatty")
        assert self.root.level == logging.INFO
        assert not isinstance(self.root.handlers[0].formatter, JSONFormatter)
