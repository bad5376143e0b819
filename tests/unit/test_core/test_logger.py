# SPDX-License-Identifier: LGPL-3.0-or-later
import json
import logging

import pytest

from xen2ovf.core.logger import TRACE, EmojiFormatter, JsonFormatter, Log, LogStyle


def _record(msg, level=logging.INFO, ctx=None):
    rec = logging.LogRecord("xen2ovf", level, __file__, 10, msg, (), None)
    if ctx is not None:
        rec.ctx = ctx
    return rec


@pytest.mark.unit
class TestLevels:
    def test_level_from_flags(self):
        assert Log._level_from_flags(0, 0) == logging.INFO
        assert Log._level_from_flags(2, 0) == logging.DEBUG
        assert Log._level_from_flags(3, 0) == TRACE
        assert Log._level_from_flags(3, 1) == logging.WARNING
        assert Log._level_from_flags(0, 2) == logging.ERROR

    def test_setup_replaces_handlers(self, tmp_path):
        log_file = tmp_path / "run.log"
        logger = Log.setup(0, str(log_file), logger_name="xen2ovf.test-setup")
        logger = Log.setup(0, str(log_file), logger_name="xen2ovf.test-setup")
        assert len(logger.handlers) == 2
        logger.info("hello file")
        for h in logger.handlers:
            h.flush()
        assert "hello file" in log_file.read_text(encoding="utf-8")


@pytest.mark.unit
class TestFormatters:
    def test_emoji_formatter_appends_context(self):
        fmt = EmojiFormatter(LogStyle(color=False))
        line = fmt.format(_record("copying", ctx={"vm": "alpha", "disk": 0}))
        assert "copying" in line
        assert line.endswith("disk=0 vm=alpha")

    def test_json_formatter_is_one_object(self):
        fmt = JsonFormatter()
        obj = json.loads(fmt.format(_record("saved", ctx={"file": "a.ovf"})))
        assert obj["msg"] == "saved"
        assert obj["level"] == "INFO"
        assert obj["ctx"] == {"file": "a.ovf"}
        assert obj["ts"].endswith("+00:00")
