"""
Tests for leadcapture/utils/ - structured logging and background tasks.
"""
import asyncio
import json
import logging
import sys

import pytest

from leadcapture.utils import background
from leadcapture.utils.logging import (
    StructuredJsonFormatter,
    configure_structured_logging,
    generate_correlation_id,
    get_correlation_id,
    mask_email,
    set_correlation_id,
)


# ---------------------------------------------------------------------------
# Structured logging
# ---------------------------------------------------------------------------


def _record(msg="hello %s", args=("world",), **extra) -> logging.LogRecord:
    record = logging.LogRecord("leadcapture.test", logging.INFO, __file__, 1, msg, args, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestStructuredJsonFormatter:
    def test_single_line_json(self):
        set_correlation_id("cid-123")
        entry = json.loads(StructuredJsonFormatter().format(_record()))

        assert entry["level"] == "INFO"
        assert entry["module"] == "leadcapture.test"
        assert entry["message"] == "hello world"
        assert entry["correlation_id"] == "cid-123"
        assert entry["timestamp"].endswith("Z")

    def test_known_extras_included(self):
        entry = json.loads(StructuredJsonFormatter().format(
            _record(lead_id="abc", webhook_id="w1", event="lead.won", unrelated="skip")
        ))
        assert entry["lead_id"] == "abc"
        assert entry["webhook_id"] == "w1"
        assert entry["event"] == "lead.won"
        assert "unrelated" not in entry

    def test_exception_included(self):
        try:
            raise ValueError("bad")
        except ValueError:
            record = logging.LogRecord("x", logging.ERROR, __file__, 1, "failed", (), sys.exc_info())

        entry = json.loads(StructuredJsonFormatter().format(record))
        assert "ValueError: bad" in entry["exception"]


class TestCorrelationId:
    def test_generate_is_hex_32(self):
        cid = generate_correlation_id()
        assert len(cid) == 32
        int(cid, 16)

    def test_set_and_get(self):
        set_correlation_id("abc")
        assert get_correlation_id() == "abc"

    async def test_background_task_inherits_correlation_id(self):
        set_correlation_id("request-1")
        seen = []

        async def _job():
            seen.append(get_correlation_id())

        background.spawn(_job(), name="cid-check")
        await background.drain(timeout=1.0)
        assert seen == ["request-1"]


class TestMaskEmail:
    @pytest.mark.parametrize("value,expected", [
        ("jane@example.com", "ja***@example.com"),
        ("j@example.com", "j***@example.com"),
        ("", "***"),
        (None, "***"),
        ("not-an-email", "***"),
    ])
    def test_mask(self, value, expected):
        assert mask_email(value) == expected


def test_configure_structured_logging_replaces_handlers():
    root = logging.getLogger()
    saved_handlers, saved_level = root.handlers[:], root.level
    try:
        configure_structured_logging("debug")
        assert root.level == logging.DEBUG
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, StructuredJsonFormatter)
        assert logging.getLogger("httpx").level == logging.WARNING
    finally:
        for handler in root.handlers[:]:
            root.removeHandler(handler)
        for handler in saved_handlers:
            root.addHandler(handler)
        root.setLevel(saved_level)


# ---------------------------------------------------------------------------
# Background tasks
# ---------------------------------------------------------------------------


class TestBackground:
    async def test_spawn_returns_immediately_and_drain_waits(self):
        done = asyncio.Event()

        async def _job():
            await asyncio.sleep(0.01)
            done.set()

        background.spawn(_job(), name="job")
        assert not done.is_set()
        assert background.pending_count() >= 1

        cancelled = await background.drain(timeout=1.0)

        assert cancelled == 0
        assert done.is_set()
        assert background.pending_count() == 0

    async def test_failure_is_logged_not_raised(self, caplog):
        async def _boom():
            raise RuntimeError("smtp down")

        with caplog.at_level(logging.ERROR, logger="leadcapture.utils.background"):
            background.spawn(_boom(), name="alert")
            await background.drain(timeout=1.0)

        assert "Background task alert failed: smtp down" in caplog.text

    async def test_drain_includes_tasks_spawned_by_tasks(self):
        results = []

        async def _child():
            await asyncio.sleep(0.01)
            results.append("child")

        async def _parent():
            background.spawn(_child(), name="child")
            results.append("parent")

        background.spawn(_parent(), name="parent")
        await background.drain(timeout=1.0)

        assert results == ["parent", "child"]

    async def test_drain_cancels_after_timeout(self):
        async def _slow():
            await asyncio.sleep(30)

        background.spawn(_slow(), name="slow")
        cancelled = await background.drain(timeout=0.05)

        assert cancelled == 1
        assert background.pending_count() == 0
