# tests/test_infrastructure.py
"""Tests for infrastructure components"""
import asyncio
import json
import logging
from datetime import datetime, timezone, timedelta

import pytest

from turnflow.core.engine.domain import DialogInstance, DialogStack


class TestMetrics:
    def test_metrics_counter_increment(self):
        from turnflow.infra.metrics import MetricsCollector

        collector = MetricsCollector()
        collector.inc_counter("test_counter", 1)
        collector.inc_counter("test_counter", 2)

        metrics = collector.get_metrics()
        assert metrics["counters"]["test_counter"] == 3

    def test_metrics_histogram_observe(self):
        from turnflow.infra.metrics import MetricsCollector

        collector = MetricsCollector()
        collector.observe_histogram("test_histogram", 0.1)
        collector.observe_histogram("test_histogram", 0.2)
        collector.observe_histogram("test_histogram", 0.5)

        metrics = collector.get_metrics()
        stats = metrics["histograms"]["test_histogram"]
        assert stats["count"] == 3
        assert stats["min"] == 0.1
        assert stats["max"] == 0.5

    def test_metrics_with_labels(self):
        from turnflow.infra.metrics import MetricsCollector

        collector = MetricsCollector()
        collector.inc_counter("dialogs", 1, {"dialog": "menu"})
        collector.inc_counter("dialogs", 2, {"dialog": "signup"})

        metrics = collector.get_metrics()
        assert "dialogs{dialog=menu}" in metrics["counters"]
        assert collector.get_counter("dialogs", dialog="signup") == 2
        assert collector.get_counter("dialogs", dialog="unknown") == 0

    def test_disabled_collector_records_nothing(self):
        from turnflow.infra.metrics import MetricsCollector

        collector = MetricsCollector(enabled=False)
        collector.inc_counter("ignored")
        collector.observe_histogram("ignored_seconds", 1.0)

        assert collector.get_metrics() == {"counters": {}, "histograms": {}}

    def test_timer_observes_duration(self):
        from turnflow.infra.metrics import Timer, get_metrics_collector

        with Timer("block_seconds", kind="test"):
            pass

        stats = get_metrics_collector().get_metrics()["histograms"]["block_seconds{kind=test}"]
        assert stats["count"] == 1
        assert stats["min"] >= 0

    def test_setup_metrics_switches_global_collector(self):
        from turnflow.infra.metrics import get_metrics_collector, inc_counter, setup_metrics

        setup_metrics(False)
        inc_counter("while_off")
        setup_metrics(True)
        inc_counter("while_on")

        collector = get_metrics_collector()
        assert collector.get_counter("while_off") == 0
        assert collector.get_counter("while_on") == 1

    def test_engine_metrics(self):
        from turnflow.infra.metrics import EngineMetrics, get_metrics_collector

        EngineMetrics.turn_processed("waiting")
        EngineMetrics.prompt_retry("email")
        EngineMetrics.prompt_retry("email")
        EngineMetrics.persistence_error("save")

        collector = get_metrics_collector()
        assert collector.get_counter("turns_total", status="waiting") == 1
        assert collector.get_counter("prompt_retries_total", dialog="email") == 2
        assert collector.get_counter("persistence_errors_total", operation="save") == 1


class TestLogging:
    def _record(self, **context):
        record = logging.LogRecord(
            name="turnflow.test",
            level=logging.INFO,
            pathname=__file__,
            lineno=1,
            msg="Turn done: %s",
            args=("waiting",),
            exc_info=None,
        )
        for key, value in context.items():
            setattr(record, key, value)
        return record

    def test_json_formatter_includes_context(self):
        from turnflow.infra.logging_config import JSONFormatter

        line = JSONFormatter().format(self._record(conversation_id="+15550001111", dialog="menu"))
        data = json.loads(line)

        assert data["message"] == "Turn done: waiting"
        assert data["level"] == "INFO"
        assert data["conversation_id"] == "+15550001111"
        assert data["dialog"] == "menu"
        assert "turn_id" not in data

    def test_console_formatter_masks_conversation_id(self):
        from turnflow.infra.logging_config import ConsoleFormatter

        line = ConsoleFormatter().format(self._record(conversation_id="+15550001111", turn_id="m1"))

        assert "+15550001111" not in line
        assert "conv=+155****11" in line
        assert "turn=m1" in line

    def test_mask_short_ids_untouched(self):
        from turnflow.infra.logging_config import mask_conversation_id

        assert mask_conversation_id("abc") == "abc"

    def test_log_context_adds_fields(self, caplog):
        from turnflow.infra.logging_config import LogContext

        log = LogContext(logging.getLogger("turnflow.test"), conversation_id="c1", turn_id="t1")
        with caplog.at_level(logging.INFO, logger="turnflow.test"):
            log.info("hello %s", "there")

        record = caplog.records[-1]
        assert record.getMessage() == "hello there"
        assert record.conversation_id == "c1"
        assert record.turn_id == "t1"
        assert not hasattr(record, "dialog")

    def test_log_context_bind(self, caplog):
        from turnflow.infra.logging_config import LogContext

        base = LogContext(logging.getLogger("turnflow.test"), conversation_id="c1")
        bound = base.bind(dialog="signup", turn_id=None)
        with caplog.at_level(logging.WARNING, logger="turnflow.test"):
            bound.warning("careful")

        assert caplog.records[-1].dialog == "signup"
        assert base.context == {"conversation_id": "c1"}


class TestKeyedLock:
    @pytest.mark.asyncio
    async def test_same_key_is_exclusive(self):
        from turnflow.infra.keyed_lock import KeyedLock

        locks = KeyedLock()
        order = []

        async def worker(label):
            async with locks.hold("c1"):
                order.append(f"in {label}")
                await asyncio.sleep(0.01)
                order.append(f"out {label}")

        await asyncio.gather(worker("a"), worker("b"))

        assert order == ["in a", "out a", "in b", "out b"]
        assert len(locks) == 0

    @pytest.mark.asyncio
    async def test_different_keys_do_not_block(self):
        from turnflow.infra.keyed_lock import KeyedLock

        locks = KeyedLock()
        async with locks.hold("c1"):
            assert locks.locked("c1")
            async with locks.hold("c2"):
                assert locks.locked("c2")
            assert len(locks) == 1
        assert not locks.locked("c1")

    @pytest.mark.asyncio
    async def test_released_on_exception(self):
        from turnflow.infra.keyed_lock import KeyedLock

        locks = KeyedLock()
        with pytest.raises(RuntimeError):
            async with locks.hold("c1"):
                raise RuntimeError("boom")

        assert not locks.locked("c1")
        assert len(locks) == 0


class TestInMemoryStackStore:
    @pytest.mark.asyncio
    async def test_load_missing(self, store):
        assert await store.load("nobody") is None

    @pytest.mark.asyncio
    async def test_loads_are_independent_copies(self, store):
        stack = DialogStack(frames=[DialogInstance(dialog_name="menu", local_values={"n": 1})])
        assert await store.save("c1", stack) is True

        first = await store.load("c1")
        first.top.local_values["n"] = 99
        first.push(DialogInstance(dialog_name="other"))

        second = await store.load("c1")
        assert second.names() == ["menu"]
        assert second.top.local_values == {"n": 1}

    @pytest.mark.asyncio
    async def test_save_stamps_updated_at(self, store):
        await store.save("c1", DialogStack())
        loaded = await store.load("c1")
        assert loaded.updated_at is not None
        assert loaded.updated_at.tzinfo is not None

    @pytest.mark.asyncio
    async def test_delete(self, store):
        await store.save("c1", DialogStack())
        await store.delete("c1")
        await store.delete("c1")
        assert "c1" not in store
        assert len(store) == 0

    @pytest.mark.asyncio
    async def test_cleanup_expired(self, store):
        now = datetime.now(timezone.utc)
        await store.save("old", DialogStack(updated_at=now - timedelta(hours=7)))
        await store.save("new", DialogStack(updated_at=now))

        removed = await store.cleanup_expired(6 * 3600)

        assert removed == 1
        assert "old" not in store
        assert "new" in store


class TestSettings:
    def test_defaults(self):
        from turnflow.config import Settings

        s = Settings(_env_file=None)
        assert s.root_dialog == "main"
        assert s.prompt_max_retries is None
        assert s.max_cascade_steps == 1000
        assert s.stack_ttl_seconds == 21600
        assert s.stack_ttl_enabled

    def test_invalid_app_env_rejected(self):
        from pydantic import ValidationError
        from turnflow.config import Settings

        with pytest.raises(ValidationError):
            Settings(app_env="banana", _env_file=None)

    def test_env_override(self, monkeypatch):
        from turnflow.config import Settings

        monkeypatch.setenv("ROOT_DIALOG", "welcome")
        monkeypatch.setenv("PROMPT_MAX_RETRIES", "3")
        s = Settings(_env_file=None)
        assert s.root_dialog == "welcome"
        assert s.prompt_max_retries == 3

    def test_invalid_values_fail_hard(self):
        from turnflow.config import Settings, validate_or_warn

        s = Settings(_env_file=None, max_cascade_steps=0, stack_ttl_seconds=-1)
        with pytest.raises(ValueError) as exc_info:
            validate_or_warn(s)
        assert "max_cascade_steps" in str(exc_info.value)
        assert "stack_ttl_seconds" in str(exc_info.value)

    def test_risky_prod_values_warn(self):
        from turnflow.config import Settings, validate_or_warn

        s = Settings(_env_file=None, app_env="prod", stack_ttl_seconds=0)
        warnings = validate_or_warn(s)
        assert any("prompt_max_retries" in w for w in warnings)
        assert any("stack_ttl_seconds=0" in w for w in warnings)
        assert any("log_json" in w for w in warnings)

    def test_dev_defaults_are_quiet(self):
        from turnflow.config import Settings, validate_or_warn

        assert validate_or_warn(Settings(_env_file=None)) == []
