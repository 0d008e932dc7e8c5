"""Unit tests for cost tracking, run metrics, alerting and error helpers."""

from datetime import datetime, timezone

import pytest

from docsync.exceptions import (
    EmbeddingError,
    ErrorCollector,
    SourceError,
    SyncError,
    UnknownError,
    normalize_error,
)
from docsync.models.document import ChangeKind
from docsync.services.alerting import LoggingNotifier
from docsync.services.cost_tracker import CostTracker
from docsync.services.metrics import MetricsCollector
from docsync.utils.cron import next_cron_execution


class TestCostTracker:
    """Test cases for CostTracker."""

    def test_embedding_cost_arithmetic(self, clock):
        tracker = CostTracker(clock=clock.ms)

        tracker.record_embedding_usage(1000)
        tracker.record_embedding_usage(500)

        snapshot = tracker.snapshot()
        assert snapshot.embedding.total_tokens == 1500
        assert snapshot.embedding.embedding_calls == 2
        assert snapshot.embedding.total_cost == pytest.approx(0.00003)

    def test_source_queries_window(self, clock):
        tracker = CostTracker(clock=clock.ms)

        tracker.record_source_query()
        tracker.record_source_query()
        clock.advance(100_000)
        tracker.record_source_query()

        snapshot = tracker.snapshot()
        assert snapshot.source.total_queries == 3
        assert snapshot.source.queries_in_window == 1

    def test_rate_limit_warning_above_80_percent(self, clock):
        tracker = CostTracker(clock=clock.ms)

        for _ in range(800):
            tracker.record_source_query()
        assert not tracker.is_source_rate_limit_approaching()

        tracker.record_source_query()
        assert tracker.is_source_rate_limit_approaching()

    def test_delay_when_quota_exhausted(self, clock):
        tracker = CostTracker(clock=clock.ms)
        assert tracker.source_rate_limit_delay_ms() == 0

        for _ in range(1000):
            tracker.record_source_query()
        clock.advance(40_000)

        assert tracker.source_rate_limit_delay_ms() == 60_000

    def test_breakdown_and_reset(self, clock):
        tracker = CostTracker(clock=clock.ms)
        tracker.record_embedding_usage(2000)
        tracker.record_vector_store_operation()

        breakdown = tracker.cost_breakdown()
        assert breakdown["embedding"]["tokens"] == 2000
        assert breakdown["vector_store"]["operations"] == 1
        assert breakdown["total"]["embedding_cost"] == pytest.approx(0.00004)
        assert "2,000 tokens" in tracker.summary()

        tracker.reset()
        assert tracker.snapshot().embedding.total_tokens == 0


class TestMetricsCollector:
    """Test cases for MetricsCollector."""

    def test_counters_and_performance(self, clock):
        collector = MetricsCollector(clock=clock.ms)
        collector.start()

        collector.record_file_processed(ChangeKind.ADDED)
        collector.record_file_processed(ChangeKind.MODIFIED)
        collector.record_file_processed(ChangeKind.DELETED)
        collector.record_chunks_processed(10, reused=4)
        collector.record_embedding_api_call()
        collector.record_vectors_upserted(10)
        clock.advance(2000)
        collector.end(success=True)

        metrics = collector.metrics
        assert metrics.files_processed == 3
        assert (metrics.files_added, metrics.files_modified, metrics.files_deleted) == (1, 1, 1)
        assert metrics.chunks_reused == 4
        assert metrics.duration_ms == 2000
        assert metrics.success is True

        performance = collector.performance()
        assert performance.files_per_second == pytest.approx(1.5)
        assert performance.chunks_per_second == pytest.approx(5.0)
        assert "Sync succeeded" in collector.summary()

    def test_record_error_normalizes_values(self, clock):
        collector = MetricsCollector(clock=clock.ms)

        collector.record_error("plain string", {"document_id": "d1"})
        collector.record_error(SourceError("drive down"))

        assert [e["error_message"] for e in collector.metrics.errors] == ["plain string", "drive down"]
        assert collector.metrics.errors[0]["error_type"] == "UnknownError"
        assert collector.metrics.errors[1]["error_type"] == "SourceError"


class TestLoggingNotifier:
    """Test cases for LoggingNotifier."""

    @pytest.mark.asyncio
    async def test_hooks_only_log(self, clock):
        collector = MetricsCollector(clock=clock.ms)
        for _ in range(5):
            collector.record_file_processed(ChangeKind.ADDED)
        clock.advance(60_000)
        collector.end(success=True)

        notifier = LoggingNotifier(performance_threshold=0.5)
        await notifier.performance_degraded(collector.metrics, collector.performance())
        await notifier.sync_completed(collector.metrics, collector.performance())
        await notifier.sync_failed(collector.metrics, RuntimeError("boom"))


class TestErrors:
    """Test cases for error types and ErrorCollector."""

    def test_codes_and_context(self):
        error = EmbeddingError("bad dims", {"expected": 8, "actual": 4})

        assert isinstance(error, SyncError)
        assert error.to_dict()["code"] == "EMBEDDING_ERROR"
        assert error.context == {"expected": 8, "actual": 4}

    @pytest.mark.parametrize(
        "value,message",
        [
            ("text", "text"),
            ({"message": "from dict"}, "from dict"),
            (None, "Unknown error"),
        ],
    )
    def test_normalize_error(self, value, message):
        assert str(normalize_error(value)) == message

    def test_normalize_error_keeps_exceptions(self):
        error = ValueError("x")
        assert normalize_error(error) is error

    def test_normalized_values_carry_a_code(self):
        error = normalize_error({"status": 503})

        assert isinstance(error, UnknownError)
        assert error.code == "UNKNOWN_ERROR"
        assert error.context == {"original_type": "dict"}
        assert error.to_dict()["message"] == "Unknown error: {'status': 503}"

    def test_collector_summary(self):
        collector = ErrorCollector()
        collector.add_error(SourceError("a"), {"document_id": "1"})
        collector.add_error("b")

        summary = collector.summary()
        assert summary["total_errors"] == 2
        assert summary["errors"][0]["code"] == "SOURCE_ERROR"
        assert summary["errors"][0]["context"] == {"document_id": "1"}
        assert summary["errors"][1]["code"] == "UNKNOWN_ERROR"
        assert collector.messages() == ["a", "b"]

        collector.clear()
        assert not collector.has_errors()


class TestCron:
    """Test cases for next_cron_execution."""

    def test_later_today(self):
        now = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)
        assert next_cron_execution("0 17 * * *", now) == "2024-03-01T17:00:00Z"

    def test_rolls_over_to_tomorrow(self):
        now = datetime(2024, 3, 1, 17, 0, tzinfo=timezone.utc)
        assert next_cron_execution("0 17 * * *", now) == "2024-03-02T17:00:00Z"

    @pytest.mark.parametrize("schedule", ["", "0 17 * *", "x 17 * * *", "0 24 * * *"])
    def test_invalid_schedule(self, schedule):
        with pytest.raises(ValueError):
            next_cron_execution(schedule)
