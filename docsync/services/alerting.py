"""Sync run notifications.

Delivery (Slack, Discord, ...) is left to deployments; the default notifier
writes alerts to the application log.
"""

from __future__ import annotations

from typing import Optional, Protocol

from docsync.config.logger import app_logger
from docsync.services.metrics import PerformanceMetrics, SyncMetrics


class SyncNotifier(Protocol):
    async def sync_completed(self, metrics: SyncMetrics, performance: PerformanceMetrics) -> None: ...

    async def sync_failed(self, metrics: SyncMetrics, error: BaseException) -> None: ...

    async def performance_degraded(self, metrics: SyncMetrics, performance: PerformanceMetrics) -> None: ...


class LoggingNotifier:
    """Notifier that only logs. Performance alerts need more than ``min_files`` files."""

    def __init__(self, performance_threshold: float = 0.5, min_files: int = 10) -> None:
        self.performance_threshold = performance_threshold
        self.min_files = min_files

    async def sync_completed(self, metrics: SyncMetrics, performance: PerformanceMetrics) -> None:
        app_logger.info(
            f"Sync completed: {metrics.files_processed} files, "
            f"{metrics.vectors_upserted} vectors upserted, {metrics.vectors_deleted} deleted, "
            f"{len(metrics.errors)} errors"
        )

    async def sync_failed(self, metrics: SyncMetrics, error: BaseException) -> None:
        app_logger.error(f"Sync failed after {metrics.files_processed} files: {error}")

    async def performance_degraded(self, metrics: SyncMetrics, performance: PerformanceMetrics) -> None:
        if metrics.files_processed > self.min_files and performance.files_per_second < self.performance_threshold:
            app_logger.warning(
                f"Sync throughput {performance.files_per_second:.2f} files/s "
                f"is below threshold {self.performance_threshold:.2f} files/s"
            )


class NullNotifier:
    async def sync_completed(self, metrics: SyncMetrics, performance: PerformanceMetrics) -> None:
        return None

    async def sync_failed(self, metrics: SyncMetrics, error: BaseException) -> None:
        return None

    async def performance_degraded(self, metrics: SyncMetrics, performance: PerformanceMetrics) -> None:
        return None


def get_notifier(performance_threshold: Optional[float] = None) -> SyncNotifier:
    return LoggingNotifier(performance_threshold=performance_threshold or 0.5)
