"""
Per-source health tracking.

Classification from the failure streak:
    unknown   no success yet and no failures
    healthy   at least one success, no failures since
    degraded  0 < consecutive_fails < threshold
    down      consecutive_fails >= threshold

Records live for the process lifetime and are never persisted.
"""
from __future__ import annotations

import time
from typing import Callable, Iterable, Optional

from shared.models.domain import SourceHealth, SourceHealthReport
from shared.models.enums import SourceStatus
from shared.utils.logging import get_logger
from shared.utils.metrics import SOURCE_CONSECUTIVE_FAILS

logger = get_logger(__name__)

DEFAULT_DOWN_THRESHOLD = 3


def _ago(now: float, ts: Optional[float]) -> Optional[str]:
    if ts is None:
        return None
    return f"{round(now - ts)}s ago"


class SourceHealthTracker:
    """In-memory success/failure streaks per source."""

    def __init__(
        self,
        sources: Iterable[str] = (),
        down_threshold: int = DEFAULT_DOWN_THRESHOLD,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._down_threshold = down_threshold
        self._clock = clock
        self._records: dict[str, SourceHealth] = {name: SourceHealth() for name in sources}

    @property
    def sources(self) -> list[str]:
        return list(self._records)

    def _record(self, source: str) -> SourceHealth:
        record = self._records.get(source)
        if record is None:
            record = self._records[source] = SourceHealth()
        return record

    def snapshot(self, source: str) -> SourceHealth:
        return self._record(source).model_copy()

    def record_success(self, source: str) -> None:
        record = self._record(source)
        before = self._classify_record(record)
        record.last_success_at = self._clock()
        record.consecutive_fails = 0
        record.last_error = None
        SOURCE_CONSECUTIVE_FAILS.labels(source=source).set(0)
        self._log_transition(source, before, self._classify_record(record))

    def record_failure(self, source: str, err: BaseException | str) -> None:
        record = self._record(source)
        before = self._classify_record(record)
        record.last_error_at = self._clock()
        record.last_error = str(err)
        record.consecutive_fails += 1
        SOURCE_CONSECUTIVE_FAILS.labels(source=source).set(record.consecutive_fails)
        logger.error(
            "source_fetch_failed",
            source=source,
            error=record.last_error,
            consecutive_fails=record.consecutive_fails,
        )
        self._log_transition(source, before, self._classify_record(record))

    def classify(self, source: str) -> SourceStatus:
        record = self._records.get(source)
        if record is None:
            return SourceStatus.UNKNOWN
        return self._classify_record(record)

    def _classify_record(self, record: SourceHealth) -> SourceStatus:
        if record.consecutive_fails >= self._down_threshold:
            return SourceStatus.DOWN
        if record.consecutive_fails > 0:
            return SourceStatus.DEGRADED
        if record.last_success_at is not None:
            return SourceStatus.HEALTHY
        return SourceStatus.UNKNOWN

    def _log_transition(self, source: str, before: SourceStatus, after: SourceStatus) -> None:
        if before != after:
            logger.info(
                "source_health_changed",
                source=source,
                previous=before.value,
                current=after.value,
            )

    def report(self, now: Optional[float] = None) -> dict[str, SourceHealthReport]:
        """Per-source status with relative timestamps, for GET /health."""
        now = self._clock() if now is None else now
        return {
            name: SourceHealthReport(
                status=self._classify_record(record),
                last_success_ago=_ago(now, record.last_success_at),
                last_error_ago=_ago(now, record.last_error_at),
                last_error=record.last_error,
                consecutive_fails=record.consecutive_fails,
            )
            for name, record in self._records.items()
        }
