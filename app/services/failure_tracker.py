"""Consecutive ingestion failure tracking with an operator alert threshold.

Counts consecutive failed cycles per key (one key per metal, e.g.
``ingest_gold``). Once a key reaches ALERT_THRESHOLD the caller raises an
operator alert exactly once; the streak and the alert flag reset on the
next success.

Exports:
    FailureTracker  -- class-level tracker (no instantiation needed)
"""

from __future__ import annotations


class FailureTracker:
    """Track consecutive failures per key and flag when an alert is due.

    State lives on the class: the scheduler runs in-process with a
    MemoryJobStore, so there is one tracker per application.

    Usage:
        FailureTracker.record_failure("ingest_gold")
        if FailureTracker.should_alert("ingest_gold"):
            logger.critical(...)

        FailureTracker.record_success("ingest_gold")
    """

    ALERT_THRESHOLD: int = 3
    _counters: dict[str, int] = {}
    _alerted: dict[str, bool] = {}

    @classmethod
    def record_failure(cls, key: str) -> int:
        """Record a failure and return the consecutive count."""
        cls._counters[key] = cls._counters.get(key, 0) + 1
        return cls._counters[key]

    @classmethod
    def record_success(cls, key: str) -> None:
        cls._counters[key] = 0
        cls._alerted[key] = False

    @classmethod
    def should_alert(cls, key: str) -> bool:
        """True exactly once per streak, when the count reaches ALERT_THRESHOLD."""
        if cls._counters.get(key, 0) >= cls.ALERT_THRESHOLD and not cls._alerted.get(key, False):
            cls._alerted[key] = True
            return True
        return False

    @classmethod
    def get_count(cls, key: str) -> int:
        return cls._counters.get(key, 0)

    @classmethod
    def counts(cls) -> dict[str, int]:
        """Copy of every tracked key's current streak."""
        return dict(cls._counters)

    @classmethod
    def reset_all(cls) -> None:
        """Reset all counters and alert flags. Used by tests."""
        cls._counters.clear()
        cls._alerted.clear()
