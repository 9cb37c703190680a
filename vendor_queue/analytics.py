from __future__ import annotations

# Daily queue analytics.
#
# AnalyticsRecorder is a QueueService listener: it sees every join and every
# terminal transition and folds them into per-vendor, per-day counters.
# Entries are attributed to the day (UTC) they joined.

import logging
import threading
from collections import Counter
from dataclasses import asdict, dataclass, field
from datetime import date, datetime, timedelta
from typing import Any, TYPE_CHECKING

from .models import EntryStatus, QueueEntry

if TYPE_CHECKING:
    from .appointments import AppointmentBook

logger = logging.getLogger(__name__)

PERIOD_DAYS = {"1d": 1, "7d": 7, "30d": 30}


def efficiency_score(actual_wait: float, estimated_wait: float) -> int:
    """0-100; 100 means the estimate matched reality (or there was none)."""
    if not estimated_wait:
        return 100
    deviation = abs(actual_wait - estimated_wait) / estimated_wait
    return _half_up(max(0.0, 100 - deviation * 100))


@dataclass
class _DayCounters:
    total_queue_entries: int = 0
    served: int = 0
    skipped: int = 0
    left: int = 0
    peak_queue_length: int = 0
    estimated_sum: float = 0.0
    estimated_count: int = 0
    actual_sum: float = 0.0
    actual_count: int = 0
    max_wait: float = 0.0
    served_by_hour: Counter = field(default_factory=Counter)


@dataclass(frozen=True)
class DailyAnalytics:
    vendor_id: str
    date: date
    total_queue_entries: int = 0
    queue_entries_served: int = 0
    queue_entries_skipped: int = 0
    queue_entries_left: int = 0
    peak_queue_length: int = 0
    average_wait_time: int = 0
    average_actual_wait_time: int = 0
    max_wait_time: int = 0
    efficiency_score: int = 100
    peak_hour: int = 0
    peak_hour_count: int = 0
    total_bookings: int = 0
    bookings_completed: int = 0
    bookings_canceled: int = 0
    bookings_no_show: int = 0
    average_service_duration: int = 0

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["date"] = self.date.isoformat()
        return data


class AnalyticsRecorder:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._days: dict[tuple[str, date], _DayCounters] = {}

    # -------------------- listener hooks --------------------

    def entry_joined(self, entry: QueueEntry, waiting_count: int) -> None:
        with self._lock:
            day = self._day(entry)
            day.total_queue_entries += 1
            day.peak_queue_length = max(day.peak_queue_length, waiting_count)

    def entry_completed(self, entry: QueueEntry) -> None:
        with self._lock:
            day = self._day(entry)
            if entry.status is EntryStatus.SERVED:
                day.served += 1
                actual = entry.actual_wait_minutes()
                if actual is not None:
                    day.actual_sum += actual
                    day.actual_count += 1
                    day.max_wait = max(day.max_wait, actual)
                day.served_by_hour[entry.join_time.hour] += 1
            elif entry.status is EntryStatus.SKIPPED:
                day.skipped += 1
            elif entry.status is EntryStatus.LEFT:
                day.left += 1
            else:
                logger.warning("entry %s reported completed while still waiting", entry.id)
                return
            day.estimated_sum += entry.estimated_wait_time
            day.estimated_count += 1

    # -------------------- reports --------------------

    def daily(
        self,
        vendor_id: str,
        day: date,
        *,
        appointments: AppointmentBook | None = None,
        now: datetime | None = None,
    ) -> DailyAnalytics:
        with self._lock:
            c = self._days.get((vendor_id, day)) or _DayCounters()
            avg_est = c.estimated_sum / c.estimated_count if c.estimated_count else 0.0
            avg_actual = c.actual_sum / c.actual_count if c.actual_count else 0.0
            peak = c.served_by_hour.most_common(1)
            record: dict[str, Any] = dict(
                vendor_id=vendor_id,
                date=day,
                total_queue_entries=c.total_queue_entries,
                queue_entries_served=c.served,
                queue_entries_skipped=c.skipped,
                queue_entries_left=c.left,
                peak_queue_length=c.peak_queue_length,
                average_wait_time=_half_up(avg_est),
                average_actual_wait_time=_half_up(avg_actual),
                max_wait_time=_half_up(c.max_wait),
                efficiency_score=efficiency_score(avg_actual, avg_est),
                peak_hour=peak[0][0] if peak else 0,
                peak_hour_count=peak[0][1] if peak else 0,
            )

        if appointments is not None:
            record.update(appointments.counts_on(vendor_id, day, now=now or datetime.now()))
        return DailyAnalytics(**record)

    def recorded_days(self, vendor_id: str) -> list[date]:
        with self._lock:
            return sorted(d for (vid, d) in self._days if vid == vendor_id)

    def vendor_summary(self, vendor_id: str, *, today: date, period: str = "7d") -> dict[str, Any]:
        """Average the daily records of the last 1/7/30 days (unknown period = 7d)."""
        days = PERIOD_DAYS.get(period, 7)
        start = today - timedelta(days=days)
        records = [self.daily(vendor_id, d) for d in self.recorded_days(vendor_id) if start <= d <= today]
        return {
            "period": period,
            "total_days": len(records),
            "summary": summarize(records),
            "daily_data": [
                {
                    "date": r.date.isoformat(),
                    "queue_entries": r.total_queue_entries,
                    "bookings": r.total_bookings,
                    "avg_wait_time": r.average_wait_time,
                    "efficiency_score": r.efficiency_score,
                }
                for r in records
            ],
        }

    def _day(self, entry: QueueEntry) -> _DayCounters:
        key = (entry.vendor_id, entry.join_time.date())
        counters = self._days.get(key)
        if counters is None:
            counters = self._days[key] = _DayCounters()
        return counters


def summarize(records: list[DailyAnalytics]) -> dict[str, int]:
    if not records:
        return {
            "avg_queue_entries": 0,
            "avg_bookings": 0,
            "avg_wait_time": 0,
            "avg_efficiency": 0,
            "total_queue_entries": 0,
            "total_bookings": 0,
        }
    n = len(records)
    queue_entries = sum(r.total_queue_entries for r in records)
    bookings = sum(r.total_bookings for r in records)
    return {
        "avg_queue_entries": _half_up(queue_entries / n),
        "avg_bookings": _half_up(bookings / n),
        "avg_wait_time": _half_up(sum(r.average_wait_time for r in records) / n),
        "avg_efficiency": _half_up(sum(r.efficiency_score for r in records) / n),
        "total_queue_entries": queue_entries,
        "total_bookings": bookings,
    }


def _half_up(value: float) -> int:
    return int(value + 0.5)
