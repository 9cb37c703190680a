from __future__ import annotations

# The ledger is the single owner of one vendor's queue entries.
#
# It keeps three views:
# - `_entries`: every entry ever created (history, never deleted)
# - `_waiting`: waiting entries in FIFO order; index i holds position i+1
# - `_served`: served entries in the order they were served (newest last)
#
# All methods take `self.lock` (re-entrant) so QueueService can hold the same
# lock across a mutation and the follow-up recompute.

import logging
import threading
from collections import Counter
from dataclasses import replace
from datetime import date, datetime, timezone
from typing import Callable

from .errors import DuplicateEntry, InvalidTransition, LedgerIntegrityError, NotFound
from .models import EntryStatus, QueueEntry, ServiceSample

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class QueueLedger:
    """Ordered waiting set + history for one vendor."""

    def __init__(self, vendor_id: str, *, clock: Clock = utc_now) -> None:
        self.vendor_id = vendor_id
        self.lock = threading.RLock()
        self._clock = clock
        self._entries: dict[str, QueueEntry] = {}
        self._waiting: list[QueueEntry] = []
        self._waiting_by_customer: dict[str, QueueEntry] = {}
        self._served: list[QueueEntry] = []
        self._served_per_day: Counter[date] = Counter()

    # -------------------- mutations --------------------

    def append(self, customer_id: str) -> QueueEntry:
        """Add `customer_id` at the back of the line."""
        with self.lock:
            if customer_id in self._waiting_by_customer:
                raise DuplicateEntry()

            position = self._waiting[-1].position + 1 if self._waiting else 1
            entry = QueueEntry(
                vendor_id=self.vendor_id,
                customer_id=customer_id,
                position=position,
                join_time=self._clock(),
            )
            self._entries[entry.id] = entry
            self._waiting.append(entry)
            self._waiting_by_customer[customer_id] = entry
            self._verify_positions()

            logger.debug("vendor=%s customer=%s joined at position %d", self.vendor_id, customer_id, position)
            return replace(entry)

    def remove(self, entry_id: str, terminal_status: EntryStatus) -> QueueEntry:
        """Move a waiting entry to a terminal status and close the gap it leaves."""
        status = EntryStatus(terminal_status)
        if not status.is_terminal:
            raise InvalidTransition(f"{status.value} is not a terminal status")

        with self.lock:
            entry = self._entries.get(entry_id)
            if entry is None:
                raise NotFound()
            if not entry.is_waiting:
                raise InvalidTransition()

            now = self._clock()
            entry.status = status
            if status is EntryStatus.SERVED:
                entry.served_at = now
                self._served.append(entry)
                self._served_per_day[now.date()] += 1
            elif status is EntryStatus.SKIPPED:
                entry.skipped_at = now
            else:
                entry.left_at = now

            # entry.position stays frozen as the historical record.
            self._waiting.remove(entry)
            del self._waiting_by_customer[entry.customer_id]
            for other in self._waiting:
                if other.position > entry.position:
                    other.position -= 1
            self._verify_positions()

            logger.debug(
                "vendor=%s entry=%s %s from position %d",
                self.vendor_id,
                entry_id,
                status.value,
                entry.position,
            )
            return replace(entry)

    def set_estimate(self, entry_id: str, minutes: int) -> None:
        with self.lock:
            entry = self._entries.get(entry_id)
            if entry is None:
                raise NotFound()
            if entry.is_waiting:
                entry.estimated_wait_time = minutes

    # -------------------- reads --------------------

    def get(self, entry_id: str) -> QueueEntry:
        with self.lock:
            entry = self._entries.get(entry_id)
            if entry is None:
                raise NotFound()
            return replace(entry)

    def list_waiting(self) -> list[QueueEntry]:
        """Waiting entries by ascending position."""
        with self.lock:
            return [replace(e) for e in self._waiting]

    def waiting_count(self) -> int:
        with self.lock:
            return len(self._waiting)

    def peek_next(self) -> QueueEntry | None:
        with self.lock:
            return replace(self._waiting[0]) if self._waiting else None

    def waiting_entry_for(self, customer_id: str) -> QueueEntry | None:
        with self.lock:
            entry = self._waiting_by_customer.get(customer_id)
            return replace(entry) if entry is not None else None

    def history(self) -> list[QueueEntry]:
        """All entries in creation order, terminal ones included."""
        with self.lock:
            return [replace(e) for e in self._entries.values()]

    def recent_served_samples(self, limit: int = 5) -> list[ServiceSample]:
        """Join/serve times of the most recently served entries, newest first."""
        if limit <= 0:
            return []
        with self.lock:
            recent = self._served[-limit:]
            return [
                ServiceSample(join_time=e.join_time, served_at=e.served_at)
                for e in reversed(recent)
                if e.served_at is not None
            ]

    def served_on(self, day: date) -> int:
        with self.lock:
            return self._served_per_day[day]

    def today(self) -> date:
        return self._clock().date()

    # -------------------- invariants --------------------

    def _verify_positions(self) -> None:
        positions = [e.position for e in self._waiting]
        if positions != list(range(1, len(positions) + 1)):
            raise LedgerIntegrityError(
                f"vendor {self.vendor_id}: waiting positions {positions} are not 1..{len(positions)}"
            )
