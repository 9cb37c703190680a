from __future__ import annotations

# Data leaves shared by the ledger, estimator, service and transports.
#
# Everything that goes over the wire has a `to_dict()` producing plain JSON
# types, so the broadcast payload shape lives next to the type it describes.

import enum
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


class EntryStatus(str, enum.Enum):
    WAITING = "waiting"
    SERVED = "served"
    SKIPPED = "skipped"
    LEFT = "left"

    @property
    def is_terminal(self) -> bool:
        return self is not EntryStatus.WAITING


TERMINAL_STATUSES = frozenset({EntryStatus.SERVED, EntryStatus.SKIPPED, EntryStatus.LEFT})


def _iso(ts: datetime | None) -> str | None:
    return ts.isoformat() if ts is not None else None


@dataclass(frozen=True)
class VendorConfig:
    """Capacity parameters of one vendor (the part the estimator needs)."""

    max_concurrent_appointments: int = 1
    average_service_duration: float = 30.0  # minutes
    estimated_per_person_wait: float = 15.0  # minutes, bootstrap fallback only

    def __post_init__(self) -> None:
        if self.max_concurrent_appointments < 1:
            raise ValueError("max_concurrent_appointments must be >= 1")
        if self.average_service_duration < 0:
            raise ValueError("average_service_duration must be >= 0")
        if self.estimated_per_person_wait < 0:
            raise ValueError("estimated_per_person_wait must be >= 0")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> VendorConfig:
        return cls(
            max_concurrent_appointments=int(data.get("max_concurrent_appointments", 1) or 1),
            average_service_duration=float(data.get("average_service_duration", 30.0)),
            estimated_per_person_wait=float(data.get("estimated_per_person_wait", 15.0)),
        )


@dataclass(frozen=True)
class ServiceSample:
    join_time: datetime
    served_at: datetime

    @property
    def minutes(self) -> float:
        return (self.served_at - self.join_time).total_seconds() / 60.0


@dataclass
class QueueEntry:
    """One customer's claim on a place in a vendor's line.

    Only the ledger mutates instances; everybody else gets copies.
    """

    vendor_id: str
    customer_id: str
    position: int
    join_time: datetime
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    status: EntryStatus = EntryStatus.WAITING
    estimated_wait_time: int = 0  # minutes
    served_at: datetime | None = None
    skipped_at: datetime | None = None
    left_at: datetime | None = None

    @property
    def is_waiting(self) -> bool:
        return self.status is EntryStatus.WAITING

    @property
    def completed_at(self) -> datetime | None:
        return self.served_at or self.skipped_at or self.left_at

    def actual_wait_minutes(self) -> float | None:
        if self.served_at is None:
            return None
        return (self.served_at - self.join_time).total_seconds() / 60.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "vendor_id": self.vendor_id,
            "customer_id": self.customer_id,
            "position": self.position,
            "status": self.status.value,
            "join_time": _iso(self.join_time),
            "estimated_wait_time": self.estimated_wait_time,
            "served_at": _iso(self.served_at),
            "skipped_at": _iso(self.skipped_at),
            "left_at": _iso(self.left_at),
        }


@dataclass(frozen=True)
class QueueStats:
    total_waiting: int
    average_wait_time: int
    served_today: int
    current_throughput: int = 1
    next_available_position: int = 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_waiting": self.total_waiting,
            "average_wait_time": self.average_wait_time,
            "served_today": self.served_today,
            "current_throughput": self.current_throughput,
            "next_available_position": self.next_available_position,
        }


@dataclass(frozen=True)
class QueueSnapshot:
    """Full waiting list + aggregates; subscribers replace their view with it."""

    vendor_id: str
    waiting: list[QueueEntry]
    stats: QueueStats

    def to_dict(self) -> dict[str, Any]:
        return {
            "vendor_id": self.vendor_id,
            "waiting": [e.to_dict() for e in self.waiting],
            "stats": self.stats.to_dict(),
        }


@dataclass(frozen=True)
class JoinResult:
    entry: QueueEntry
    stats: QueueStats
    broadcast_ok: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {
            "entry_id": self.entry.id,
            "position": self.entry.position,
            "estimated_wait_time": self.entry.estimated_wait_time,
            "stats": self.stats.to_dict(),
            "broadcast_ok": self.broadcast_ok,
        }


@dataclass(frozen=True)
class CallNextResult:
    served_entry: QueueEntry
    remaining_waiting: list[QueueEntry]
    stats: QueueStats
    broadcast_ok: bool = True

    @property
    def remaining_count(self) -> int:
        return len(self.remaining_waiting)

    def to_dict(self) -> dict[str, Any]:
        return {
            "served_entry_id": self.served_entry.id,
            "served_customer_id": self.served_entry.customer_id,
            "remaining_count": self.remaining_count,
            "broadcast_ok": self.broadcast_ok,
        }


@dataclass(frozen=True)
class StatusUpdateResult:
    entry: QueueEntry
    snapshot: QueueSnapshot
    broadcast_ok: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {
            "entry": self.entry.to_dict(),
            "snapshot": self.snapshot.to_dict(),
            "broadcast_ok": self.broadcast_ok,
        }
