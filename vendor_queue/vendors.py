"""Vendor lookup.

The queue core only needs two facts about a vendor: its capacity parameters
and whether it is open right now. `VendorLookup` is that contract; the
in-memory `VendorDirectory` implements it for the server and for tests.

Vendor file format (JSON list)::

    [
      {
        "vendor_id": "barber-1",
        "name": "Corner Barber",
        "max_concurrent_appointments": 2,
        "average_service_duration": 20,
        "working_hours": {"monday": {"open": "09:00", "close": "18:00"}}
      }
    ]
"""

from __future__ import annotations

import json
import threading
from dataclasses import dataclass, field
from datetime import datetime, time
from pathlib import Path
from typing import Any, Callable, Protocol

from .errors import VendorNotFound
from .ledger import utc_now
from .models import VendorConfig

WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")


@dataclass(frozen=True)
class VendorStatus:
    config: VendorConfig
    is_open_now: bool


class VendorLookup(Protocol):
    def get_vendor_config(self, vendor_id: str) -> VendorStatus:
        """Return config + open flag, or raise VendorNotFound."""
        ...


def _parse_hhmm(value: str) -> time:
    hours, minutes = value.split(":")
    return time(int(hours), int(minutes))


@dataclass(frozen=True)
class OpeningHours:
    open: time
    close: time

    @classmethod
    def from_strings(cls, open_hhmm: str, close_hhmm: str) -> OpeningHours:
        return cls(_parse_hhmm(open_hhmm), _parse_hhmm(close_hhmm))

    def contains(self, t: time) -> bool:
        if self.open <= self.close:
            return self.open <= t < self.close
        # Crosses midnight, e.g. 18:00-02:00.
        return t >= self.open or t < self.close


@dataclass
class VendorProfile:
    vendor_id: str
    name: str = ""
    config: VendorConfig = field(default_factory=VendorConfig)
    # None = no schedule configured, treated as always open.
    working_hours: dict[str, OpeningHours] | None = None
    is_approved: bool = True

    def is_open_at(self, moment: datetime) -> bool:
        if self.working_hours is None:
            return True
        hours = self.working_hours.get(WEEKDAYS[moment.weekday()])
        if hours is None:
            return False
        return hours.contains(moment.time().replace(second=0, microsecond=0))

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> VendorProfile:
        vendor_id = str(data.get("vendor_id", ""))
        if not vendor_id:
            raise ValueError("vendor_id required")

        raw_hours = data.get("working_hours")
        working_hours: dict[str, OpeningHours] | None = None
        if isinstance(raw_hours, dict):
            working_hours = {}
            for day, slot in raw_hours.items():
                day = str(day).lower()
                if day not in WEEKDAYS:
                    raise ValueError(f"unknown weekday {day!r}")
                if not isinstance(slot, dict) or not slot.get("open") or not slot.get("close"):
                    continue  # day listed without hours = closed
                working_hours[day] = OpeningHours.from_strings(slot["open"], slot["close"])

        return cls(
            vendor_id=vendor_id,
            name=str(data.get("name", "")),
            config=VendorConfig.from_dict(data),
            working_hours=working_hours,
            is_approved=bool(data.get("is_approved", True)),
        )


class VendorDirectory:
    """In-memory vendor store implementing `VendorLookup`."""

    def __init__(self, *, clock: Callable[[], datetime] = utc_now) -> None:
        self._lock = threading.Lock()
        self._vendors: dict[str, VendorProfile] = {}
        self._clock = clock

    def add(self, profile: VendorProfile) -> None:
        with self._lock:
            self._vendors[profile.vendor_id] = profile

    def remove(self, vendor_id: str) -> None:
        with self._lock:
            self._vendors.pop(vendor_id, None)

    def get(self, vendor_id: str) -> VendorProfile:
        with self._lock:
            profile = self._vendors.get(vendor_id)
        # Unapproved vendors are invisible to customers.
        if profile is None or not profile.is_approved:
            raise VendorNotFound()
        return profile

    def vendor_ids(self) -> list[str]:
        with self._lock:
            return sorted(vid for vid, p in self._vendors.items() if p.is_approved)

    def get_vendor_config(self, vendor_id: str) -> VendorStatus:
        profile = self.get(vendor_id)
        return VendorStatus(config=profile.config, is_open_now=profile.is_open_at(self._clock()))

    @classmethod
    def from_records(cls, records: list[dict[str, Any]], **kwargs: Any) -> VendorDirectory:
        directory = cls(**kwargs)
        for rec in records:
            directory.add(VendorProfile.from_dict(rec))
        return directory

    @classmethod
    def from_json_file(cls, path: str | Path, **kwargs: Any) -> VendorDirectory:
        records = json.loads(Path(path).read_text(encoding="utf-8"))
        if not isinstance(records, list):
            raise ValueError("vendor file must contain a JSON list")
        return cls.from_records(records, **kwargs)
