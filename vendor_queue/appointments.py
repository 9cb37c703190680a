from __future__ import annotations

# Fixed time-slot bookings.
#
# Appointments share the vendor entity with the live queue but nothing else:
# conflicts are a plain overlap check between booked slots of one vendor on
# one day.

import enum
import logging
import threading
import uuid
from dataclasses import dataclass, field, replace
from datetime import date, datetime, time
from typing import Any

from .errors import InvalidTransition, NotAuthorized, NotFound, SlotUnavailable
from .vendors import VendorLookup

logger = logging.getLogger(__name__)


class AppointmentStatus(str, enum.Enum):
    BOOKED = "booked"
    CANCELED = "canceled"
    COMPLETED = "completed"


@dataclass
class Appointment:
    vendor_id: str
    customer_id: str
    service_id: str
    day: date
    start: time
    end: time
    service_name: str = ""
    notes: str = ""
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    status: AppointmentStatus = AppointmentStatus.BOOKED

    @property
    def duration_minutes(self) -> int:
        start = datetime.combine(self.day, self.start)
        end = datetime.combine(self.day, self.end)
        return int((end - start).total_seconds() // 60)

    def overlaps(self, day: date, start: time, end: time) -> bool:
        return self.day == day and self.start < end and start < self.end

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "vendor_id": self.vendor_id,
            "customer_id": self.customer_id,
            "service_id": self.service_id,
            "service_name": self.service_name,
            "date": self.day.isoformat(),
            "time_slot": {"start": self.start.strftime("%H:%M"), "end": self.end.strftime("%H:%M")},
            "status": self.status.value,
            "notes": self.notes,
        }


class AppointmentBook:
    """In-memory appointment store with per-vendor overlap checking."""

    def __init__(self, *, vendors: VendorLookup) -> None:
        self.vendors = vendors
        self._lock = threading.Lock()
        self._appointments: dict[str, Appointment] = {}

    def book(
        self,
        *,
        vendor_id: str,
        customer_id: str,
        service_id: str,
        day: date,
        start: time,
        end: time,
        service_name: str = "",
        notes: str = "",
    ) -> Appointment:
        if end <= start:
            raise ValueError("appointment end must be after start")
        # Raises VendorNotFound for unknown or unapproved vendors.
        self.vendors.get_vendor_config(vendor_id)

        with self._lock:
            for other in self._appointments.values():
                if (
                    other.vendor_id == vendor_id
                    and other.status is AppointmentStatus.BOOKED
                    and other.overlaps(day, start, end)
                ):
                    raise SlotUnavailable()

            appt = Appointment(
                vendor_id=vendor_id,
                customer_id=customer_id,
                service_id=service_id,
                day=day,
                start=start,
                end=end,
                service_name=service_name,
                notes=notes,
            )
            self._appointments[appt.id] = appt

        logger.info("vendor=%s booked %s %s-%s for customer=%s", vendor_id, day, start, end, customer_id)
        return replace(appt)

    def cancel(
        self,
        appointment_id: str,
        *,
        customer_id: str | None = None,
        vendor_id: str | None = None,
    ) -> Appointment:
        """Cancel a booking; a customer or vendor may only cancel their own."""
        with self._lock:
            appt = self._appointments.get(appointment_id)
            if appt is None:
                raise NotFound("Appointment not found")
            if customer_id is not None and appt.customer_id != customer_id:
                raise NotAuthorized()
            if vendor_id is not None and appt.vendor_id != vendor_id:
                raise NotAuthorized()
            if appt.status is not AppointmentStatus.BOOKED:
                raise InvalidTransition("Appointment is not booked")
            appt.status = AppointmentStatus.CANCELED
            return replace(appt)

    def complete(self, appointment_id: str, *, vendor_id: str | None = None) -> Appointment:
        with self._lock:
            appt = self._appointments.get(appointment_id)
            if appt is None:
                raise NotFound("Appointment not found")
            if vendor_id is not None and appt.vendor_id != vendor_id:
                raise NotAuthorized()
            if appt.status is not AppointmentStatus.BOOKED:
                raise InvalidTransition("Appointment is not booked")
            appt.status = AppointmentStatus.COMPLETED
            return replace(appt)

    def for_customer(self, customer_id: str) -> list[Appointment]:
        with self._lock:
            found = [replace(a) for a in self._appointments.values() if a.customer_id == customer_id]
        return sorted(found, key=lambda a: (a.day, a.start), reverse=True)

    def for_vendor(self, vendor_id: str) -> list[Appointment]:
        with self._lock:
            found = [replace(a) for a in self._appointments.values() if a.vendor_id == vendor_id]
        return sorted(found, key=lambda a: (a.day, a.start), reverse=True)

    def counts_on(self, vendor_id: str, day: date, *, now: datetime) -> dict[str, Any]:
        """Booking counters for one vendor-day, as used by daily analytics.

        A booking still `booked` after its slot ended counts as a no-show.
        """
        appts = [a for a in self.for_vendor(vendor_id) if a.day == day]
        durations = [a.duration_minutes for a in appts]
        now_naive = now.replace(tzinfo=None)
        return {
            "total_bookings": len(appts),
            "bookings_completed": sum(1 for a in appts if a.status is AppointmentStatus.COMPLETED),
            "bookings_canceled": sum(1 for a in appts if a.status is AppointmentStatus.CANCELED),
            "bookings_no_show": sum(
                1
                for a in appts
                if a.status is AppointmentStatus.BOOKED and datetime.combine(a.day, a.end) < now_naive
            ),
            "average_service_duration": int(sum(durations) / len(durations) + 0.5) if durations else 0,
        }
