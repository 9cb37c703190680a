from datetime import date, datetime, time

import pytest

from vendor_queue.appointments import AppointmentBook, AppointmentStatus
from vendor_queue.errors import InvalidTransition, NotAuthorized, SlotUnavailable, VendorNotFound

DAY = date(2026, 3, 2)


def book(appts, customer="A", start=(10, 0), end=(10, 30), vendor="V", day=DAY):
    return appts.book(
        vendor_id=vendor,
        customer_id=customer,
        service_id="haircut",
        day=day,
        start=time(*start),
        end=time(*end),
    )


def test_overlapping_slot_rejected(directory):
    appts = AppointmentBook(vendors=directory)
    book(appts)

    with pytest.raises(SlotUnavailable):
        book(appts, customer="B", start=(10, 15), end=(10, 45))

    # Touching slots, other vendors and other days are fine.
    book(appts, customer="B", start=(10, 30), end=(11, 0))
    book(appts, customer="C", vendor="W")
    book(appts, customer="D", day=date(2026, 3, 3))
    assert len(appts.for_vendor("V")) == 3


def test_canceled_slot_can_be_rebooked(directory):
    appts = AppointmentBook(vendors=directory)
    first = book(appts)
    appts.cancel(first.id, customer_id="A")
    second = book(appts, customer="B")
    assert second.status is AppointmentStatus.BOOKED


def test_cancel_checks_ownership(directory):
    appts = AppointmentBook(vendors=directory)
    appt = book(appts)

    with pytest.raises(NotAuthorized):
        appts.cancel(appt.id, customer_id="B")
    with pytest.raises(NotAuthorized):
        appts.cancel(appt.id, vendor_id="W")

    assert appts.cancel(appt.id, vendor_id="V").status is AppointmentStatus.CANCELED
    with pytest.raises(InvalidTransition):
        appts.cancel(appt.id)


def test_booking_validation(directory):
    appts = AppointmentBook(vendors=directory)
    with pytest.raises(VendorNotFound):
        book(appts, vendor="ghost")
    with pytest.raises(ValueError):
        book(appts, start=(11, 0), end=(10, 0))


def test_counts_on_day(directory):
    appts = AppointmentBook(vendors=directory)
    done = book(appts, start=(9, 0), end=(9, 30))
    appts.complete(done.id)
    gone = book(appts, customer="B", start=(9, 30), end=(10, 0))
    appts.cancel(gone.id)
    book(appts, customer="C", start=(10, 0), end=(11, 0))  # no-show by noon
    book(appts, customer="D", start=(15, 0), end=(15, 30))  # still upcoming

    counts = appts.counts_on("V", DAY, now=datetime(2026, 3, 2, 12, 0))

    assert counts == {
        "total_bookings": 4,
        "bookings_completed": 1,
        "bookings_canceled": 1,
        "bookings_no_show": 1,
        "average_service_duration": 38,
    }
    assert [a.customer_id for a in appts.for_customer("C")] == ["C"]
