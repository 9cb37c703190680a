import json
from datetime import datetime

import pytest

from vendor_queue.errors import VendorNotFound
from vendor_queue.vendors import OpeningHours, VendorDirectory, VendorProfile


def test_no_schedule_means_always_open(directory):
    status = directory.get_vendor_config("V")
    assert status.is_open_now
    assert status.config.average_service_duration == 30


def test_opening_hours_by_weekday():
    profile = VendorProfile(
        vendor_id="X",
        working_hours={"monday": OpeningHours.from_strings("09:00", "17:00")},
    )
    assert profile.is_open_at(datetime(2026, 3, 2, 9, 0))  # Monday
    assert profile.is_open_at(datetime(2026, 3, 2, 16, 59))
    assert not profile.is_open_at(datetime(2026, 3, 2, 17, 0))
    assert not profile.is_open_at(datetime(2026, 3, 3, 10, 0))  # Tuesday: no hours


def test_opening_hours_across_midnight():
    late = OpeningHours.from_strings("18:00", "02:00")
    assert late.contains(datetime(2026, 3, 2, 23, 30).time())
    assert late.contains(datetime(2026, 3, 2, 1, 0).time())
    assert not late.contains(datetime(2026, 3, 2, 12, 0).time())


def test_unknown_and_unapproved_vendors_are_not_found(clock):
    directory = VendorDirectory(clock=clock)
    directory.add(VendorProfile(vendor_id="pending", is_approved=False))
    with pytest.raises(VendorNotFound):
        directory.get_vendor_config("pending")
    with pytest.raises(VendorNotFound):
        directory.get_vendor_config("ghost")
    assert directory.vendor_ids() == []


def test_load_directory_from_json(tmp_path, clock):
    path = tmp_path / "vendors.json"
    path.write_text(
        json.dumps(
            [
                {
                    "vendor_id": "barber",
                    "name": "Corner Barber",
                    "max_concurrent_appointments": 2,
                    "average_service_duration": 20,
                    "working_hours": {
                        "Monday": {"open": "09:00", "close": "12:00"},
                        "tuesday": {"open": "", "close": ""},
                    },
                },
                {"vendor_id": "cafe"},
            ]
        )
    )

    directory = VendorDirectory.from_json_file(path, clock=clock)

    assert directory.vendor_ids() == ["barber", "cafe"]
    barber = directory.get_vendor_config("barber")
    assert barber.config.max_concurrent_appointments == 2
    assert barber.config.estimated_per_person_wait == 15
    assert barber.is_open_now  # clock: Monday 10:00
    assert directory.get("barber").working_hours is not None
    assert "tuesday" not in directory.get("barber").working_hours


def test_profile_requires_vendor_id():
    with pytest.raises(ValueError):
        VendorProfile.from_dict({"name": "anonymous"})
