from datetime import datetime, timedelta, timezone

import pytest

from vendor_queue.broadcast import InMemoryBroadcastGateway
from vendor_queue.models import VendorConfig
from vendor_queue.service import QueueService
from vendor_queue.vendors import VendorDirectory, VendorProfile


class FakeClock:
    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 3, 2, 10, 0, tzinfo=timezone.utc)  # a Monday

    def __call__(self) -> datetime:
        return self.now

    def advance(self, *, minutes: float = 0, seconds: float = 0) -> None:
        self.now += timedelta(minutes=minutes, seconds=seconds)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def directory(clock):
    d = VendorDirectory(clock=clock)
    d.add(VendorProfile(vendor_id="V", name="Barber", config=VendorConfig(1, 30)))
    d.add(VendorProfile(vendor_id="W", name="Bakery", config=VendorConfig(2, 10)))
    return d


@pytest.fixture
def gateway():
    return InMemoryBroadcastGateway()


@pytest.fixture
def service(directory, gateway, clock):
    return QueueService(vendors=directory, gateway=gateway, clock=clock)
