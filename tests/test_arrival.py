import random

import pytest

from vendor_queue.arrival import sample_exponential_interarrival, sample_service_seconds


def test_exponential_interarrival_requires_positive_rate():
    with pytest.raises(ValueError):
        sample_exponential_interarrival(rate_per_sec=0)


def test_exponential_interarrival_deterministic_with_rng():
    rng = random.Random(123)
    a = sample_exponential_interarrival(rate_per_sec=2.0, rng=rng)
    rng = random.Random(123)
    b = sample_exponential_interarrival(rate_per_sec=2.0, rng=rng)
    assert a == b
    assert a > 0


def test_service_seconds_respects_floor():
    rng = random.Random(7)
    values = [sample_service_seconds(mean_seconds=0.01, min_seconds=0.5, rng=rng) for _ in range(20)]
    assert all(v >= 0.5 for v in values)


def test_service_seconds_rejects_bad_mean():
    with pytest.raises(ValueError):
        sample_service_seconds(mean_seconds=0)
