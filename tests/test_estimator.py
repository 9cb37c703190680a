from datetime import datetime, timedelta, timezone

import pytest

from vendor_queue.errors import EstimationUnavailable
from vendor_queue.estimator import (
    EstimatorPolicy,
    effective_batches,
    estimate_wait_minutes,
    fallback_wait_minutes,
    observed_service_minutes,
    wait_time_accuracy,
)
from vendor_queue.models import EntryStatus, QueueEntry, ServiceSample, VendorConfig

T0 = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


def samples(*minutes):
    return [ServiceSample(join_time=T0, served_at=T0 + timedelta(minutes=m)) for m in minutes]


def test_single_counter_no_samples():
    cfg = VendorConfig(max_concurrent_appointments=1, average_service_duration=30)
    assert estimate_wait_minutes(cfg, 3) == 108
    assert estimate_wait_minutes(cfg, 1) == 36


def test_concurrency_groups_positions_into_batches():
    cfg = VendorConfig(max_concurrent_appointments=2, average_service_duration=30)
    assert effective_batches(3, 2) == 2
    assert estimate_wait_minutes(cfg, 1) == estimate_wait_minutes(cfg, 2) == 36
    assert estimate_wait_minutes(cfg, 3) == 72


def test_recent_samples_are_blended_with_baseline():
    cfg = VendorConfig(1, 30)
    # baseline 30, observed mean 15 -> 30*0.3 + 15*0.7 = 19.5 -> *1.2 = 23.4
    assert estimate_wait_minutes(cfg, 1, samples(10, 20)) == 23


def test_outlier_samples_are_discarded():
    cfg = VendorConfig(1, 30)
    assert observed_service_minutes(samples(0, 200, 180, 10)) == 10
    # only the 10 minute sample counts: 9 + 7 = 16 -> 19.2
    assert estimate_wait_minutes(cfg, 1, samples(0, 200, 10)) == 19


def test_all_outliers_falls_back_to_baseline():
    cfg = VendorConfig(1, 30)
    assert estimate_wait_minutes(cfg, 2, samples(-5, 0, 500)) == estimate_wait_minutes(cfg, 2) == 72


def test_only_most_recent_five_samples_count():
    assert observed_service_minutes(samples(10, 10, 10, 10, 10, 100)) == 10


def test_estimate_is_capped():
    cfg = VendorConfig(1, 30)
    assert estimate_wait_minutes(cfg, 10) == 240
    assert estimate_wait_minutes(cfg, 10, policy=EstimatorPolicy(max_wait_minutes=60)) == 60


def test_estimate_monotonic_in_position():
    configs = [VendorConfig(1, 30), VendorConfig(3, 12), VendorConfig(2, 45)]
    for cfg in configs:
        for sample_set in ([], samples(7, 12, 25)):
            values = [estimate_wait_minutes(cfg, k, sample_set) for k in range(1, 60)]
            assert values == sorted(values)
            assert all(0 <= v <= 240 for v in values)


def test_rejects_non_positive_position():
    cfg = VendorConfig(1, 30)
    with pytest.raises(ValueError):
        estimate_wait_minutes(cfg, 0)
    with pytest.raises(ValueError):
        estimate_wait_minutes(cfg, -2)
    with pytest.raises(ValueError):
        fallback_wait_minutes(0)


def test_custom_policy_keeps_blend_shape():
    cfg = VendorConfig(1, 30)
    policy = EstimatorPolicy(baseline_weight=0.5, observed_weight=0.5, uncertainty_buffer=1.0)
    assert estimate_wait_minutes(cfg, 3, policy=policy) == 90
    # 30*0.5 + 10*0.5 = 20
    assert estimate_wait_minutes(cfg, 1, samples(10), policy=policy) == 20


def test_fallback_uses_per_person_wait():
    assert fallback_wait_minutes(3) == 45
    assert fallback_wait_minutes(3, 10) == 30
    assert fallback_wait_minutes(3, 0) == 0
    assert fallback_wait_minutes(3, None) == 45
    assert fallback_wait_minutes(100) == 240


def test_unusable_sample_raises_estimation_unavailable():
    broken = [ServiceSample(join_time=T0, served_at=datetime(2026, 3, 2, 9, 30))]  # naive vs aware
    with pytest.raises(EstimationUnavailable):
        estimate_wait_minutes(VendorConfig(1, 30), 1, broken)


def test_vendor_config_validates_capacity():
    with pytest.raises(ValueError):
        VendorConfig(max_concurrent_appointments=0)


def _served(estimate, actual_minutes):
    e = QueueEntry(vendor_id="V", customer_id="c", position=1, join_time=T0)
    e.status = EntryStatus.SERVED
    e.estimated_wait_time = estimate
    e.served_at = T0 + timedelta(minutes=actual_minutes)
    return e


def test_wait_time_accuracy():
    assert wait_time_accuracy([]) == {"accuracy": 0, "total_comparisons": 0, "sample_size": 0}
    report = wait_time_accuracy([_served(30, 30), _served(30, 45)])
    assert report == {"accuracy": 75, "total_comparisons": 2, "sample_size": 2}
    assert wait_time_accuracy([_served(10, 100)])["accuracy"] == 0
