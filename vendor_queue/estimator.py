from __future__ import annotations

# Wait-time estimation.
#
# The model has three parts:
#   baseline  = ceil(position / concurrency) * average_service_duration
#   blended   = baseline*0.3 + batches*observed*0.7   (only with recent samples)
#   estimate  = round(blended * 1.2), clamped to [0, 240]
#
# The constants are policy, not physics, so they live in `EstimatorPolicy`.

import math
from dataclasses import dataclass
from typing import Any, Iterable, Sequence

from .errors import EstimationUnavailable
from .models import QueueEntry, ServiceSample, VendorConfig

DEFAULT_PER_PERSON_WAIT = 15.0


@dataclass(frozen=True)
class EstimatorPolicy:
    baseline_weight: float = 0.3
    observed_weight: float = 0.7
    uncertainty_buffer: float = 1.2
    max_wait_minutes: int = 240
    sample_limit: int = 5
    outlier_max_minutes: float = 180.0

    def __post_init__(self) -> None:
        if self.baseline_weight < 0 or self.observed_weight < 0:
            raise ValueError("blend weights must be >= 0")
        if self.uncertainty_buffer < 0:
            raise ValueError("uncertainty_buffer must be >= 0")
        if self.max_wait_minutes < 0:
            raise ValueError("max_wait_minutes must be >= 0")
        if self.sample_limit < 1:
            raise ValueError("sample_limit must be >= 1")


DEFAULT_POLICY = EstimatorPolicy()


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _clamp(minutes: int, policy: EstimatorPolicy) -> int:
    return max(0, min(minutes, policy.max_wait_minutes))


def effective_batches(position: int, max_concurrent: int) -> int:
    """Number of concurrent-service rounds ahead of (and including) `position`."""
    if position <= 0:
        raise ValueError("position must be >= 1")
    if max_concurrent < 1:
        raise ValueError("max_concurrent must be >= 1")
    return math.ceil(position / max_concurrent)


def observed_service_minutes(
    samples: Iterable[ServiceSample], *, policy: EstimatorPolicy = DEFAULT_POLICY
) -> float | None:
    """Mean of the usable recent samples, or None when none survive filtering.

    Samples outside the open interval (0, outlier_max_minutes) are discarded.
    """
    usable: list[float] = []
    try:
        for sample in list(samples)[: policy.sample_limit]:
            minutes = sample.minutes
            if 0 < minutes < policy.outlier_max_minutes:
                usable.append(minutes)
    except (TypeError, AttributeError) as e:
        raise EstimationUnavailable(f"unusable service sample: {e}") from e
    if not usable:
        return None
    return sum(usable) / len(usable)


def estimate_wait_minutes(
    config: VendorConfig,
    position: int,
    samples: Sequence[ServiceSample] = (),
    *,
    policy: EstimatorPolicy = DEFAULT_POLICY,
) -> int:
    """Estimate minutes until the entry at `position` is called.

    Args:
        config: vendor capacity parameters.
        position: 1-based position among waiting entries.
        samples: recent served entries, most recent first.
        policy: blend weights, buffer and cap.

    Returns:
        Integer minutes in [0, policy.max_wait_minutes].
    """
    batches = effective_batches(position, config.max_concurrent_appointments)
    baseline = batches * config.average_service_duration

    observed = observed_service_minutes(samples, policy=policy)
    if observed is None:
        blended = baseline
    else:
        blended = baseline * policy.baseline_weight + batches * observed * policy.observed_weight

    return _clamp(_round_half_up(blended * policy.uncertainty_buffer), policy)


def fallback_wait_minutes(
    position: int,
    per_person_wait: float | None = None,
    *,
    policy: EstimatorPolicy = DEFAULT_POLICY,
) -> int:
    """Heuristic used when the vendor config (or estimation) is unavailable."""
    if position <= 0:
        raise ValueError("position must be >= 1")
    per_person = DEFAULT_PER_PERSON_WAIT if per_person_wait is None else per_person_wait
    return _clamp(_round_half_up(position * per_person), policy)


def wait_time_accuracy(entries: Iterable[QueueEntry], *, limit: int = 50) -> dict[str, Any]:
    """Compare estimates with actual waits for served entries.

    Per entry: max(0, 100 - |actual - estimated| / estimated * 100).
    """
    served = [
        e
        for e in entries
        if e.served_at is not None and e.estimated_wait_time > 0
    ][:limit]
    if not served:
        return {"accuracy": 0, "total_comparisons": 0, "sample_size": 0}

    total = 0.0
    comparisons = 0
    for e in served:
        actual = e.actual_wait_minutes() or 0.0
        estimated = e.estimated_wait_time
        if actual > 0:
            total += max(0.0, 100 - abs(actual - estimated) / estimated * 100)
            comparisons += 1

    avg = total / comparisons if comparisons else 0.0
    return {
        "accuracy": _round_half_up(avg),
        "total_comparisons": comparisons,
        "sample_size": len(served),
    }
