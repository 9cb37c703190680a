from __future__ import annotations

"""Random timing models for the simulation agents.

For a Poisson arrival process with rate λ (customers/second) the
inter-arrival times are i.i.d. Exponential(λ). The service counter uses the
same distribution for service durations, parameterised by the mean instead.
"""

import random


def sample_exponential_interarrival(*, rate_per_sec: float, rng: random.Random | None = None) -> float:
    """Sample the next inter-arrival time (seconds) for a Poisson process.

    Args:
        rate_per_sec: λ, the arrival rate in customers/second. Must be > 0.
        rng: optional RNG (useful for deterministic tests).

    Returns:
        A positive float representing seconds until the next arrival.
    """
    if rate_per_sec <= 0:
        raise ValueError("rate_per_sec must be > 0")

    r = rng or random
    return float(r.expovariate(rate_per_sec))


def sample_service_seconds(
    *,
    mean_seconds: float,
    min_seconds: float = 0.0,
    rng: random.Random | None = None,
) -> float:
    """Sample how long serving one customer takes.

    Exponential with the given mean, floored at `min_seconds` so a counter
    never serves instantly.
    """
    if mean_seconds <= 0:
        raise ValueError("mean_seconds must be > 0")
    if min_seconds < 0:
        raise ValueError("min_seconds must be >= 0")

    return max(min_seconds, sample_exponential_interarrival(rate_per_sec=1.0 / mean_seconds, rng=rng))
