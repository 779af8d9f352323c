"""
Delay between auction rounds: doubles each round, capped, with optional jitter.
"""

import random
from typing import Optional


def calculate_backoff(
    attempt: int,
    base: float = 1.0,
    max_delay: float = 60.0,
    jitter: float = 0.5,
    rng: Optional[random.Random] = None,
) -> float:
    """
    Seconds to wait before the round after `attempt` (0 = after the first round).

    A base of 0 disables the delay altogether. Jitter is drawn uniformly from
    [-jitter, +jitter] and the result never goes below zero.
    """
    if base <= 0:
        return 0.0

    delay = min(base * (2 ** attempt), max_delay)
    if jitter > 0:
        delay += (rng or random).uniform(-jitter, jitter)
    return max(0.0, delay)
