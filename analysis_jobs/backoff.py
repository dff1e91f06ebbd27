"""Retry backoff for failed and reclaimed jobs."""

import random


def calculate_backoff(attempts: int, base_seconds: float = 30, max_seconds: float = 900) -> float:
    """
    Exponential backoff before jitter.

    Args:
        attempts: Claim count of the job (1 after its first run)
        base_seconds: Delay after the first attempt
        max_seconds: Upper bound for any delay

    Returns:
        Backoff delay in seconds
    """
    exponent = max(0, attempts - 1)
    # Cap the exponent so large attempt counts cannot overflow the float.
    delay = base_seconds * (2 ** min(exponent, 32))
    return min(delay, max_seconds)


def calculate_backoff_with_jitter(
    attempts: int, base_seconds: float = 30, max_seconds: float = 900
) -> float:
    """Backoff scaled by a uniform factor in [0.8, 1.2] to spread retries."""
    base_delay = calculate_backoff(attempts, base_seconds, max_seconds)
    jitter_factor = random.uniform(0.8, 1.2)
    return base_delay * jitter_factor
