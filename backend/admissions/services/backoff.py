"""
Retry delay shared by the store boundary and the engine's optimistic retries.
"""

import random


def backoff_delay(attempt: int, base: float) -> float:
    """Exponential backoff with jitter. `attempt` is 1-based."""
    return base * (2 ** (attempt - 1)) + random.uniform(0, base)
