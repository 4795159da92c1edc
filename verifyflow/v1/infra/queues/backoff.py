"""
Retry backoff computation.
"""

from typing import Any

from verifyflow.config.settings import BackoffType


def compute_backoff_ms(backoff: dict[str, Any], attempts_made: int) -> int:
    """
    Delay before the next attempt after ``attempts_made`` failed executions.

    Fixed backoff always waits ``delay_ms``. Exponential backoff waits
    ``delay_ms * 2 ** (attempts_made - 1)``; there is no upper cap, so callers
    bound it through the base delay and the attempt count.
    """
    delay_ms = int(backoff.get("delay_ms", 0) or 0)
    if delay_ms <= 0:
        return 0

    strategy = backoff.get("type", BackoffType.FIXED.value)
    if strategy == BackoffType.EXPONENTIAL.value:
        return delay_ms * 2 ** max(attempts_made - 1, 0)
    if strategy == BackoffType.FIXED.value:
        return delay_ms
    raise ValueError(f"Unknown backoff type: {strategy}")
