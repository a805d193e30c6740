"""Capped exponential backoff shared by both sync engines."""

from dataclasses import dataclass

from ..config import BackoffConfig


@dataclass(frozen=True)
class BackoffPolicy:
    """Pure delay schedule.

    ``delay(attempt) = min(base * growth ** min(attempt, attempt_cap), max)``.
    The exponent is capped before it is applied so very large attempt counts
    never overflow.
    """

    base_delay: float = 5.0
    growth_factor: float = 1.5
    max_delay: float = 30.0
    attempt_cap: int = 10

    @classmethod
    def from_config(cls, config: BackoffConfig) -> "BackoffPolicy":
        return cls(
            base_delay=config.base_delay_seconds,
            growth_factor=config.growth_factor,
            max_delay=config.max_delay_seconds,
            attempt_cap=config.attempt_cap,
        )

    def compute_delay(self, attempt: int) -> float:
        """Return the delay in seconds before retry number ``attempt``."""
        if attempt < 0:
            raise ValueError(f"attempt must be non-negative, got {attempt}")
        exponent = min(attempt, self.attempt_cap)
        return min(self.base_delay * self.growth_factor**exponent, self.max_delay)
