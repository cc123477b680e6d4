"""Exponential backoff for change channel establishment."""

from dataclasses import dataclass


@dataclass(frozen=True)
class BackoffPolicy:
    """Delay schedule for re-attempting channel establishment.

    ``delay(n)`` is ``base * 2**n`` capped at ``maximum`` for the first
    ``max_attempts`` retries and ``None`` afterwards, at which point the
    subscription stays on polling.
    """

    base: float = 1.0
    maximum: float = 30.0
    max_attempts: int = 3

    def __post_init__(self) -> None:
        if self.base <= 0:
            raise ValueError("base must be positive")
        if self.maximum < self.base:
            raise ValueError("maximum must be >= base")
        if self.max_attempts < 0:
            raise ValueError("max_attempts must be >= 0")

    def delay(self, attempt: int) -> float | None:
        """Return the delay in seconds before retry ``attempt``.

        Args:
            attempt: Zero-based retry counter kept by the caller

        Returns:
            Delay in seconds, or None once the attempt cap is reached
        """
        if attempt < 0:
            raise ValueError("attempt must be >= 0")
        if attempt >= self.max_attempts:
            return None
        return min(self.base * (2 ** attempt), self.maximum)

    def exhausted(self, attempt: int) -> bool:
        """Check whether no retry is left for ``attempt``."""
        return self.delay(attempt) is None
