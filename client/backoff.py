from __future__ import annotations

from dataclasses import dataclass

DEFAULT_MAX_ATTEMPTS = 5
DEFAULT_BASE_DELAY_MS = 1000


def backoff_delay_ms(attempt: int, base_delay_ms: int = DEFAULT_BASE_DELAY_MS,
                     max_attempts: int = DEFAULT_MAX_ATTEMPTS) -> int:
    """
    Reconnect delay for the given attempt: base * 2^(attempt - 1).

    Deterministic, no jitter. With the defaults: 1000, 2000, 4000, 8000, 16000 ms.

    Raises:
        ValueError: attempt is outside [1, max_attempts]
    """
    if not 1 <= attempt <= max_attempts:
        raise ValueError(f"attempt must be within [1, {max_attempts}], got {attempt}")
    return base_delay_ms * 2 ** (attempt - 1)


@dataclass
class ReconnectState:
    """Retry budget of one connection; attempts stays within [0, max_attempts]."""
    attempts: int = 0
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    base_delay_ms: int = DEFAULT_BASE_DELAY_MS

    @property
    def exhausted(self) -> bool:
        return self.attempts >= self.max_attempts

    def reset(self) -> None:
        self.attempts = 0

    def next_delay_ms(self) -> int:
        """Consume one attempt and return its delay; never called once exhausted"""
        if self.exhausted:
            raise ValueError(f"retry budget of {self.max_attempts} attempts exhausted")
        self.attempts += 1
        return backoff_delay_ms(self.attempts, self.base_delay_ms, self.max_attempts)
