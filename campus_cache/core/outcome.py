"""
Outcome type for remote tier operations.

Every remote operation returns one of three shapes instead of raising:

- ``Outcome.ok(value)``: the call reached the store. ``value`` may be ``None``
  (key definitely absent).
- ``Outcome.unavailable()``: the tier is disabled for this process.
- ``Outcome.fail(details)``: the call was attempted and failed after retries.

Callers can therefore tell "definitely absent" from "tier unreachable"
without relying on exception absence.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Generic, TypeVar

T = TypeVar("T")


class OutcomeStatus(str, Enum):
    OK = "ok"
    UNAVAILABLE = "unavailable"
    ERROR = "error"


@dataclass(frozen=True)
class Outcome(Generic[T]):
    status: OutcomeStatus
    value: T | None = None
    error: str | None = None

    @classmethod
    def ok(cls, value: T | None = None) -> "Outcome[T]":
        return cls(OutcomeStatus.OK, value=value)

    @classmethod
    def unavailable(cls) -> "Outcome[T]":
        return cls(OutcomeStatus.UNAVAILABLE)

    @classmethod
    def fail(cls, error: str) -> "Outcome[T]":
        return cls(OutcomeStatus.ERROR, error=error)

    @property
    def is_ok(self) -> bool:
        return self.status is OutcomeStatus.OK

    @property
    def is_unavailable(self) -> bool:
        return self.status is OutcomeStatus.UNAVAILABLE

    @property
    def is_error(self) -> bool:
        return self.status is OutcomeStatus.ERROR

    @property
    def is_hit(self) -> bool:
        """Ok with a present value."""
        return self.is_ok and self.value is not None

    def value_or(self, default: T) -> T:
        if self.is_ok and self.value is not None:
            return self.value
        return default
