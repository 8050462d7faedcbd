"""Exception taxonomy for the pairing core.

None of these are fatal: callers degrade to an empty or unchanged state and
report the condition.
"""

from __future__ import annotations


class PairingError(Exception):
    """Base class for all pairing errors."""


class InsufficientItems(PairingError):
    """Fewer than two candidates are available in the chosen category."""

    def __init__(self, category: str, available: int) -> None:
        super().__init__(
            f"not enough {category} items to form a pair ({available} available)"
        )
        self.category = category
        self.available = available


class HydrationFailure(PairingError):
    """A read from the document store failed."""


class PersistenceFailure(PairingError):
    """A write to the document store failed."""


class IdentityMissing(PairingError):
    """An operation needed a signed-in user and there is none."""
