"""
Error taxonomy for CaseKeeper.

ValidationError and ProviderError are expected at runtime and are turned
into messages or empty results by the callers. ConsistencyViolation marks a
programming error in snapshot handling.
"""

from typing import List


class CaseKeeperError(Exception):
    """Base class for all CaseKeeper errors."""
    pass


class ValidationError(CaseKeeperError):
    """Malformed draft input. Carries user-facing messages."""

    def __init__(self, messages: List[str]):
        self.messages = list(messages)
        super().__init__("; ".join(self.messages) or "Invalid input")


class ProviderError(CaseKeeperError):
    """The ranking/advisory provider failed, timed out or returned junk."""
    pass


class ConsistencyViolation(CaseKeeperError):
    """A persisted snapshot broke its invariants."""
    pass
