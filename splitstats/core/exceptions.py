"""Exception hierarchy for the statistics engine."""

from __future__ import annotations

from typing import Any


class SplitStatsError(Exception):
    """Base class for all engine errors."""


class InvalidTestDataError(SplitStatsError):
    """Raised when hard validation fails and computation must not proceed.

    ``errors`` maps a variant label (or ``"form"``) to a mapping of field name
    to the field error, mirroring ``ValidationResult.errors``.
    """

    def __init__(self, errors: dict[str, dict[str, Any]]) -> None:
        self.errors = errors
        messages = [
            f"{scope}.{field}: {error.message}"
            for scope, fields in errors.items()
            for field, error in fields.items()
        ]
        super().__init__("Invalid test data: " + "; ".join(messages))


class ComputationCancelled(SplitStatsError):
    """Raised at a cancellation checkpoint once the caller has cancelled."""
