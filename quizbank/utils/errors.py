from __future__ import annotations

from typing import Sequence


class ImportEngineError(Exception):
    """Base class for hard failures raised by the import engine."""


class CatastrophicParseFailure(ImportEngineError, ValueError):
    """The input is empty or cannot be parsed as a table at all."""


class HeaderValidationError(ImportEngineError, ValueError):
    def __init__(self, errors: Sequence[str]) -> None:
        self.errors = list(errors)
        super().__init__(f"Header validation failed: {', '.join(self.errors)}")


class RowValidationError(ImportEngineError, ValueError):
    """Raised only under strict validation, for the first row that fails."""

    def __init__(
        self,
        *,
        line: int,
        errors: Sequence[str],
        question: str | None = None,
    ) -> None:
        self.line = line
        self.errors = list(errors)
        self.question = question
        super().__init__(f"Row {line}: Validation failed: {', '.join(self.errors)}")


class MergeConfigurationError(ImportEngineError, ValueError):
    def __init__(self, strategy: object, allowed: Sequence[str]) -> None:
        self.strategy = strategy
        self.allowed = list(allowed)
        super().__init__(f"Unknown merge strategy: {strategy!r}. Allowed: {self.allowed}")


class CleanupWarning(UserWarning):
    """Best-effort post-processing failed; logged, never raised."""
