from __future__ import annotations

from typing import List, Sequence


class SpecRefineError(RuntimeError):
    """Base class for every error raised by the refinement pipeline."""


class InputError(SpecRefineError):
    """Raw input is too short to analyze. Fatal for the run."""


class ServiceError(SpecRefineError):
    """Transport, auth or empty-body failure from the external provider."""

    def __init__(self, message: str, provider: str | None = None) -> None:
        super().__init__(message)
        self.provider = provider


class ParseError(SpecRefineError):
    """Provider output that no repair strategy could turn into an object."""

    def __init__(
        self,
        message: str,
        snippet: str = "",
        offset: int | None = None,
        strategies: Sequence[str] = (),
    ) -> None:
        super().__init__(message)
        self.snippet = snippet
        self.offset = offset
        self.strategies: List[str] = list(strategies)


class SpecValidationError(ParseError):
    """Parsed payload is missing one or more mandatory spec fields."""

    def __init__(self, missing_fields: Sequence[str]) -> None:
        self.missing_fields: List[str] = list(missing_fields)
        super().__init__(
            f"Missing required fields in provider response: {', '.join(self.missing_fields)}"
        )


class WizardDeclined(SpecRefineError):
    """The user opted out of interactive refinement."""
