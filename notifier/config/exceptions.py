"""Custom exceptions for configuration management."""

from typing import List, Optional

from notifier.domain.exceptions import NotifierError


class ConfigurationError(NotifierError):
    """
    Exception raised when configuration is missing or invalid.

    Stores multiple validation errors and formats them in a human-readable way
    with helpful suggestions. Raised at startup for bad files or environment,
    and at publish time when the queue token is missing.
    """

    def __init__(
        self,
        message: str,
        errors: Optional[List[str]] = None,
        suggestions: Optional[List[str]] = None,
    ):
        self.message = message
        self.errors = errors or []
        self.suggestions = suggestions or []
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        parts = [self.message]

        if self.errors:
            parts.append("\nValidation Errors:")
            for i, error in enumerate(self.errors, 1):
                parts.append(f"  {i}. {error}")

        if self.suggestions:
            parts.append("\nSuggestions:")
            for suggestion in self.suggestions:
                parts.append(f"  - {suggestion}")

        return "\n".join(parts)
