"""Exception types for domainguard.

All errors carry a short machine-readable code, a human-readable message
and an optional details dict so the CLI (or any other caller) can render
them without string parsing.
"""

from typing import Optional


class DomainGuardError(Exception):
    """Base exception for all domainguard errors."""

    def __init__(
        self,
        code: str,
        message: str,
        details: Optional[dict] = None,
    ) -> None:
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(code={self.code!r}, message={self.message!r})"

    def to_dict(self) -> dict:
        """Convert exception to dictionary for serialization."""
        return {
            "error_type": self.__class__.__name__,
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(DomainGuardError):
    """Raised when a domain or IP string is malformed."""

    pass


class ResolutionError(DomainGuardError):
    """Raised when every resolution method has been exhausted."""

    pass


class RuleExecutionError(DomainGuardError):
    """Raised when the firewall command batch fails or reports failure."""

    pass


class PersistenceError(DomainGuardError):
    """Raised when the blocked-domain file cannot be read or written."""

    pass


class MonitorUnavailableError(DomainGuardError):
    """Raised when the access monitor cannot acquire an event loop."""

    pass
