"""Shared service-layer error types.

Provides error dataclasses used across service modules (tag clients, retry
policy, mutation engine). Centralised here to avoid circular imports
between service modules.
"""

from dataclasses import dataclass, field

from src.clients.models import UserError
from src.errors.registry import get_error


@dataclass
class TagServiceError(Exception):
    """Per-record error raised by a tag client.

    Attributes:
        code: Error code (E-XXXX format)
        message: Human-readable error message
        details: Raw error details
    """

    code: str
    message: str
    details: dict | None = None

    def __str__(self) -> str:
        """Return formatted error message."""
        return f"[{self.code}] {self.message}"


@dataclass
class TagValidationError(TagServiceError):
    """The platform rejected the proposed tag set.

    Attributes:
        user_errors: Field/message pairs returned by the platform
    """

    user_errors: list[UserError] = field(default_factory=list)

    @classmethod
    def from_user_errors(cls, user_errors: list[UserError]) -> "TagValidationError":
        """Build the error from the platform's userErrors list."""
        message = "; ".join(e.message for e in user_errors) or "update rejected"
        return cls(code="E-2001", message=message, user_errors=list(user_errors))


@dataclass
class TagTransportError(TagServiceError):
    """The platform could not be reached, timed out, or refused the credentials.

    Attributes:
        retryable: Whether repeating the call can succeed
    """

    retryable: bool = True


class JobDeadlineExceeded(Exception):
    """The overall job deadline passed before the next batch could start."""

    code = "E-4003"

    def __init__(self, job_id: str, deadline_seconds: float) -> None:
        self.job_id = job_id
        self.deadline_seconds = deadline_seconds
        super().__init__("job deadline exceeded")


def transport_error(
    code: str,
    *,
    retryable: bool | None = None,
    details: dict | None = None,
    **context: object,
) -> TagTransportError:
    """Build a TagTransportError whose message comes from the error registry.

    Args:
        code: Registered E-XXXX code.
        retryable: Override the registry's retryability.
        details: Raw error details to attach.
        **context: Values for the code's message template.
    """
    error = get_error(code)
    if error is None:
        raise KeyError(f"Unknown error code: {code}")
    return TagTransportError(
        code=code,
        message=error.format(**context),
        details=details,
        retryable=error.is_retryable if retryable is None else retryable,
    )
