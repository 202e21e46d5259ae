"""Error code registry with E-XXXX format codes.

This module defines the error code system for the bulk tag engine,
organizing errors into categories:
- E-1xxx: Record errors
- E-2xxx: Validation errors
- E-3xxx: Platform API errors
- E-4xxx: System/internal errors
- E-5xxx: Authentication errors

Each error includes a code, title, message template, and remediation steps.
"""

from dataclasses import dataclass
from enum import Enum


class ErrorCategory(str, Enum):
    """Categories for error codes."""

    RECORD = "record"  # E-1xxx: Record errors
    VALIDATION = "validation"  # E-2xxx: Validation errors
    PLATFORM_API = "platform_api"  # E-3xxx: Platform API errors
    SYSTEM = "system"  # E-4xxx: System/internal errors
    AUTH = "auth"  # E-5xxx: Authentication errors


@dataclass
class ErrorCode:
    """Definition of an error code with metadata.

    Attributes:
        code: Error code in E-XXXX format.
        category: Error category for grouping.
        title: Short title for display.
        message_template: Message with {placeholders} for context.
        remediation: Action user should take to resolve.
        is_retryable: Whether the operation can be retried without user action.
    """

    code: str  # E-XXXX format
    category: ErrorCategory
    title: str  # Short title for display
    message_template: str  # Message with {placeholders}
    remediation: str  # Action user should take
    is_retryable: bool = False  # Can be retried without user action

    def format(self, **context: object) -> str:
        """Render the message template, leaving it raw if context is missing."""
        try:
            return self.message_template.format(**context)
        except KeyError:
            return self.message_template


# Error registry - all defined error codes
ERROR_REGISTRY: dict[str, ErrorCode] = {
    # Record errors (E-1xxx)
    "E-1001": ErrorCode(
        code="E-1001",
        category=ErrorCategory.RECORD,
        title="Record Not Found",
        message_template="record {record_id} not found",
        remediation="The product was deleted or the id is wrong. Refresh the product selection and retry.",
    ),
    "E-1002": ErrorCode(
        code="E-1002",
        category=ErrorCategory.RECORD,
        title="Empty Product Selection",
        message_template="No product ids were supplied.",
        remediation="Select at least one product or check the ids file.",
    ),
    # Validation errors (E-2xxx)
    "E-2001": ErrorCode(
        code="E-2001",
        category=ErrorCategory.VALIDATION,
        title="Tag Rejected",
        message_template="Failed to update {record_id}: {message}",
        remediation="Correct the tag value (length, characters) and retry.",
    ),
    "E-2002": ErrorCode(
        code="E-2002",
        category=ErrorCategory.VALIDATION,
        title="Invalid Operation Arguments",
        message_template="{message}",
        remediation="Provide a non-empty tag, and an old tag for replace.",
    ),
    # Platform API errors (E-3xxx)
    "E-3001": ErrorCode(
        code="E-3001",
        category=ErrorCategory.PLATFORM_API,
        title="Platform Unavailable",
        message_template="Shopify API request failed: {message}",
        remediation="Wait a few minutes and retry. Check Shopify status if the issue persists.",
        is_retryable=True,
    ),
    "E-3002": ErrorCode(
        code="E-3002",
        category=ErrorCategory.PLATFORM_API,
        title="Platform Timeout",
        message_template="Shopify API call timed out after {timeout}s",
        remediation="Retry later or raise engine.call_timeout_seconds.",
        is_retryable=True,
    ),
    "E-3003": ErrorCode(
        code="E-3003",
        category=ErrorCategory.PLATFORM_API,
        title="Rate Limited",
        message_template="Shopify API rate limit exceeded: {message}",
        remediation="Increase engine.pacing_interval_ms or lower the batch size.",
        is_retryable=True,
    ),
    # System errors (E-4xxx)
    "E-4001": ErrorCode(
        code="E-4001",
        category=ErrorCategory.SYSTEM,
        title="Persistence Failure",
        message_template="Could not persist job state: {message}",
        remediation="Check the database is reachable and writable, then recover the job.",
    ),
    "E-4002": ErrorCode(
        code="E-4002",
        category=ErrorCategory.SYSTEM,
        title="Invalid Job Transition",
        message_template="{message}",
        remediation="The job already reached a terminal state. Start a new job.",
    ),
    "E-4003": ErrorCode(
        code="E-4003",
        category=ErrorCategory.SYSTEM,
        title="Job Deadline Exceeded",
        message_template="job deadline exceeded",
        remediation="Raise engine.job_deadline_seconds or split the product selection.",
    ),
    # Auth errors (E-5xxx)
    "E-5001": ErrorCode(
        code="E-5001",
        category=ErrorCategory.AUTH,
        title="Authentication Failed",
        message_template="Shopify rejected the access token (HTTP {status_code}).",
        remediation="Check shopify.access_token and its write_products scope.",
    ),
}


def get_error(code: str) -> ErrorCode | None:
    """Get error definition by code.

    Args:
        code: Error code in E-XXXX format.

    Returns:
        ErrorCode if found, None otherwise.
    """
    return ERROR_REGISTRY.get(code)


def get_errors_by_category(category: ErrorCategory) -> list[ErrorCode]:
    """Get all errors in a category.

    Args:
        category: The error category to filter by.

    Returns:
        List of ErrorCode objects in the specified category.
    """
    return [e for e in ERROR_REGISTRY.values() if e.category == category]
