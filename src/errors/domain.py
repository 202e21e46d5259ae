"""Typed domain exceptions for caller-facing error mapping.

Usage:
    # In service layer
    raise NotFoundError("Job", job_id)

    # In the CLI
    try:
        job = recorder.require_job(job_id)
    except NotFoundError as e:
        console.print(f"[red]{e}[/red]")
"""


class DomainError(Exception):
    """Base exception for all domain errors."""

    def __init__(self, message: str) -> None:
        super().__init__(message)


class NotFoundError(DomainError):
    """Resource was not found."""

    def __init__(self, resource_type: str, identifier: str) -> None:
        super().__init__(f"{resource_type} '{identifier}' not found")
        self.resource_type = resource_type
        self.identifier = identifier


class ValidationError(DomainError):
    """Invalid arguments for an operation."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
