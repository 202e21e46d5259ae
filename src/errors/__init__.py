"""Error handling framework for the bulk tag engine.

This package provides:
- Error code registry with E-XXXX format codes
- Typed domain exceptions for invocation and lookup failures

Error categories:
- E-1xxx: Record errors
- E-2xxx: Validation errors
- E-3xxx: Platform API errors
- E-4xxx: System/internal errors
- E-5xxx: Authentication errors
"""

from src.errors.domain import DomainError, NotFoundError, ValidationError
from src.errors.registry import (
    ERROR_REGISTRY,
    ErrorCategory,
    ErrorCode,
    get_error,
    get_errors_by_category,
)

__all__ = [
    # Registry
    "ErrorCode",
    "ErrorCategory",
    "ERROR_REGISTRY",
    "get_error",
    "get_errors_by_category",
    # Domain
    "DomainError",
    "NotFoundError",
    "ValidationError",
]
