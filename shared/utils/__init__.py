"""
Utilities module: Exceptions and shared schemas.
"""

from shared.utils.exceptions import (
    NotFoundError,
    ForbiddenError,
    ValidationError,
    ConflictError,
)

__all__ = [
    "NotFoundError",
    "ForbiddenError",
    "ValidationError",
    "ConflictError",
]
