"""Validation package."""

from splitsmart.validation.validator import (
    EMAIL_PATTERN,
    LedgerValidator,
    is_valid_email,
)

__all__ = ["EMAIL_PATTERN", "LedgerValidator", "is_valid_email"]
