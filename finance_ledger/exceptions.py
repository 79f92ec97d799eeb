"""
Error Taxonomy Module

Typed failures returned by every engine operation. Callers decide between
retrying and surfacing to the user from the exception class alone.
"""

from typing import Optional


class LedgerError(Exception):
    """Base exception for all ledger engine errors"""
    
    retryable: bool = False
    
    def __init__(self, message: str, retryable: Optional[bool] = None):
        super().__init__(message)
        self.message = message
        if retryable is not None:
            self.retryable = retryable


class ValidationError(LedgerError):
    """Malformed or out-of-range input. Raised before any storage access."""


class NotFoundError(LedgerError):
    """Referenced record does not exist or is owned by another user"""


class ConflictError(LedgerError):
    """Operation is not valid for the record's current state"""


class StorageError(LedgerError):
    """A unit of work failed to commit and was rolled back"""
    
    retryable = True
