"""
Transaction Coordinator Module

Wraps multi-row mutations (loan + installments + ledger mirrors, debt update +
ledger insert, loan status + ledger purge) in atomic units of work. Either
every write of a unit is committed or none is.
"""

import time
from contextlib import contextmanager
from typing import Optional

from .exceptions import LedgerError, StorageError
from .logging_config import get_logger, log_action
from .storage import StorageInterface


class TransactionCoordinator:
    """
    Runs units of work against a storage backend

    Domain errors raised inside a unit propagate unchanged after rollback.
    Anything else (driver errors, lock timeouts, constraint violations) is
    reported as a retryable StorageError.
    """

    def __init__(self, storage: StorageInterface, timeout_seconds: float = 30.0):
        self.storage = storage
        self.timeout_seconds = timeout_seconds
        self.logger = get_logger("finance_ledger.coordinator")

    @contextmanager
    def unit_of_work(
        self,
        operation: str,
        resource_id: Optional[str] = None,
        user_id: Optional[str] = None
    ):
        """
        Execute the enclosed block as one atomic unit

        Args:
            operation: Name used in logs and error messages
            resource_id: Loan or debt the unit mutates
            user_id: Owner on whose behalf the unit runs
        """
        started = time.monotonic()
        try:
            with self.storage.atomic():
                yield
                elapsed = time.monotonic() - started
                if elapsed > self.timeout_seconds:
                    raise StorageError(
                        f"{operation} exceeded the {self.timeout_seconds:g}s transaction timeout"
                    )
        except LedgerError as e:
            log_action(
                self.logger, "warning", f"{operation} rolled back: {e.message}",
                user_id=user_id, action=operation, resource=resource_id,
                extra={"error": type(e).__name__, "retryable": e.retryable}
            )
            raise
        except Exception as e:
            log_action(
                self.logger, "error", f"{operation} rolled back after storage failure",
                user_id=user_id, action=operation, resource=resource_id,
                extra={"error": type(e).__name__}
            )
            raise StorageError(f"{operation} failed and was rolled back; retry the request") from e

        log_action(
            self.logger, "debug", f"{operation} committed",
            user_id=user_id, action=operation, resource=resource_id,
            extra={"elapsed_ms": round((time.monotonic() - started) * 1000, 2)}
        )
