"""
BaseService -- common contract for kernel services.

Responsibility:
    Services that read or write inside a caller-supplied session extend
    BaseService: they ``flush()`` but never ``commit()`` or ``rollback()``.
    The two entry points that own transactions (PostingOrchestrator and
    ReversalService) open their own sessions from a session factory and use
    ``storage_guard`` to translate connectivity failures.

Failure modes:
    - OperationalError / InterfaceError from the driver surface as
      StorageUnavailableError (retryable) when raised inside storage_guard.
"""

from abc import ABC
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.orm import Session

from ledger_kernel.exceptions import StorageUnavailableError
from ledger_kernel.logging_config import get_logger

logger = get_logger("services.base")


class BaseService(ABC):
    """
    Abstract base class for session-scoped services.

    Guarantees:
        - The service never commits or rolls back; the caller owns the
          transaction so multi-step work stays atomic.
    """

    def __init__(self, session: Session):
        self.session = session


@contextmanager
def storage_guard(operation: str) -> Iterator[None]:
    """Re-raise database connectivity failures as StorageUnavailableError."""
    try:
        yield
    except (OperationalError, InterfaceError) as exc:
        logger.warning(
            "storage_unavailable",
            extra={"operation": operation, "error": str(exc.orig or exc)},
        )
        raise StorageUnavailableError(operation, str(exc.orig or exc)) from exc
