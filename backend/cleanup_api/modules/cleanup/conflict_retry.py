from __future__ import annotations

from typing import Any, Callable, TypeVar

from ...domain.cleanup.errors import TransactionConflict
from ...observability.logging import get_logger

T = TypeVar("T")


def retry_on_conflict(
    attempt: Callable[[], T],
    *,
    max_attempts: int,
    operation: str,
    **log_fields: Any,
) -> T:
    """
    Run `attempt` until it commits without a TransactionConflict.

    Each attempt starts from fresh reads. Every other error propagates on the
    first occurrence.
    """
    attempts = max(1, int(max_attempts or 1))
    log = get_logger("cleanup")

    last: TransactionConflict | None = None
    for n in range(1, attempts + 1):
        try:
            return attempt()
        except TransactionConflict as e:
            last = e
            log.warning(
                "cleanup_transaction_conflict",
                operation=operation,
                attempt=n,
                max_attempts=attempts,
                **log_fields,
            )

    raise TransactionConflict(
        message=f"Could not {operation} because of concurrent updates; please retry",
        cause=last,
    )
