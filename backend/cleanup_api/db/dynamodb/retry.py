from __future__ import annotations

import random
import time
from dataclasses import dataclass
from typing import Any, Callable, TypeVar

from botocore.exceptions import BotoCoreError, ClientError

from .errors import (
    DdbConflict,
    DdbError,
    DdbInternal,
    DdbThrottled,
    DdbUnavailable,
    DdbValidation,
)

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    max_attempts: int = 6
    base_delay_s: float = 0.05
    max_delay_s: float = 1.5

    def backoff_s(self, attempt: int) -> float:
        # Full jitter: uniform in [0, min(cap, base * 2^(attempt-1))].
        ceiling = min(self.max_delay_s, self.base_delay_s * (2 ** max(0, attempt - 1)))
        return random.random() * ceiling


# Error codes that are transient at the request level.
_THROTTLE_CODES = frozenset(
    {
        "ProvisionedThroughputExceededException",
        "ThrottlingException",
        "RequestLimitExceeded",
        "InternalServerError",
        "ServiceUnavailable",
        "TransactionConflictException",
    }
)

# Per-item TransactWriteItems cancellation reasons that are worth a retry.
_TRANSIENT_CANCELLATIONS = frozenset(
    {
        "TransactionConflict",
        "ThrottlingError",
        "ProvisionedThroughputExceeded",
    }
)

_VALIDATION_CODES = frozenset({"ValidationException", "ParamValidationError"})

_UNAVAILABLE_CODES = frozenset(
    {"AccessDeniedException", "UnrecognizedClientException", "ResourceNotFoundException"}
)


def _error_code(e: ClientError) -> str:
    return str(((e.response or {}).get("Error") or {}).get("Code") or "")


def _aws_request_id(e: ClientError) -> str | None:
    return ((e.response or {}).get("ResponseMetadata") or {}).get("RequestId")


def cancellation_codes(e: ClientError) -> list[str]:
    """Per-item cancellation codes of a TransactionCanceledException, in request order."""
    reasons = (e.response or {}).get("CancellationReasons") or []
    return [str((r or {}).get("Code") or "None") for r in reasons]


def _classify(e: ClientError) -> tuple[type[DdbError], str, bool]:
    code = _error_code(e)

    if code == "ConditionalCheckFailedException":
        return DdbConflict, "DynamoDB conditional check failed", False

    if code == "TransactionCanceledException":
        codes = cancellation_codes(e)
        # A failed condition means a concurrent writer won; never transient.
        if "ConditionalCheckFailed" in codes:
            return DdbConflict, "DynamoDB transaction cancelled by a failed condition", False
        if any(c in _TRANSIENT_CANCELLATIONS for c in codes):
            return DdbThrottled, "DynamoDB transaction cancelled under contention", True

    if code in _VALIDATION_CODES:
        return DdbValidation, "DynamoDB request validation failed", False
    if code in _UNAVAILABLE_CODES:
        return DdbUnavailable, "DynamoDB table unavailable or access denied", False
    if code in _THROTTLE_CODES:
        return DdbThrottled, "DynamoDB request throttled or unavailable", True

    return DdbInternal, f"DynamoDB request failed ({code or 'ClientError'})", False


def map_ddb_error(
    exc: Exception,
    *,
    operation: str,
    table_name: str | None = None,
    key: dict[str, Any] | None = None,
) -> DdbError:
    if isinstance(exc, DdbError):
        return exc

    context = dict(operation=operation, table_name=table_name, key=key, cause=exc)

    if isinstance(exc, ClientError):
        cls, message, retryable = _classify(exc)
        extra: dict[str, Any] = {}
        if cls is DdbConflict:
            extra["cancellation_codes"] = cancellation_codes(exc)
        return cls(
            message=message,
            aws_request_id=_aws_request_id(exc),
            retryable=retryable,
            **context,
            **extra,
        )

    if isinstance(exc, BotoCoreError):
        # Connection/endpoint failures never reached the service.
        return DdbUnavailable(message="DynamoDB client error", retryable=True, **context)

    return DdbInternal(message="Unexpected DynamoDB error", **context)


def ddb_call(
    operation: str,
    fn: Callable[[], T],
    *,
    table_name: str | None = None,
    key: dict[str, Any] | None = None,
    retry_policy: RetryPolicy | None = None,
) -> T:
    """Run one DynamoDB call, retrying transient failures and raising typed DdbErrors."""
    policy = retry_policy or RetryPolicy()
    attempts = max(1, int(policy.max_attempts))

    attempt = 0
    while True:
        attempt += 1
        try:
            return fn()
        except (ClientError, BotoCoreError, DdbError) as e:
            mapped = map_ddb_error(e, operation=operation, table_name=table_name, key=key)
            if mapped.retryable and attempt < attempts:
                time.sleep(policy.backoff_s(attempt))
                continue
            if mapped is e:
                raise
            raise mapped from e
