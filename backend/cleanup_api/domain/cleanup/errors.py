from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar


@dataclass(slots=True)
class CleanupError(Exception):
    """Base error for the cleanup campaign workflows.

    Rendered by the FastAPI exception handler in `errors.py` as
    `{"ok": false, "error": message}` with `status_code`.
    """

    message: str
    cause: Exception | None = None

    status_code: ClassVar[int] = 500

    def __str__(self) -> str:
        return self.message


@dataclass(slots=True)
class InvalidInput(CleanupError):
    field: str | None = None

    status_code: ClassVar[int] = 400


@dataclass(slots=True)
class CampaignNotFound(CleanupError):
    status_code: ClassVar[int] = 404


@dataclass(slots=True)
class CampaignNotJoinable(CleanupError):
    campaign_state: str | None = None

    status_code: ClassVar[int] = 400


@dataclass(slots=True)
class AlreadyJoined(CleanupError):
    status_code: ClassVar[int] = 400


@dataclass(slots=True)
class PaymentOrderFailed(CleanupError):
    status_code: ClassVar[int] = 502


@dataclass(slots=True)
class StoreUnavailable(CleanupError):
    status_code: ClassVar[int] = 503


@dataclass(slots=True)
class TransactionConflict(CleanupError):
    # Only surfaced once the coordinator's retries are exhausted.
    status_code: ClassVar[int] = 500
