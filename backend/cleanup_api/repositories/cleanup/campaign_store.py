"""
Campaign store interface.

The coordinators only talk to these two abstractions; the transaction handle
makes explicit which reads must still hold at commit time and which writes
must land together.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Callable, TypeVar

from ...domain.cleanup.models import Campaign, Participant, PaymentIntent

T = TypeVar("T")


class CampaignTransaction(ABC):
    """Read-validate-on-commit transaction handle.

    Every document read through the handle (including a read that found
    nothing) is validated at commit: if it changed, or appeared, the commit
    fails with `TransactionConflict`. Staged writes are all-or-nothing.
    """

    @abstractmethod
    def get_campaign(self, campaign_id: str) -> Campaign | None:
        pass

    @abstractmethod
    def get_participant(self, campaign_id: str, user_id: str) -> Participant | None:
        pass

    @abstractmethod
    def set_campaign(self, campaign: Campaign) -> None:
        """Stage a full write. Unread documents must not exist yet."""
        pass

    @abstractmethod
    def set_participant(self, participant: Participant) -> None:
        pass

    @abstractmethod
    def set_payment_intent(self, intent: PaymentIntent) -> None:
        pass

    @abstractmethod
    def update_campaign(self, campaign_id: str, **fields: Any) -> None:
        """Stage a partial update of a campaign read in this transaction."""
        pass


class CampaignStore(ABC):
    @abstractmethod
    def get_campaign(self, campaign_id: str) -> Campaign | None:
        pass

    @abstractmethod
    def get_participant(self, campaign_id: str, user_id: str) -> Participant | None:
        pass

    @abstractmethod
    def get_payment_intent(self, payment_intent_id: str) -> PaymentIntent | None:
        pass

    @abstractmethod
    def run_transaction(self, fn: Callable[[CampaignTransaction], T]) -> T:
        """Run `fn` once and commit its staged writes.

        Raises `TransactionConflict` when a read was invalidated before commit;
        retrying is the caller's decision.
        """
        pass
