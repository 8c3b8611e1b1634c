from __future__ import annotations

from contextlib import contextmanager
from decimal import Decimal
from typing import Any, Callable, Iterator, TypeVar

from ...db.dynamodb.errors import DdbConflict, DdbThrottled, DdbUnavailable
from ...db.dynamodb.table import DynamoTable
from ...domain.cleanup.errors import StoreUnavailable, TransactionConflict
from ...domain.cleanup.models import (
    MUTABLE_CAMPAIGN_FIELDS,
    Campaign,
    Location,
    Participant,
    PaymentIntent,
)
from .campaign_store import CampaignStore, CampaignTransaction

T = TypeVar("T")

_ItemKey = tuple[str, str]

# Campaign dataclass field -> stored attribute name.
_CAMPAIGN_ATTRS = {
    "participant_count": "participantCount",
    "current_price": "currentPrice",
    "campaign_state": "campaignState",
    "updated_at": "updatedAt",
}


def campaign_key(campaign_id: str) -> dict[str, str]:
    cid = str(campaign_id or "").strip()
    if not cid:
        raise ValueError("campaign_id is required")
    return {"pk": f"CAMPAIGN#{cid}", "sk": "PROFILE"}


def participant_key(campaign_id: str, user_id: str) -> dict[str, str]:
    cid = str(campaign_id or "").strip()
    uid = str(user_id or "").strip()
    if not cid:
        raise ValueError("campaign_id is required")
    if not uid:
        raise ValueError("user_id is required")
    # Same partition as the campaign: the campaign owns its participants.
    return {"pk": f"CAMPAIGN#{cid}", "sk": f"PARTICIPANT#{uid}"}


def payment_intent_key(payment_intent_id: str) -> dict[str, str]:
    pid = str(payment_intent_id or "").strip()
    if not pid:
        raise ValueError("payment_intent_id is required")
    return {"pk": f"PAYMENT_INTENT#{pid}", "sk": "PROFILE"}


def _clean(item: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in item.items() if v is not None}


def _num(v: Any) -> Decimal:
    # boto3 rejects floats; str() keeps the shortest decimal repr.
    return v if isinstance(v, Decimal) else Decimal(str(v))


def campaign_item(c: Campaign) -> dict[str, Any]:
    location = _clean(
        {"lat": _num(c.location.lat), "lng": _num(c.location.lng), "address": c.location.address}
    )
    return _clean(
        {
            **campaign_key(c.campaign_id),
            "entityType": "CleanupCampaign",
            "campaignId": c.campaign_id,
            "title": c.title,
            "description": c.description,
            "location": location,
            "scheduledDate": c.scheduled_date,
            "createdBy": c.created_by,
            "participantCount": int(c.participant_count),
            "currentPrice": int(c.current_price),
            "campaignState": c.campaign_state,
            "basePrice": int(c.base_price),
            "floorPrice": int(c.floor_price),
            "createdAt": c.created_at,
            "updatedAt": c.updated_at,
        }
    )


def campaign_from_item(item: dict[str, Any] | None) -> Campaign | None:
    if not item:
        return None
    loc = item.get("location") if isinstance(item.get("location"), dict) else {}
    return Campaign(
        campaign_id=str(item.get("campaignId") or ""),
        title=str(item.get("title") or ""),
        description=item.get("description"),
        location=Location(
            lat=float(loc.get("lat") or 0),
            lng=float(loc.get("lng") or 0),
            address=loc.get("address"),
        ),
        scheduled_date=str(item.get("scheduledDate") or ""),
        created_by=str(item.get("createdBy") or ""),
        participant_count=int(item.get("participantCount") or 0),
        current_price=int(item.get("currentPrice") or 0),
        campaign_state=str(item.get("campaignState") or ""),
        base_price=int(item.get("basePrice") or 0),
        floor_price=int(item.get("floorPrice") or 0),
        created_at=item.get("createdAt"),
        updated_at=item.get("updatedAt"),
    )


def participant_item(p: Participant) -> dict[str, Any]:
    return _clean(
        {
            **participant_key(p.campaign_id, p.user_id),
            "entityType": "CampaignParticipant",
            "campaignId": p.campaign_id,
            "userId": p.user_id,
            "paymentIntentId": p.payment_intent_id,
            "amountPaid": int(p.amount_paid),
            "status": p.status,
            "refundStatus": p.refund_status,
            "joinedAt": p.joined_at,
            "updatedAt": p.updated_at,
        }
    )


def participant_from_item(item: dict[str, Any] | None) -> Participant | None:
    if not item:
        return None
    return Participant(
        campaign_id=str(item.get("campaignId") or ""),
        user_id=str(item.get("userId") or ""),
        payment_intent_id=str(item.get("paymentIntentId") or ""),
        amount_paid=int(item.get("amountPaid") or 0),
        status=str(item.get("status") or ""),
        refund_status=str(item.get("refundStatus") or "none"),
        joined_at=item.get("joinedAt"),
        updated_at=item.get("updatedAt"),
    )


def payment_intent_item(pi: PaymentIntent) -> dict[str, Any]:
    return _clean(
        {
            **payment_intent_key(pi.payment_intent_id),
            "entityType": "PaymentIntent",
            "paymentIntentId": pi.payment_intent_id,
            "userId": pi.user_id,
            "campaignId": pi.campaign_id,
            "amount": int(pi.amount),
            "currency": pi.currency,
            "orderId": pi.order_id,
            "status": pi.status,
            "executionStatus": pi.execution_status,
            "createdAt": pi.created_at,
            "updatedAt": pi.updated_at,
        }
    )


def payment_intent_from_item(item: dict[str, Any] | None) -> PaymentIntent | None:
    if not item:
        return None
    return PaymentIntent(
        payment_intent_id=str(item.get("paymentIntentId") or ""),
        user_id=str(item.get("userId") or ""),
        campaign_id=str(item.get("campaignId") or ""),
        amount=int(item.get("amount") or 0),
        currency=str(item.get("currency") or ""),
        order_id=item.get("orderId"),
        status=str(item.get("status") or ""),
        execution_status=str(item.get("executionStatus") or ""),
        created_at=item.get("createdAt"),
        updated_at=item.get("updatedAt"),
    )


@contextmanager
def _store_errors() -> Iterator[None]:
    try:
        yield
    except DdbConflict as e:
        raise TransactionConflict(message="Campaign changed while the transaction was in flight", cause=e) from e
    except (DdbThrottled, DdbUnavailable) as e:
        raise StoreUnavailable(message=f"Campaign store unavailable: {e.message}", cause=e) from e


def _as_key(key: dict[str, str]) -> _ItemKey:
    return (key["pk"], key["sk"])


def _version_condition(expected: int | None) -> tuple[str, dict[str, str], dict[str, Any] | None]:
    # Absent at read time (or never read): the write must create the document.
    if expected is None:
        return "attribute_not_exists(pk)", {}, None
    return "#ver = :v", {"#ver": "version"}, {":v": expected}


class _DynamoCampaignTransaction(CampaignTransaction):
    def __init__(self, table: DynamoTable):
        self._table = table
        # Version observed per read key; None means the document was absent.
        self._versions: dict[_ItemKey, int | None] = {}
        self._reads: dict[_ItemKey, dict[str, Any] | None] = {}
        self._puts: dict[_ItemKey, dict[str, Any]] = {}
        self._updates: dict[_ItemKey, dict[str, Any]] = {}

    def _read(self, key: dict[str, str]) -> dict[str, Any] | None:
        k = _as_key(key)
        if k in self._reads:
            return self._reads[k]
        with _store_errors():
            item = self._table.get_item(key=key, consistent_read=True)
        self._reads[k] = item
        self._versions[k] = int(item.get("version") or 0) if item else None
        return item

    def get_campaign(self, campaign_id: str) -> Campaign | None:
        return campaign_from_item(self._read(campaign_key(campaign_id)))

    def get_participant(self, campaign_id: str, user_id: str) -> Participant | None:
        return participant_from_item(self._read(participant_key(campaign_id, user_id)))

    def _stage_put(self, item: dict[str, Any]) -> None:
        k = (item["pk"], item["sk"])
        if k in self._updates:
            raise ValueError(f"document {k} already has a staged update")
        self._puts[k] = item

    def set_campaign(self, campaign: Campaign) -> None:
        self._stage_put(campaign_item(campaign))

    def set_participant(self, participant: Participant) -> None:
        self._stage_put(participant_item(participant))

    def set_payment_intent(self, intent: PaymentIntent) -> None:
        self._stage_put(payment_intent_item(intent))

    def update_campaign(self, campaign_id: str, **fields: Any) -> None:
        unknown = [f for f in fields if f not in MUTABLE_CAMPAIGN_FIELDS]
        if unknown:
            raise ValueError(f"cannot update campaign fields: {', '.join(sorted(unknown))}")
        k = _as_key(campaign_key(campaign_id))

        if k in self._puts:
            staged = self._puts[k]
            for f, v in fields.items():
                staged[_CAMPAIGN_ATTRS[f]] = v
            return

        if self._versions.get(k) is None:
            raise ValueError("update_campaign requires the campaign to be read in this transaction")
        self._updates.setdefault(k, {}).update(fields)

    def commit(self) -> None:
        puts: list[dict[str, Any]] = []
        updates: list[dict[str, Any]] = []
        checks: list[dict[str, Any]] = []

        for k, item in self._puts.items():
            expected = self._versions.get(k)
            cond, names, values = _version_condition(expected)
            puts.append(
                self._table.tx_put(
                    item={**item, "version": (expected or 0) + 1},
                    condition_expression=cond,
                    expression_attribute_names=names or None,
                    expression_attribute_values=values,
                )
            )

        for k, fields in self._updates.items():
            expected = int(self._versions[k] or 0)
            attr_names: dict[str, str] = {"#ver": "version"}
            attr_values: dict[str, Any] = {":v": expected, ":nv": expected + 1}
            sets = ["#ver = :nv"]
            for i, (f, v) in enumerate(fields.items()):
                attr_names[f"#f{i}"] = _CAMPAIGN_ATTRS[f]
                attr_values[f":f{i}"] = v
                sets.append(f"#f{i} = :f{i}")
            updates.append(
                self._table.tx_update(
                    key={"pk": k[0], "sk": k[1]},
                    update_expression="SET " + ", ".join(sets),
                    expression_attribute_names=attr_names,
                    expression_attribute_values=attr_values,
                    condition_expression="#ver = :v",
                )
            )

        # Reads that are not being written still have to hold at commit.
        for k, expected in self._versions.items():
            if k in self._puts or k in self._updates:
                continue
            cond, names, values = _version_condition(expected)
            checks.append(
                self._table.tx_condition_check(
                    key={"pk": k[0], "sk": k[1]},
                    condition_expression=cond,
                    expression_attribute_names=names or None,
                    expression_attribute_values=values,
                )
            )

        if not puts and not updates:
            return

        with _store_errors():
            self._table.transact_write(puts=puts, updates=updates, condition_checks=checks)


class DynamoCampaignStore(CampaignStore):
    """CampaignStore over the single DynamoDB table.

    Optimistic concurrency: every stored document carries a `version`; commit
    conditions each read/written document on the version observed at read time.
    """

    def __init__(self, *, table: DynamoTable):
        self._table = table

    def _get(self, key: dict[str, str]) -> dict[str, Any] | None:
        with _store_errors():
            return self._table.get_item(key=key)

    def get_campaign(self, campaign_id: str) -> Campaign | None:
        return campaign_from_item(self._get(campaign_key(campaign_id)))

    def get_participant(self, campaign_id: str, user_id: str) -> Participant | None:
        return participant_from_item(self._get(participant_key(campaign_id, user_id)))

    def get_payment_intent(self, payment_intent_id: str) -> PaymentIntent | None:
        return payment_intent_from_item(self._get(payment_intent_key(payment_intent_id)))

    def run_transaction(self, fn: Callable[[CampaignTransaction], T]) -> T:
        tx = _DynamoCampaignTransaction(self._table)
        result = fn(tx)
        tx.commit()
        return result
