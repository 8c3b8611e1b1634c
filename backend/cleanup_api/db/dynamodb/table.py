from __future__ import annotations

from typing import Any, Iterable

from boto3.dynamodb.types import TypeSerializer

from .client import dynamodb_client, table_resource
from .errors import DdbInternal
from .retry import RetryPolicy, ddb_call

_serializer = TypeSerializer()

# Transactions retry only contention cancellations; failed conditions surface at once.
TRANSACT_RETRY_POLICY = RetryPolicy(max_attempts=4, base_delay_s=0.08, max_delay_s=1.0)


def to_attribute_values(item: dict[str, Any]) -> dict[str, Any]:
    """Plain python values -> low-level client AttributeValue shape ({'S': ...}, {'N': ...})."""
    return {k: _serializer.serialize(v) for k, v in item.items()}


def _with_condition(
    out: dict[str, Any],
    condition_expression: str | None,
    names: dict[str, str] | None,
    values: dict[str, Any] | None,
) -> dict[str, Any]:
    if condition_expression:
        out["ConditionExpression"] = condition_expression
    if names:
        out["ExpressionAttributeNames"] = names
    if values:
        out["ExpressionAttributeValues"] = to_attribute_values(values)
    return out


class DynamoTable:
    """
    Thin wrapper over one DynamoDB table.

    Reads go through the boto3 resource (plain python values back); transactional
    writes go through the low-level client, so the `tx_*` builders emit
    AttributeValue-shaped entries for `transact_write`.
    """

    def __init__(self, *, table_name: str):
        self.table_name = str(table_name)
        self._table = table_resource(self.table_name)
        self._client = dynamodb_client()

    def get_item(self, *, key: dict[str, Any], consistent_read: bool = False) -> dict[str, Any] | None:
        return ddb_call(
            "GetItem",
            lambda: self._table.get_item(Key=key, ConsistentRead=bool(consistent_read)).get("Item"),
            table_name=self.table_name,
            key=key,
        )

    def transact_write(
        self,
        *,
        puts: Iterable[dict[str, Any]] = (),
        updates: Iterable[dict[str, Any]] = (),
        condition_checks: Iterable[dict[str, Any]] = (),
        retry_policy: RetryPolicy | None = None,
    ) -> dict[str, Any]:
        items = (
            [{"Put": p} for p in puts]
            + [{"Update": u} for u in updates]
            + [{"ConditionCheck": c} for c in condition_checks]
        )
        if not items:
            return {"ok": True}

        return ddb_call(
            "TransactWriteItems",
            lambda: self._client.transact_write_items(TransactItems=items),
            table_name=self.table_name,
            retry_policy=retry_policy or TRANSACT_RETRY_POLICY,
        )

    # --- transact item builders (client shape) ---

    def tx_put(
        self,
        *,
        item: dict[str, Any],
        condition_expression: str | None = None,
        expression_attribute_names: dict[str, str] | None = None,
        expression_attribute_values: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        return _with_condition(
            {"TableName": self.table_name, "Item": to_attribute_values(item)},
            condition_expression,
            expression_attribute_names,
            expression_attribute_values,
        )

    def tx_update(
        self,
        *,
        key: dict[str, Any],
        update_expression: str,
        expression_attribute_names: dict[str, str] | None,
        expression_attribute_values: dict[str, Any],
        condition_expression: str | None = None,
    ) -> dict[str, Any]:
        return _with_condition(
            {
                "TableName": self.table_name,
                "Key": to_attribute_values(key),
                "UpdateExpression": update_expression,
            },
            condition_expression,
            expression_attribute_names,
            expression_attribute_values,
        )

    def tx_condition_check(
        self,
        *,
        key: dict[str, Any],
        condition_expression: str,
        expression_attribute_names: dict[str, str] | None = None,
        expression_attribute_values: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        return _with_condition(
            {"TableName": self.table_name, "Key": to_attribute_values(key)},
            condition_expression,
            expression_attribute_names,
            expression_attribute_values,
        )


def get_main_table() -> DynamoTable:
    from ...settings import settings

    if not settings.ddb_table_name:
        raise DdbInternal(message="DDB_TABLE_NAME is not set", operation="Config")
    return DynamoTable(table_name=settings.ddb_table_name)
