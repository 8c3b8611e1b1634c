from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field


@dataclass(frozen=True, slots=True)
class OrderRequest:
    amount_minor_units: int
    currency: str
    receipt: str
    notes: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class Order:
    order_id: str
    amount_minor_units: int
    currency: str
    receipt: str
    status: str | None = None


class PaymentGatewayError(Exception):
    """Order creation failed (transport error, timeout, or gateway rejection)."""

    def __init__(self, message: str, *, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class PaymentGateway(ABC):
    """Creates payment holds (orders) that a client later pays against."""

    @abstractmethod
    def create_order(self, request: OrderRequest) -> Order:
        pass
