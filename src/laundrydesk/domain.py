from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Literal, Optional
from uuid import UUID

from . import pricing

Role = Literal["employee", "manager", "admin"]
UserStatus = Literal["active", "suspended"]
OrderStatus = Literal["pending", "confirmed", "completed", "cancelled"]
DiscountType = Literal["percent", "fixed"]

ROLES: tuple[str, ...] = ("employee", "manager", "admin")
PRIVILEGED_ROLES: tuple[str, ...] = ("manager", "admin")
USER_STATUSES: tuple[str, ...] = ("active", "suspended")
ORDER_STATUSES: tuple[str, ...] = ("pending", "confirmed", "completed", "cancelled")
CLOSED_STATUSES: tuple[str, ...] = ("completed", "cancelled")
DISCOUNT_TYPES: tuple[str, ...] = ("percent", "fixed")


@dataclass(frozen=True)
class Principal:
    """The authenticated caller: who is acting and with which role."""

    id: int
    username: str
    role: Role

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    @property
    def is_privileged(self) -> bool:
        return self.role in PRIVILEGED_ROLES


@dataclass(frozen=True)
class User:
    id: int
    username: str
    role: Role
    status: UserStatus
    phone_number: Optional[str]
    password_hash: str
    created_at: datetime

    @property
    def is_active(self) -> bool:
        return self.status == "active"


@dataclass(frozen=True)
class Customer:
    id: int
    first_name: str
    last_name: str
    phone_number: Optional[str]
    address: str
    points: int
    created_at: datetime


@dataclass(frozen=True)
class Service:
    id: int
    name: str
    unit: str
    price_per_unit: Decimal
    created_at: datetime


@dataclass(frozen=True)
class Discount:
    id: int
    name: str
    required_points: int
    discount_type: DiscountType
    amount: Decimal
    created_at: datetime


@dataclass(frozen=True)
class Expense:
    id: int
    amount: Decimal
    expense_date: datetime
    description: Optional[str]
    created_at: datetime


# ---- snapshots embedded by copy in an order ---------------------------------


@dataclass(frozen=True)
class CustomerSnapshot:
    first_name: str
    last_name: str
    phone_number: Optional[str]
    address: str

    @classmethod
    def of(cls, customer: Customer) -> CustomerSnapshot:
        return cls(
            first_name=customer.first_name,
            last_name=customer.last_name,
            phone_number=customer.phone_number,
            address=customer.address,
        )


@dataclass(frozen=True)
class HandlerSnapshot:
    username: str
    role: Role

    @classmethod
    def of(cls, user: User | Principal) -> HandlerSnapshot:
        return cls(username=user.username, role=user.role)


@dataclass(frozen=True)
class DiscountSnapshot:
    name: str
    discount_type: DiscountType
    amount: Decimal
    required_points: int

    @classmethod
    def of(cls, discount: Discount) -> DiscountSnapshot:
        return cls(
            name=discount.name,
            discount_type=discount.discount_type,
            amount=discount.amount,
            required_points=discount.required_points,
        )

    def rule(self) -> pricing.DiscountRule:
        return pricing.discount_rule(self.discount_type, self.amount)


@dataclass(frozen=True)
class ServiceSnapshot:
    name: str
    unit: str
    price_per_unit: Decimal

    @classmethod
    def of(cls, service: Service) -> ServiceSnapshot:
        return cls(name=service.name, unit=service.unit, price_per_unit=service.price_per_unit)


@dataclass(frozen=True)
class OrderLine:
    service_id: int
    service: ServiceSnapshot
    quantity: int
    line_total: Decimal

    @classmethod
    def priced(cls, service_id: int, service: ServiceSnapshot, quantity: int) -> OrderLine:
        return cls(
            service_id=service_id,
            service=service,
            quantity=quantity,
            line_total=pricing.line_total(quantity, service.price_per_unit),
        )

    def with_quantity(self, quantity: int) -> OrderLine:
        # re-priced from the stored unit price, never the live catalog price
        return OrderLine.priced(self.service_id, self.service, quantity)


@dataclass(frozen=True)
class Order:
    id: UUID
    customer_id: int
    customer: CustomerSnapshot
    handler_id: Optional[int]
    handler: Optional[HandlerSnapshot]
    discount_id: Optional[int]
    discount: Optional[DiscountSnapshot]
    lines: tuple[OrderLine, ...]
    status: OrderStatus
    order_date: datetime
    completed_on: Optional[datetime]
    is_deleted: bool = False

    @property
    def is_closed(self) -> bool:
        return self.status in CLOSED_STATUSES

    def find_line(self, service_id: int) -> OrderLine | None:
        for ln in self.lines:
            if ln.service_id == service_id:
                return ln
        return None

    def totals(self) -> pricing.OrderTotals:
        return pricing.order_totals(
            [ln.line_total for ln in self.lines],
            self.discount.rule() if self.discount else None,
        )
