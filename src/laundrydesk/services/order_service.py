from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any, Callable
from uuid import UUID

from psycopg import Connection

from ..domain import (
    ORDER_STATUSES,
    CustomerSnapshot,
    DiscountSnapshot,
    HandlerSnapshot,
    Order,
    OrderLine,
    Principal,
    ServiceSnapshot,
)
from ..errors import AuthorizationError, BusinessRuleError, NotFoundError, ValidationError
from ..pricing import OrderTotals, order_totals
from ..repositories.customer_repo import CustomerRepository
from ..repositories.order_line_repo import OrderLineRepository
from ..repositories.order_repo import OrderRepository
from .catalog import CatalogLookup

logger = logging.getLogger(__name__)

UNSET: Any = object()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class CreateOrderLineInput:
    service_id: int
    quantity: int


@dataclass
class UpdateOrderInput:
    """Fields of PUT /orders/<id>; UNSET means "leave as is", None clears handler/discount."""

    status: str | None = None
    handler_id: Any = UNSET
    discount_id: Any = UNSET

    def is_empty(self) -> bool:
        return self.status is None and self.handler_id is UNSET and self.discount_id is UNSET


def _check_totals(lines: tuple[OrderLine, ...], discount: DiscountSnapshot | None) -> OrderTotals:
    # raises BusinessRuleError when a fixed discount would exceed the gross total
    return order_totals([ln.line_total for ln in lines], discount.rule() if discount else None)


def _validate_quantity(quantity: int) -> None:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise ValidationError("Quantity must be a positive integer.")


def _next_completed_on(order: Order, status: str, now: datetime) -> datetime | None:
    if status != "completed":
        return None
    if order.status == "completed":
        return order.completed_on
    return now


class OrderService:
    def __init__(
        self,
        *,
        catalog: CatalogLookup,
        customer_repo: CustomerRepository,
        order_repo: OrderRepository,
        order_line_repo: OrderLineRepository,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.catalog = catalog
        self.customer_repo = customer_repo
        self.order_repo = order_repo
        self.order_line_repo = order_line_repo
        self.clock = clock

    # ---- queries -------------------------------------------------------------

    def get_order(self, conn: Connection, order_id: UUID, *, for_update: bool = False) -> Order:
        order = self.order_repo.get(conn, order_id, for_update=for_update)
        if order is None:
            raise NotFoundError("Order not found or deleted.")
        return order

    def list_orders(self, conn: Connection, caller: Principal, *, limit: int, offset: int) -> tuple[list[Order], int]:
        self._require_privileged(caller)
        return self.order_repo.list(conn, limit=limit, offset=offset), self.order_repo.count(conn)

    def list_open_orders_for_handler(self, conn: Connection, caller: Principal, *, handler_id: int) -> list[Order]:
        if caller.id != handler_id and not caller.is_admin:
            raise AuthorizationError("Unauthorized to view orders of another handler.")
        self.catalog.resolve_user(conn, handler_id)
        return self.order_repo.list_open_for_handler(conn, handler_id)

    def list_orders_by_date_range(
        self, conn: Connection, caller: Principal, *, date_from: datetime, date_to: datetime
    ) -> list[Order]:
        self._require_privileged(caller)
        return self.order_repo.list_between(conn, date_from, date_to)

    # ---- create --------------------------------------------------------------

    def create_order(
        self,
        conn: Connection,
        caller: Principal,
        *,
        customer_id: int,
        lines: list[CreateOrderLineInput],
        handler_id: int | None = None,
        discount_id: int | None = None,
    ) -> Order:
        """Create a pending order, debiting the discount's required points from the customer.

        Must run inside one transaction: the points debit and the order insert
        commit together or not at all.
        """
        if not lines:
            raise ValidationError("At least one service must be provided.")
        for ln in lines:
            _validate_quantity(ln.quantity)

        # the customer row stays locked until commit so concurrent redemptions serialize
        customer = self.catalog.resolve_customer(conn, customer_id, for_update=discount_id is not None)

        if handler_id is None:
            handler_id, handler = caller.id, HandlerSnapshot.of(caller)
        else:
            handler = HandlerSnapshot.of(self.catalog.resolve_handler(conn, handler_id, caller))

        discount = None
        if discount_id is not None:
            found = self.catalog.resolve_discount(conn, discount_id)
            if customer.points < found.required_points:
                raise BusinessRuleError("Customer does not have enough points for discount.")
            discount = DiscountSnapshot.of(found)

        order_lines: dict[int, OrderLine] = {}
        for ln in lines:
            existing = order_lines.get(ln.service_id)
            if existing is not None:
                order_lines[ln.service_id] = existing.with_quantity(existing.quantity + ln.quantity)
                continue
            service = self.catalog.resolve_service(conn, ln.service_id)
            order_lines[ln.service_id] = OrderLine.priced(service.id, ServiceSnapshot.of(service), ln.quantity)

        order = Order(
            id=uuid.uuid4(),
            customer_id=customer.id,
            customer=CustomerSnapshot.of(customer),
            handler_id=handler_id,
            handler=handler,
            discount_id=discount_id,
            discount=discount,
            lines=tuple(order_lines.values()),
            status="pending",
            order_date=self.clock(),
            completed_on=None,
        )
        totals = _check_totals(order.lines, discount)

        if discount is not None and discount.required_points > 0:
            if not self.customer_repo.debit_points(conn, customer_id=customer.id, points=discount.required_points):
                raise BusinessRuleError("Customer does not have enough points for discount.")

        self.order_repo.insert(conn, order)
        logger.info(
            "order %s created for customer %s by user %s (net %s)",
            order.id, customer.id, caller.id, totals.net,
        )
        return order

    # ---- status / fields -----------------------------------------------------

    def update_status(self, conn: Connection, caller: Principal, *, order_id: UUID, status: str) -> Order:
        if status not in ORDER_STATUSES:
            raise ValidationError(f"Order status must be one of: {', '.join(ORDER_STATUSES)}.")
        order = self.get_order(conn, order_id, for_update=True)
        return self._apply_status(conn, caller, order, status)

    def update_order(self, conn: Connection, caller: Principal, *, order_id: UUID, changes: UpdateOrderInput) -> Order:
        """Reassign handler / discount and optionally move the status. Never touches customer points."""
        self._require_privileged(caller)
        if changes.is_empty():
            raise ValidationError("No fields to update.")
        if changes.status is not None and changes.status not in ORDER_STATUSES:
            raise ValidationError(f"Order status must be one of: {', '.join(ORDER_STATUSES)}.")

        order = self.get_order(conn, order_id, for_update=True)
        if order.is_closed and not caller.is_admin:
            raise AuthorizationError("Unauthorized to change order, order is already closed.")

        if changes.handler_id is not UNSET:
            handler = None
            if changes.handler_id is not None:
                handler = HandlerSnapshot.of(self.catalog.resolve_handler(conn, changes.handler_id, caller))
            self.order_repo.set_handler(conn, order_id=order.id, handler_id=changes.handler_id, handler=handler)
            order = replace(order, handler_id=changes.handler_id, handler=handler)

        if changes.discount_id is not UNSET:
            discount = None
            if changes.discount_id is not None:
                discount = DiscountSnapshot.of(self.catalog.resolve_discount(conn, changes.discount_id))
            _check_totals(order.lines, discount)
            self.order_repo.set_discount(conn, order_id=order.id, discount_id=changes.discount_id, discount=discount)
            order = replace(order, discount_id=changes.discount_id, discount=discount)

        if changes.status is not None:
            order = self._apply_status(conn, caller, order, changes.status)

        logger.info("order %s updated by user %s", order.id, caller.id)
        return order

    def _apply_status(self, conn: Connection, caller: Principal, order: Order, status: str) -> Order:
        if order.is_closed and not caller.is_admin:
            raise AuthorizationError("Unauthorized to change order status, order is already closed.")
        completed_on = _next_completed_on(order, status, self.clock())
        self.order_repo.set_status(conn, order_id=order.id, status=status, completed_on=completed_on)
        logger.info("order %s status %s -> %s by user %s", order.id, order.status, status, caller.id)
        return replace(order, status=status, completed_on=completed_on)

    # ---- lines ---------------------------------------------------------------

    def _load_for_line_change(self, conn: Connection, caller: Principal, order_id: UUID) -> Order:
        order = self.get_order(conn, order_id, for_update=True)
        if order.handler_id is not None and order.handler_id != caller.id and not caller.is_admin:
            raise AuthorizationError("Only the order's handler or an admin can change its services.")
        if order.is_closed and not caller.is_admin:
            raise BusinessRuleError("Order is already completed or cancelled.")
        return order

    def add_line(self, conn: Connection, caller: Principal, *, order_id: UUID, service_id: int, quantity: int) -> Order:
        """Add a service to the order; a service already present has its quantity increased."""
        _validate_quantity(quantity)
        order = self._load_for_line_change(conn, caller, order_id)

        existing = order.find_line(service_id)
        if existing is not None:
            line = existing.with_quantity(existing.quantity + quantity)
            lines = tuple(line if ln.service_id == service_id else ln for ln in order.lines)
            _check_totals(lines, order.discount)
            self.order_line_repo.set_quantity(conn, order_id=order.id, line=line)
        else:
            service = self.catalog.resolve_service(conn, service_id)
            line = OrderLine.priced(service.id, ServiceSnapshot.of(service), quantity)
            lines = order.lines + (line,)
            _check_totals(lines, order.discount)
            self.order_line_repo.add_line(conn, order_id=order.id, line=line)

        logger.info("order %s: service %s quantity now %s", order.id, service_id, line.quantity)
        return replace(order, lines=lines)

    def update_line(self, conn: Connection, caller: Principal, *, order_id: UUID, service_id: int, quantity: int) -> Order:
        _validate_quantity(quantity)
        order = self._load_for_line_change(conn, caller, order_id)

        existing = order.find_line(service_id)
        if existing is None:
            raise NotFoundError("Service not found in order.")
        line = existing.with_quantity(quantity)
        lines = tuple(line if ln.service_id == service_id else ln for ln in order.lines)
        _check_totals(lines, order.discount)
        self.order_line_repo.set_quantity(conn, order_id=order.id, line=line)

        logger.info("order %s: service %s quantity set to %s", order.id, service_id, quantity)
        return replace(order, lines=lines)

    def remove_line(self, conn: Connection, caller: Principal, *, order_id: UUID, service_id: int) -> Order:
        order = self._load_for_line_change(conn, caller, order_id)

        if order.find_line(service_id) is None:
            raise NotFoundError("Service not found in order.")
        lines = tuple(ln for ln in order.lines if ln.service_id != service_id)
        _check_totals(lines, order.discount)
        self.order_line_repo.remove_line(conn, order_id=order.id, service_id=service_id)

        logger.info("order %s: service %s removed", order.id, service_id)
        return replace(order, lines=lines)

    # ---- delete --------------------------------------------------------------

    def delete_order(self, conn: Connection, caller: Principal, *, order_id: UUID) -> None:
        """Soft delete. Points already debited for the order's discount stay debited."""
        self._require_privileged(caller)
        if not self.order_repo.soft_delete(conn, order_id):
            raise NotFoundError("Order not found or is already deleted.")
        logger.info("order %s deleted by user %s", order_id, caller.id)

    @staticmethod
    def _require_privileged(caller: Principal) -> None:
        if not caller.is_privileged:
            raise AuthorizationError("Forbidden")
