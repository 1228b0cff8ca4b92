from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from psycopg import Connection

from ..db import fetch_all, fetch_one
from ..domain import (
    CustomerSnapshot,
    DiscountSnapshot,
    HandlerSnapshot,
    Order,
    OrderLine,
)
from .order_line_repo import OrderLineRepository

_COLUMNS = """
    id, customer_id, customer_first_name, customer_last_name, customer_phone_number, customer_address,
    handler_id, handler_username, handler_role,
    discount_id, discount_name, discount_type, discount_amount, discount_required_points,
    status, order_date, completed_on, is_deleted
"""


def _to_order(row: dict, lines: list[OrderLine]) -> Order:
    handler = None
    if row["handler_username"] is not None:
        handler = HandlerSnapshot(username=row["handler_username"], role=row["handler_role"])
    discount = None
    if row["discount_type"] is not None:
        discount = DiscountSnapshot(
            name=row["discount_name"],
            discount_type=row["discount_type"],
            amount=Decimal(row["discount_amount"]),
            required_points=int(row["discount_required_points"]),
        )
    return Order(
        id=row["id"],
        customer_id=int(row["customer_id"]),
        customer=CustomerSnapshot(
            first_name=row["customer_first_name"],
            last_name=row["customer_last_name"],
            phone_number=row["customer_phone_number"],
            address=row["customer_address"],
        ),
        handler_id=row["handler_id"],
        handler=handler,
        discount_id=row["discount_id"],
        discount=discount,
        lines=tuple(lines),
        status=row["status"],
        order_date=row["order_date"],
        completed_on=row["completed_on"],
        is_deleted=bool(row["is_deleted"]),
    )


class OrderRepository:
    def __init__(self, line_repo: OrderLineRepository | None = None) -> None:
        self.line_repo = line_repo or OrderLineRepository()

    def _with_lines(self, conn: Connection, rows: list[dict]) -> list[Order]:
        lines = self.line_repo.list_for_orders(conn, [r["id"] for r in rows])
        return [_to_order(r, lines[r["id"]]) for r in rows]

    def insert(self, conn: Connection, order: Order) -> None:
        handler = order.handler
        discount = order.discount
        conn.execute(
            """
            INSERT INTO laundry_order(
              id, customer_id, customer_first_name, customer_last_name, customer_phone_number, customer_address,
              handler_id, handler_username, handler_role,
              discount_id, discount_name, discount_type, discount_amount, discount_required_points,
              status, order_date, completed_on
            )
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s);
            """,
            (
                order.id,
                order.customer_id,
                order.customer.first_name,
                order.customer.last_name,
                order.customer.phone_number,
                order.customer.address,
                order.handler_id,
                handler.username if handler else None,
                handler.role if handler else None,
                order.discount_id,
                discount.name if discount else None,
                discount.discount_type if discount else None,
                discount.amount if discount else None,
                discount.required_points if discount else None,
                order.status,
                order.order_date,
                order.completed_on,
            ),
        )
        for line in order.lines:
            self.line_repo.add_line(conn, order_id=order.id, line=line)

    def get(self, conn: Connection, order_id: UUID, *, for_update: bool = False) -> Order | None:
        lock = " FOR UPDATE" if for_update else ""
        cur = conn.execute(
            f"SELECT {_COLUMNS} FROM laundry_order WHERE id = %s AND NOT is_deleted{lock};",
            (order_id,),
        )
        row = fetch_one(cur)
        if not row:
            return None
        return self._with_lines(conn, [row])[0]

    def set_status(self, conn: Connection, *, order_id: UUID, status: str, completed_on: datetime | None) -> None:
        conn.execute(
            "UPDATE laundry_order SET status = %s, completed_on = %s WHERE id = %s;",
            (status, completed_on, order_id),
        )

    def set_handler(
        self,
        conn: Connection,
        *,
        order_id: UUID,
        handler_id: int | None,
        handler: HandlerSnapshot | None,
    ) -> None:
        conn.execute(
            """
            UPDATE laundry_order
            SET handler_id = %s, handler_username = %s, handler_role = %s
            WHERE id = %s;
            """,
            (
                handler_id,
                handler.username if handler else None,
                handler.role if handler else None,
                order_id,
            ),
        )

    def set_discount(
        self,
        conn: Connection,
        *,
        order_id: UUID,
        discount_id: int | None,
        discount: DiscountSnapshot | None,
    ) -> None:
        conn.execute(
            """
            UPDATE laundry_order
            SET discount_id = %s, discount_name = %s, discount_type = %s,
                discount_amount = %s, discount_required_points = %s
            WHERE id = %s;
            """,
            (
                discount_id,
                discount.name if discount else None,
                discount.discount_type if discount else None,
                discount.amount if discount else None,
                discount.required_points if discount else None,
                order_id,
            ),
        )

    def soft_delete(self, conn: Connection, order_id: UUID) -> bool:
        cur = conn.execute(
            "UPDATE laundry_order SET is_deleted = true WHERE id = %s AND NOT is_deleted;",
            (order_id,),
        )
        return cur.rowcount == 1

    def list(self, conn: Connection, *, limit: int = 30, offset: int = 0) -> list[Order]:
        cur = conn.execute(
            f"""
            SELECT {_COLUMNS}
            FROM laundry_order
            WHERE NOT is_deleted
            ORDER BY order_date DESC
            LIMIT %s OFFSET %s;
            """,
            (limit, offset),
        )
        return self._with_lines(conn, fetch_all(cur))

    def count(self, conn: Connection) -> int:
        cur = conn.execute("SELECT COUNT(*) FROM laundry_order WHERE NOT is_deleted;")
        return int(cur.fetchone()[0])

    def list_open_for_handler(self, conn: Connection, handler_id: int) -> list[Order]:
        cur = conn.execute(
            f"""
            SELECT {_COLUMNS}
            FROM laundry_order
            WHERE NOT is_deleted AND handler_id = %s AND status NOT IN ('completed', 'cancelled')
            ORDER BY order_date DESC;
            """,
            (handler_id,),
        )
        return self._with_lines(conn, fetch_all(cur))

    def list_between(self, conn: Connection, date_from: datetime, date_to: datetime) -> list[Order]:
        cur = conn.execute(
            f"""
            SELECT {_COLUMNS}
            FROM laundry_order
            WHERE NOT is_deleted AND order_date >= %s AND order_date <= %s
            ORDER BY order_date DESC;
            """,
            (date_from, date_to),
        )
        return self._with_lines(conn, fetch_all(cur))
