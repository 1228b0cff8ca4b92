from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from psycopg import Connection

from ..db import fetch_all
from ..domain import OrderLine, ServiceSnapshot


def to_order_line(row: dict) -> OrderLine:
    return OrderLine(
        service_id=int(row["service_id"]),
        service=ServiceSnapshot(
            name=row["service_name"],
            unit=row["service_unit"],
            price_per_unit=Decimal(row["price_per_unit"]),
        ),
        quantity=int(row["quantity"]),
        line_total=Decimal(row["line_total"]),
    )


class OrderLineRepository:
    def add_line(self, conn: Connection, *, order_id: UUID, line: OrderLine) -> None:
        conn.execute(
            """
            INSERT INTO order_line(
              order_id, position, service_id, service_name, service_unit,
              price_per_unit, quantity, line_total
            )
            SELECT %s, COALESCE(MAX(position), 0) + 1, %s, %s, %s, %s, %s, %s
            FROM order_line WHERE order_id = %s;
            """,
            (
                order_id,
                line.service_id,
                line.service.name,
                line.service.unit,
                line.service.price_per_unit,
                line.quantity,
                line.line_total,
                order_id,
            ),
        )

    def set_quantity(self, conn: Connection, *, order_id: UUID, line: OrderLine) -> bool:
        cur = conn.execute(
            """
            UPDATE order_line
            SET quantity = %s, line_total = %s
            WHERE order_id = %s AND service_id = %s;
            """,
            (line.quantity, line.line_total, order_id, line.service_id),
        )
        return cur.rowcount == 1

    def remove_line(self, conn: Connection, *, order_id: UUID, service_id: int) -> bool:
        cur = conn.execute(
            "DELETE FROM order_line WHERE order_id = %s AND service_id = %s;",
            (order_id, service_id),
        )
        return cur.rowcount == 1

    def list_for_orders(self, conn: Connection, order_ids: list[UUID]) -> dict[UUID, list[OrderLine]]:
        lines: dict[UUID, list[OrderLine]] = {oid: [] for oid in order_ids}
        if not order_ids:
            return lines
        cur = conn.execute(
            """
            SELECT order_id, service_id, service_name, service_unit, price_per_unit, quantity, line_total
            FROM order_line
            WHERE order_id = ANY(%s)
            ORDER BY order_id, position;
            """,
            (order_ids,),
        )
        for row in fetch_all(cur):
            lines[row["order_id"]].append(to_order_line(row))
        return lines
