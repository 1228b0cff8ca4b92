from __future__ import annotations

from decimal import Decimal

from psycopg import Connection

from ..db import fetch_all, fetch_one, soft_delete, update_columns
from ..domain import Discount

_COLUMNS = "id, name, required_points, discount_type, amount, created_at"


def _to_discount(row: dict) -> Discount:
    return Discount(
        id=int(row["id"]),
        name=row["name"],
        required_points=int(row["required_points"]),
        discount_type=row["discount_type"],
        amount=Decimal(row["amount"]),
        created_at=row["created_at"],
    )


class DiscountRepository:
    def create(
        self,
        conn: Connection,
        *,
        name: str,
        required_points: int,
        discount_type: str,
        amount: Decimal,
    ) -> int:
        cur = conn.execute(
            """
            INSERT INTO discount(name, required_points, discount_type, amount)
            VALUES (%s, %s, %s, %s)
            RETURNING id;
            """,
            (name, required_points, discount_type, amount),
        )
        return int(cur.fetchone()[0])

    def get(self, conn: Connection, discount_id: int) -> Discount | None:
        cur = conn.execute(f"SELECT {_COLUMNS} FROM discount WHERE id = %s AND NOT is_deleted;", (discount_id,))
        row = fetch_one(cur)
        return _to_discount(row) if row else None

    def list(self, conn: Connection, *, limit: int = 50, offset: int = 0) -> list[Discount]:
        cur = conn.execute(
            f"""
            SELECT {_COLUMNS}
            FROM discount
            WHERE NOT is_deleted
            ORDER BY created_at DESC, id DESC
            LIMIT %s OFFSET %s;
            """,
            (limit, offset),
        )
        return [_to_discount(r) for r in fetch_all(cur)]

    def count(self, conn: Connection) -> int:
        cur = conn.execute("SELECT COUNT(*) FROM discount WHERE NOT is_deleted;")
        return int(cur.fetchone()[0])

    def update(self, conn: Connection, discount_id: int, fields: dict) -> Discount | None:
        row = update_columns(conn, table="discount", row_id=discount_id, fields=fields, returning=_COLUMNS)
        return _to_discount(row) if row else None

    def soft_delete(self, conn: Connection, discount_id: int) -> bool:
        return soft_delete(conn, table="discount", row_id=discount_id)
