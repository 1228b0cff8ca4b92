from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from psycopg import Connection

from ..db import fetch_all, fetch_one, soft_delete, update_columns
from ..domain import Expense

_COLUMNS = "id, amount, expense_date, description, created_at"


def _to_expense(row: dict) -> Expense:
    return Expense(
        id=int(row["id"]),
        amount=Decimal(row["amount"]),
        expense_date=row["expense_date"],
        description=row["description"],
        created_at=row["created_at"],
    )


class ExpenseRepository:
    def create(
        self,
        conn: Connection,
        *,
        amount: Decimal,
        description: str | None,
        expense_date: datetime | None = None,
    ) -> int:
        cur = conn.execute(
            """
            INSERT INTO expense(amount, description, expense_date)
            VALUES (%s, %s, COALESCE(%s, now()))
            RETURNING id;
            """,
            (amount, description, expense_date),
        )
        return int(cur.fetchone()[0])

    def get(self, conn: Connection, expense_id: int) -> Expense | None:
        cur = conn.execute(f"SELECT {_COLUMNS} FROM expense WHERE id = %s AND NOT is_deleted;", (expense_id,))
        row = fetch_one(cur)
        return _to_expense(row) if row else None

    def list(self, conn: Connection, *, limit: int = 50, offset: int = 0) -> list[Expense]:
        cur = conn.execute(
            f"""
            SELECT {_COLUMNS}
            FROM expense
            WHERE NOT is_deleted
            ORDER BY expense_date DESC
            LIMIT %s OFFSET %s;
            """,
            (limit, offset),
        )
        return [_to_expense(r) for r in fetch_all(cur)]

    def count(self, conn: Connection) -> int:
        cur = conn.execute("SELECT COUNT(*) FROM expense WHERE NOT is_deleted;")
        return int(cur.fetchone()[0])

    def list_between(self, conn: Connection, date_from: datetime, date_to: datetime) -> list[Expense]:
        cur = conn.execute(
            f"""
            SELECT {_COLUMNS}
            FROM expense
            WHERE NOT is_deleted AND expense_date >= %s AND expense_date <= %s
            ORDER BY expense_date DESC;
            """,
            (date_from, date_to),
        )
        return [_to_expense(r) for r in fetch_all(cur)]

    def update(self, conn: Connection, expense_id: int, fields: dict) -> Expense | None:
        row = update_columns(conn, table="expense", row_id=expense_id, fields=fields, returning=_COLUMNS)
        return _to_expense(row) if row else None

    def soft_delete(self, conn: Connection, expense_id: int) -> bool:
        return soft_delete(conn, table="expense", row_id=expense_id)
