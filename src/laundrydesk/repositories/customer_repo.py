from __future__ import annotations

from psycopg import Connection

from ..db import fetch_all, fetch_one, soft_delete, update_columns
from ..domain import Customer

_COLUMNS = "id, first_name, last_name, phone_number, address, points, created_at"


def _to_customer(row: dict) -> Customer:
    return Customer(
        id=int(row["id"]),
        first_name=row["first_name"],
        last_name=row["last_name"],
        phone_number=row["phone_number"],
        address=row["address"],
        points=int(row["points"]),
        created_at=row["created_at"],
    )


def _search_filter(phone_number: str | None, first_name: str | None, last_name: str | None) -> tuple[str, list]:
    clauses = ["NOT is_deleted"]
    params: list = []
    for col, value in (("phone_number", phone_number), ("first_name", first_name), ("last_name", last_name)):
        if value:
            clauses.append(f"{col} ILIKE %s")
            params.append(f"%{value}%")
    return " AND ".join(clauses), params


class CustomerRepository:
    def create(
        self,
        conn: Connection,
        *,
        first_name: str,
        last_name: str,
        phone_number: str | None,
        address: str,
        points: int = 0,
    ) -> int:
        cur = conn.execute(
            """
            INSERT INTO customer(first_name, last_name, phone_number, address, points)
            VALUES (%s, %s, %s, %s, %s)
            RETURNING id;
            """,
            (first_name, last_name, phone_number, address, points),
        )
        return int(cur.fetchone()[0])

    def get(self, conn: Connection, customer_id: int, *, for_update: bool = False) -> Customer | None:
        lock = " FOR UPDATE" if for_update else ""
        cur = conn.execute(
            f"SELECT {_COLUMNS} FROM customer WHERE id = %s AND NOT is_deleted{lock};",
            (customer_id,),
        )
        row = fetch_one(cur)
        return _to_customer(row) if row else None

    def list(self, conn: Connection, *, limit: int = 50, offset: int = 0) -> list[Customer]:
        cur = conn.execute(
            f"""
            SELECT {_COLUMNS}
            FROM customer
            WHERE NOT is_deleted
            ORDER BY id
            LIMIT %s OFFSET %s;
            """,
            (limit, offset),
        )
        return [_to_customer(r) for r in fetch_all(cur)]

    def count(self, conn: Connection) -> int:
        cur = conn.execute("SELECT COUNT(*) FROM customer WHERE NOT is_deleted;")
        return int(cur.fetchone()[0])

    def search(
        self,
        conn: Connection,
        *,
        phone_number: str | None = None,
        first_name: str | None = None,
        last_name: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[Customer], int]:
        where, params = _search_filter(phone_number, first_name, last_name)
        cur = conn.execute(
            f"SELECT {_COLUMNS} FROM customer WHERE {where} ORDER BY id LIMIT %s OFFSET %s;",
            (*params, limit, offset),
        )
        rows = [_to_customer(r) for r in fetch_all(cur)]
        cur = conn.execute(f"SELECT COUNT(*) FROM customer WHERE {where};", params)
        return rows, int(cur.fetchone()[0])

    def update(self, conn: Connection, customer_id: int, fields: dict) -> Customer | None:
        row = update_columns(conn, table="customer", row_id=customer_id, fields=fields, returning=_COLUMNS)
        return _to_customer(row) if row else None

    def soft_delete(self, conn: Connection, customer_id: int) -> bool:
        return soft_delete(conn, table="customer", row_id=customer_id)

    def debit_points(self, conn: Connection, *, customer_id: int, points: int) -> bool:
        cur = conn.execute(
            """
            UPDATE customer
            SET points = points - %s
            WHERE id = %s AND NOT is_deleted AND points >= %s;
            """,
            (points, customer_id, points),
        )
        return cur.rowcount == 1
