from __future__ import annotations

from decimal import Decimal

from psycopg import Connection

from ..db import fetch_all, fetch_one, soft_delete, update_columns
from ..domain import Service

_COLUMNS = "id, name, unit, price_per_unit, created_at"


def _to_service(row: dict) -> Service:
    return Service(
        id=int(row["id"]),
        name=row["name"],
        unit=row["unit"],
        price_per_unit=Decimal(row["price_per_unit"]),
        created_at=row["created_at"],
    )


class ServiceRepository:
    def create(self, conn: Connection, *, name: str, unit: str, price_per_unit: Decimal) -> int:
        cur = conn.execute(
            """
            INSERT INTO service(name, unit, price_per_unit)
            VALUES (%s, %s, %s)
            RETURNING id;
            """,
            (name, unit, price_per_unit),
        )
        return int(cur.fetchone()[0])

    def get(self, conn: Connection, service_id: int) -> Service | None:
        cur = conn.execute(f"SELECT {_COLUMNS} FROM service WHERE id = %s AND NOT is_deleted;", (service_id,))
        row = fetch_one(cur)
        return _to_service(row) if row else None

    def list(self, conn: Connection, *, limit: int = 50, offset: int = 0, name: str | None = None) -> list[Service]:
        if name:
            cur = conn.execute(
                f"""
                SELECT {_COLUMNS} FROM service
                WHERE NOT is_deleted AND name ILIKE %s
                ORDER BY name
                LIMIT %s OFFSET %s;
                """,
                (f"%{name}%", limit, offset),
            )
        else:
            cur = conn.execute(
                f"SELECT {_COLUMNS} FROM service WHERE NOT is_deleted ORDER BY id LIMIT %s OFFSET %s;",
                (limit, offset),
            )
        return [_to_service(r) for r in fetch_all(cur)]

    def count(self, conn: Connection, *, name: str | None = None) -> int:
        if name:
            cur = conn.execute("SELECT COUNT(*) FROM service WHERE NOT is_deleted AND name ILIKE %s;", (f"%{name}%",))
        else:
            cur = conn.execute("SELECT COUNT(*) FROM service WHERE NOT is_deleted;")
        return int(cur.fetchone()[0])

    def update(self, conn: Connection, service_id: int, fields: dict) -> Service | None:
        row = update_columns(conn, table="service", row_id=service_id, fields=fields, returning=_COLUMNS)
        return _to_service(row) if row else None

    def soft_delete(self, conn: Connection, service_id: int) -> bool:
        return soft_delete(conn, table="service", row_id=service_id)
