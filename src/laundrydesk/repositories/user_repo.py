from __future__ import annotations

from psycopg import Connection
from psycopg.errors import UniqueViolation

from ..db import fetch_all, fetch_one, soft_delete, update_columns
from ..domain import User
from ..errors import ValidationError

_COLUMNS = "id, username, role, status, phone_number, password_hash, created_at"


def _to_user(row: dict) -> User:
    return User(
        id=int(row["id"]),
        username=row["username"],
        role=row["role"],
        status=row["status"],
        phone_number=row["phone_number"],
        password_hash=row["password_hash"],
        created_at=row["created_at"],
    )


class UserRepository:
    def create(
        self,
        conn: Connection,
        *,
        username: str,
        role: str,
        password_hash: str,
        phone_number: str | None = None,
        status: str = "active",
    ) -> int:
        try:
            cur = conn.execute(
                """
                INSERT INTO app_user(username, role, status, phone_number, password_hash)
                VALUES (%s, %s, %s, %s, %s)
                RETURNING id;
                """,
                (username, role, status, phone_number, password_hash),
            )
        except UniqueViolation as e:
            raise ValidationError("Username already exists.") from e
        return int(cur.fetchone()[0])

    def get(self, conn: Connection, user_id: int) -> User | None:
        cur = conn.execute(f"SELECT {_COLUMNS} FROM app_user WHERE id = %s AND NOT is_deleted;", (user_id,))
        row = fetch_one(cur)
        return _to_user(row) if row else None

    def get_by_username(self, conn: Connection, username: str) -> User | None:
        cur = conn.execute(
            f"SELECT {_COLUMNS} FROM app_user WHERE username = %s AND NOT is_deleted;",
            (username,),
        )
        row = fetch_one(cur)
        return _to_user(row) if row else None

    def list(self, conn: Connection, *, limit: int = 50, offset: int = 0) -> list[User]:
        cur = conn.execute(
            f"SELECT {_COLUMNS} FROM app_user WHERE NOT is_deleted ORDER BY id LIMIT %s OFFSET %s;",
            (limit, offset),
        )
        return [_to_user(r) for r in fetch_all(cur)]

    def count(self, conn: Connection) -> int:
        cur = conn.execute("SELECT COUNT(*) FROM app_user WHERE NOT is_deleted;")
        return int(cur.fetchone()[0])

    def update(self, conn: Connection, user_id: int, fields: dict) -> User | None:
        # live usernames are unique (partial index app_user_username_idx)
        try:
            row = update_columns(conn, table="app_user", row_id=user_id, fields=fields, returning=_COLUMNS)
        except UniqueViolation as e:
            raise ValidationError("Username already exists.") from e
        return _to_user(row) if row else None

    def soft_delete(self, conn: Connection, user_id: int) -> bool:
        return soft_delete(conn, table="app_user", row_id=user_id)
