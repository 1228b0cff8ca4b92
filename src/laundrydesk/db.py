from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Iterator

import psycopg
from psycopg import Connection, Cursor, sql

from .config import DbConfig
from .errors import ServerError


class DbError(ServerError):
    pass


@dataclass(frozen=True)
class Db:
    cfg: DbConfig

    def connect(self) -> Connection:
        try:
            return psycopg.connect(
                host=self.cfg.host,
                port=self.cfg.port,
                dbname=self.cfg.name,
                user=self.cfg.user,
                password=self.cfg.password,
                sslmode=self.cfg.sslmode,
            )
        except Exception as e:
            raise DbError(
                "Cannot connect to database. Check config.toml [db] and that PostgreSQL is running."
            ) from e

    @contextmanager
    def session(self) -> Iterator[Connection]:
        conn = self.connect()
        try:
            yield conn
        finally:
            conn.close()

    @contextmanager
    def transaction(self) -> Iterator[Connection]:
        # conn.transaction() commits on exit and rolls back on any exception
        conn = self.connect()
        try:
            with conn.transaction():
                yield conn
        finally:
            conn.close()


def fetch_one(cur: Cursor) -> dict | None:
    row = cur.fetchone()
    if not row:
        return None
    cols = [d.name for d in cur.description]
    return dict(zip(cols, row))


def fetch_all(cur: Cursor) -> list[dict]:
    cols = [d.name for d in cur.description]
    return [dict(zip(cols, row)) for row in cur.fetchall()]


def update_columns(
    conn: Connection,
    *,
    table: str,
    row_id: Any,
    fields: dict,
    returning: str,
) -> dict | None:
    """UPDATE only the given columns of a live (not soft-deleted) row and return it."""
    query = sql.SQL("UPDATE {table} SET {assignments} WHERE id = %s AND NOT is_deleted RETURNING {returning};").format(
        table=sql.Identifier(table),
        assignments=sql.SQL(", ").join(
            sql.SQL("{} = %s").format(sql.Identifier(col)) for col in fields
        ),
        returning=sql.SQL(returning),
    )
    cur = conn.execute(query, (*fields.values(), row_id))
    return fetch_one(cur)


def soft_delete(conn: Connection, *, table: str, row_id: Any) -> bool:
    cur = conn.execute(
        sql.SQL("UPDATE {} SET is_deleted = true WHERE id = %s AND NOT is_deleted;").format(sql.Identifier(table)),
        (row_id,),
    )
    return cur.rowcount == 1
