from __future__ import annotations

import getpass
import logging
from datetime import timedelta
from pathlib import Path

from .auth import hash_password
from .db import Db, DbError
from .domain import ROLES
from .errors import AppError
from .importers import ImportDataError, import_customers_csv, import_services_json
from .reports import DateRange, financial_summary
from .repositories.customer_repo import CustomerRepository
from .repositories.service_repo import ServiceRepository
from .repositories.user_repo import UserRepository
from .services.order_service import utcnow
from .validation import day_bounds, parse_choice, parse_phone, parse_text

logger = logging.getLogger(__name__)

DEFAULT_SCHEMA = Path("sql/schema.sql")


def _prompt(msg: str) -> str:
    return input(msg).strip()


def apply_schema(db: Db, path: str | Path = DEFAULT_SCHEMA) -> None:
    ddl = Path(path).read_text(encoding="utf-8")
    with db.transaction() as conn:
        conn.execute(ddl)
    logger.info("schema applied from %s", path)


def create_staff_user(db: Db, users: UserRepository, *, username: str, password: str, role: str, phone_number: str | None) -> int:
    username = parse_text(username, "username", min_len=3, max_len=32)
    role = parse_choice(role, "role", ROLES)
    if len(password) < 6:
        raise ValueError("password must be at least 6 characters.")
    with db.transaction() as conn:
        if users.get_by_username(conn, username) is not None:
            raise ValueError(f"username {username!r} already exists.")
        user_id = users.create(
            conn,
            username=username,
            role=role,
            password_hash=hash_password(password),
            phone_number=parse_phone(phone_number),
        )
    logger.info("staff user %s (%s) created with id %s", username, role, user_id)
    return user_id


def run_cli(db: Db) -> None:
    customer_repo = CustomerRepository()
    service_repo = ServiceRepository()
    user_repo = UserRepository()

    while True:
        print("\n=== LaundryDesk admin ===")
        print("1) Apply database schema")
        print("2) Create staff user")
        print("3) List customers")
        print("4) List services")
        print("5) Import customers CSV")
        print("6) Import services JSON")
        print("7) Financial summary (last 30 days)")
        print("0) Exit")

        choice = _prompt("> ")
        try:
            if choice == "0":
                return

            elif choice == "1":
                path = _prompt(f"schema path (default {DEFAULT_SCHEMA}): ") or DEFAULT_SCHEMA
                apply_schema(db, path)
                print("Schema applied.")

            elif choice == "2":
                username = _prompt("username: ")
                password = getpass.getpass("password: ")
                role = _prompt(f"role ({'/'.join(ROLES)}): ") or "employee"
                phone = _prompt("phone_number (optional): ") or None
                user_id = create_staff_user(
                    db, user_repo, username=username, password=password, role=role, phone_number=phone
                )
                print(f"Created user_id={user_id}")

            elif choice == "3":
                with db.session() as conn:
                    rows = customer_repo.list(conn, limit=50, offset=0)
                for c in rows:
                    print(f"#{c.id} {c.first_name} {c.last_name} phone={c.phone_number} points={c.points}")

            elif choice == "4":
                with db.session() as conn:
                    rows = service_repo.list(conn, limit=50, offset=0)
                for s in rows:
                    print(f"#{s.id} {s.name} {s.price_per_unit}/{s.unit}")

            elif choice == "5":
                path = _prompt("path to customers.csv: ")
                with db.transaction() as conn:
                    n = import_customers_csv(conn, path, customer_repo)
                print(f"Imported customers: {n}")

            elif choice == "6":
                path = _prompt("path to services.json: ")
                with db.transaction() as conn:
                    n = import_services_json(conn, path, service_repo)
                print(f"Imported services: {n}")

            elif choice == "7":
                today = utcnow().date()
                start, end = day_bounds(today - timedelta(days=30), today)
                with db.session() as conn:
                    rep = financial_summary(conn, DateRange(start=start, end=end))
                totals = rep["overall_totals"]
                for d in rep["daily_summary"]:
                    print(f'  {d["date"]} revenue={d["revenue"]} expenses={d["expenses"]} profit={d["profit"]}')
                print(
                    f'Total revenue={totals["total_revenue"]} expenses={totals["total_expenses"]} '
                    f'profit={totals["total_profit"]} margin={totals["total_profit_margin"]}%'
                )

            else:
                print("Unknown choice.")

        except DbError:
            raise
        except AppError as e:
            print(f"[INPUT ERROR] {e.message}")
        except ImportDataError as e:
            print(f"[IMPORT ERROR] {e}")
        except (ValueError, OSError) as e:
            print(f"[VALUE ERROR] {e}")
