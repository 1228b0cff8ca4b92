from __future__ import annotations

import csv
import json
from pathlib import Path

from psycopg import Connection

from .errors import ValidationError
from .repositories.customer_repo import CustomerRepository
from .repositories.service_repo import ServiceRepository
from .validation import parse_amount, parse_phone, parse_text


class ImportDataError(Exception):
    pass


def import_customers_csv(conn: Connection, path: str | Path, customer_repo: CustomerRepository) -> int:
    p = Path(path)
    if not p.exists():
        raise ImportDataError(f"File not found: {p}")

    count = 0
    with p.open("r", encoding="utf-8", newline="") as f:
        reader = csv.DictReader(f)
        required = {"first_name", "last_name", "phone_number", "address", "points"}
        if not required.issubset(set(reader.fieldnames or [])):
            raise ImportDataError(f"CSV must contain columns: {sorted(required)}")

        for line_no, row in enumerate(reader, start=2):
            if not (row.get("first_name") or "").strip():
                continue
            try:
                points = int((row.get("points") or "0").strip() or 0)
                if points < 0:
                    raise ValidationError("points must be a non-negative integer.")
                customer_repo.create(
                    conn,
                    first_name=parse_text(row.get("first_name"), "first_name", min_len=2, max_len=32),
                    last_name=parse_text(row.get("last_name"), "last_name", min_len=2, max_len=32),
                    phone_number=parse_phone(row.get("phone_number")),
                    address=parse_text(row.get("address"), "address", min_len=5, max_len=128),
                    points=points,
                )
            except (ValidationError, ValueError) as e:
                raise ImportDataError(f"Line {line_no}: {e}") from e
            count += 1
    return count


def import_services_json(conn: Connection, path: str | Path, service_repo: ServiceRepository) -> int:
    p = Path(path)
    if not p.exists():
        raise ImportDataError(f"File not found: {p}")

    try:
        data = json.loads(p.read_text(encoding="utf-8"))
    except Exception as e:
        raise ImportDataError(f"Invalid JSON: {e}") from e

    if not isinstance(data, list):
        raise ImportDataError("JSON must be a list of objects")

    count = 0
    for i, obj in enumerate(data):
        if not isinstance(obj, dict):
            continue
        if not str(obj.get("name", "")).strip():
            continue
        try:
            service_repo.create(
                conn,
                name=parse_text(obj.get("name"), "name", max_len=30),
                unit=parse_text(obj.get("unit"), "unit", max_len=20),
                price_per_unit=parse_amount(obj.get("price_per_unit"), "price_per_unit"),
            )
        except ValidationError as e:
            raise ImportDataError(f"Item {i}: {e}") from e
        count += 1
    return count
