from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Iterable

from psycopg import Connection

from .db import fetch_all
from .errors import ValidationError
from .pricing import HUNDRED, discount_rule, net_total, round_money
from .validation import day_bounds, parse_date

EPOCH = date(1970, 1, 1)
POPULARITY_METRICS = ("revenue", "quantity")


@dataclass(frozen=True)
class DateRange:
    start: datetime
    end: datetime


def resolve_date_range(
    start: str | None,
    end: str | None,
    *,
    today: date,
    allow_future: bool = False,
) -> DateRange:
    """Expand ``?start=&end=`` query values into an inclusive whole-day range."""
    if not start and not end:
        raise ValidationError("Start or end date is required.")

    start_day = parse_date(start, "start") if start else None
    end_day = parse_date(end, "end") if end else None

    if start_day and end_day and start_day > end_day:
        raise ValidationError("Start date cannot be after end date.")
    if end_day and end_day > today and not allow_future:
        raise ValidationError("End date cannot be in the future.")

    begin, finish = day_bounds(start_day or EPOCH, end_day or today)
    return DateRange(start=begin, end=finish)


def _day(value: datetime) -> str:
    return value.astimezone(timezone.utc).date().isoformat()


def _margin(profit: Decimal, revenue: Decimal) -> Decimal:
    return profit / revenue * HUNDRED if revenue > 0 else Decimal(0)


def summarize_financials(order_rows: Iterable[dict], expense_rows: Iterable[dict]) -> dict:
    """Combine completed orders and expenses into per-day revenue / expenses / profit.

    ``order_rows`` carry ``completed_on``, ``gross`` and the order's discount
    snapshot (``discount_type``, ``discount_amount``); ``expense_rows`` carry
    ``expense_date`` and ``amount``.
    """
    days: dict[str, dict] = {}

    def bucket(key: str) -> dict:
        return days.setdefault(key, {"date": key, "revenue": Decimal(0), "expenses": Decimal(0)})

    for row in order_rows:
        rule = None
        if row.get("discount_type"):
            rule = discount_rule(row["discount_type"], row["discount_amount"])
        bucket(_day(row["completed_on"]))["revenue"] += net_total(Decimal(row["gross"]), rule)

    for row in expense_rows:
        bucket(_day(row["expense_date"]))["expenses"] += Decimal(row["amount"])

    daily = []
    total_revenue = Decimal(0)
    total_expenses = Decimal(0)
    for key in sorted(days):
        d = days[key]
        profit = d["revenue"] - d["expenses"]
        total_revenue += d["revenue"]
        total_expenses += d["expenses"]
        daily.append(
            {
                "date": key,
                "revenue": round_money(d["revenue"]),
                "expenses": round_money(d["expenses"]),
                "profit": round_money(profit),
                "profit_margin": round_money(_margin(profit, d["revenue"])),
            }
        )

    total_profit = total_revenue - total_expenses
    return {
        "daily_summary": daily,
        "overall_totals": {
            "total_revenue": round_money(total_revenue),
            "total_expenses": round_money(total_expenses),
            "total_profit": round_money(total_profit),
            "total_profit_margin": round_money(_margin(total_profit, total_revenue)),
        },
    }


def financial_summary(conn: Connection, period: DateRange) -> dict:
    cur = conn.execute(
        """
        SELECT
          o.id,
          o.completed_on,
          o.discount_type,
          o.discount_amount,
          COALESCE(SUM(l.line_total), 0) AS gross
        FROM laundry_order o
        LEFT JOIN order_line l ON l.order_id = o.id
        WHERE o.status = 'completed'
          AND NOT o.is_deleted
          AND o.completed_on >= %s AND o.completed_on <= %s
        GROUP BY o.id;
        """,
        (period.start, period.end),
    )
    orders = fetch_all(cur)
    cur = conn.execute(
        """
        SELECT expense_date, amount
        FROM expense
        WHERE NOT is_deleted AND expense_date >= %s AND expense_date <= %s;
        """,
        (period.start, period.end),
    )
    return summarize_financials(orders, fetch_all(cur))


def order_traffic(conn: Connection, period: DateRange) -> dict:
    cur = conn.execute(
        """
        SELECT to_char(order_date AT TIME ZONE 'UTC', 'YYYY-MM-DD') AS date, COUNT(*) AS count
        FROM laundry_order
        WHERE NOT is_deleted AND order_date >= %s AND order_date <= %s
        GROUP BY 1
        ORDER BY 1;
        """,
        (period.start, period.end),
    )
    daily = [{"date": r["date"], "count": int(r["count"])} for r in fetch_all(cur)]
    return {"daily_volume": daily, "overall_total_volume": sum(d["count"] for d in daily)}


def service_popularity(conn: Connection, metric: str) -> list[dict]:
    if metric not in POPULARITY_METRICS:
        raise ValidationError("Invalid or missing 'type' parameter. Please specify 'revenue' or 'quantity'.")
    # metric is whitelisted above
    column, label = ("l.line_total", "total_revenue") if metric == "revenue" else ("l.quantity", "total_quantity")
    cur = conn.execute(
        f"""
        SELECT l.service_name, SUM({column}) AS {label}
        FROM order_line l
        JOIN laundry_order o ON o.id = l.order_id
        WHERE NOT o.is_deleted
        GROUP BY l.service_name
        ORDER BY {label} DESC;
        """
    )
    rows = fetch_all(cur)
    if metric == "revenue":
        return [{"service_name": r["service_name"], label: round_money(r[label])} for r in rows]
    return [{"service_name": r["service_name"], label: int(r[label])} for r in rows]
