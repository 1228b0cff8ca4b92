from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable

from flask import Flask, g, jsonify, request
from werkzeug.exceptions import HTTPException

from .auth import TokenSigner, bearer_token, hash_password, verify_password
from .config import AppConfig, ConfigError, configure_logging, load_config
from .db import Db
from .domain import DISCOUNT_TYPES, ROLES, USER_STATUSES, Customer, Discount, Expense, Order, Service, User
from .errors import AppError, AuthenticationError, AuthorizationError, NotFoundError, ServerError, ValidationError
from .pricing import discount_rule, round_money
from .reports import financial_summary, order_traffic, resolve_date_range, service_popularity
from .repositories.customer_repo import CustomerRepository
from .repositories.discount_repo import DiscountRepository
from .repositories.expense_repo import ExpenseRepository
from .repositories.order_line_repo import OrderLineRepository
from .repositories.order_repo import OrderRepository
from .repositories.service_repo import ServiceRepository
from .repositories.user_repo import UserRepository
from .services.catalog import CatalogLookup
from .services.order_service import CreateOrderLineInput, OrderService, UpdateOrderInput, utcnow
from .validation import (
    parse_amount,
    parse_choice,
    parse_datetime,
    parse_id,
    parse_non_negative_int,
    parse_optional_id,
    parse_optional_text,
    parse_order_id,
    parse_page,
    parse_phone,
    parse_quantity,
    parse_text,
    require_body,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Repositories:
    customers: CustomerRepository
    services: ServiceRepository
    discounts: DiscountRepository
    users: UserRepository
    expenses: ExpenseRepository
    orders: OrderRepository
    order_lines: OrderLineRepository


def build_repositories() -> Repositories:
    order_lines = OrderLineRepository()
    return Repositories(
        customers=CustomerRepository(),
        services=ServiceRepository(),
        discounts=DiscountRepository(),
        users=UserRepository(),
        expenses=ExpenseRepository(),
        orders=OrderRepository(order_lines),
        order_lines=order_lines,
    )


# ---- JSON views ---------------------------------------------------------------


def _ts(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _money(value) -> str:
    return str(round_money(value))


def customer_json(c: Customer) -> dict:
    return {
        "id": c.id,
        "first_name": c.first_name,
        "last_name": c.last_name,
        "phone_number": c.phone_number,
        "address": c.address,
        "points": c.points,
    }


def service_json(s: Service) -> dict:
    return {"id": s.id, "name": s.name, "unit": s.unit, "price_per_unit": _money(s.price_per_unit)}


def discount_json(d: Discount) -> dict:
    return {
        "id": d.id,
        "name": d.name,
        "required_points": d.required_points,
        "discount_type": d.discount_type,
        "amount": _money(d.amount),
        "created_at": _ts(d.created_at),
    }


def user_json(u: User) -> dict:
    return {
        "id": u.id,
        "username": u.username,
        "role": u.role,
        "status": u.status,
        "phone_number": u.phone_number,
    }


def expense_json(e: Expense) -> dict:
    return {
        "id": e.id,
        "amount": _money(e.amount),
        "expense_date": _ts(e.expense_date),
        "description": e.description,
    }


def order_json(o: Order) -> dict:
    totals = o.totals()
    return {
        "id": str(o.id),
        "customer_id": o.customer_id,
        "customer": {
            "first_name": o.customer.first_name,
            "last_name": o.customer.last_name,
            "phone_number": o.customer.phone_number,
            "address": o.customer.address,
        },
        "handler_id": o.handler_id,
        "handler": {"username": o.handler.username, "role": o.handler.role} if o.handler else None,
        "discount_id": o.discount_id,
        "discount": {
            "name": o.discount.name,
            "discount_type": o.discount.discount_type,
            "amount": _money(o.discount.amount),
            "required_points": o.discount.required_points,
        }
        if o.discount
        else None,
        "lines": [
            {
                "service_id": ln.service_id,
                "service_name": ln.service.name,
                "service_unit": ln.service.unit,
                "price_per_unit": _money(ln.service.price_per_unit),
                "quantity": ln.quantity,
                "line_total": _money(ln.line_total),
            }
            for ln in o.lines
        ],
        "status": o.status,
        "order_date": _ts(o.order_date),
        "completed_on": _ts(o.completed_on),
        "gross_total": _money(totals.gross),
        "discount_total": _money(totals.discount),
        "net_total": _money(totals.net),
    }


def _pagination(total: int, page: int, limit: int) -> dict:
    return {"total_records": total, "page": page, "limit": limit, "total_pages": -(-total // limit)}


# ---- request field parsing -------------------------------------------------------


def _customer_fields(payload: dict, *, partial: bool) -> dict:
    fields = {}
    if not partial or "first_name" in payload:
        fields["first_name"] = parse_text(payload.get("first_name"), "first_name", min_len=2, max_len=32)
    if not partial or "last_name" in payload:
        fields["last_name"] = parse_text(payload.get("last_name"), "last_name", min_len=2, max_len=32)
    if not partial or "phone_number" in payload:
        fields["phone_number"] = parse_phone(payload.get("phone_number"))
    if not partial or "address" in payload:
        fields["address"] = parse_text(payload.get("address"), "address", min_len=5, max_len=128)
    if partial and payload.get("points") is not None:
        fields["points"] = parse_non_negative_int(payload["points"], "points")
    return fields


def _service_fields(payload: dict, *, partial: bool) -> dict:
    fields = {}
    if not partial or "name" in payload:
        fields["name"] = parse_text(payload.get("name"), "name", max_len=30)
    if not partial or "unit" in payload:
        fields["unit"] = parse_text(payload.get("unit"), "unit", max_len=20)
    if not partial or "price_per_unit" in payload:
        fields["price_per_unit"] = parse_amount(payload.get("price_per_unit"), "price_per_unit")
    return fields


def _discount_fields(payload: dict, *, partial: bool) -> dict:
    fields = {}
    if not partial or "name" in payload:
        fields["name"] = parse_text(payload.get("name"), "name", max_len=30)
    if not partial or "required_points" in payload:
        fields["required_points"] = parse_non_negative_int(payload.get("required_points"), "required_points")
    if not partial or "discount_type" in payload:
        fields["discount_type"] = parse_choice(payload.get("discount_type"), "discount_type", DISCOUNT_TYPES)
    if not partial or "amount" in payload:
        fields["amount"] = parse_amount(payload.get("amount"), "amount")
    return fields


def _expense_fields(payload: dict, *, partial: bool) -> dict:
    fields = {}
    if not partial or "amount" in payload:
        fields["amount"] = parse_amount(payload.get("amount"), "amount")
    if not partial or "description" in payload:
        fields["description"] = parse_optional_text(payload.get("description"), "description", max_len=50)
    if payload.get("expense_date") is not None:
        fields["expense_date"] = parse_datetime(payload["expense_date"], "expense_date")
    return fields


def _user_fields(payload: dict, *, partial: bool) -> dict:
    fields = {}
    if not partial or "username" in payload:
        fields["username"] = parse_text(payload.get("username"), "username", min_len=3, max_len=32)
    if not partial or "password" in payload:
        password = payload.get("password")
        if not isinstance(password, str) or len(password) < 6:
            raise ValidationError("password must be at least 6 characters.")
        fields["password_hash"] = hash_password(password)
    if not partial or "role" in payload:
        fields["role"] = parse_choice(payload.get("role"), "role", ROLES)
    if "status" in payload:
        fields["status"] = parse_choice(payload.get("status"), "status", USER_STATUSES)
    if "phone_number" in payload:
        fields["phone_number"] = parse_phone(payload.get("phone_number"))
    return fields


def _order_lines(payload: dict) -> list[CreateOrderLineInput]:
    raw = payload.get("lines")
    if not isinstance(raw, list) or not raw:
        raise ValidationError("At least one service must be provided.")
    lines = []
    for i, item in enumerate(raw):
        if not isinstance(item, dict):
            raise ValidationError(f"lines[{i}] must be an object.")
        lines.append(
            CreateOrderLineInput(
                service_id=parse_id(item.get("service_id"), f"lines[{i}].service_id"),
                quantity=parse_quantity(item.get("quantity"), f"lines[{i}].quantity"),
            )
        )
    return lines


# ---- app factory -------------------------------------------------------------------


def create_app(
    cfg: AppConfig,
    db: Db | None = None,
    repos: Repositories | None = None,
    clock: Callable[[], datetime] = utcnow,
) -> Flask:
    db = db or Db(cfg.db)
    repos = repos or build_repositories()
    signer = TokenSigner(cfg.auth.secret_key, cfg.auth.token_max_age_seconds)
    catalog = CatalogLookup(
        customer_repo=repos.customers,
        service_repo=repos.services,
        discount_repo=repos.discounts,
        user_repo=repos.users,
    )
    order_service = OrderService(
        catalog=catalog,
        customer_repo=repos.customers,
        order_repo=repos.orders,
        order_line_repo=repos.order_lines,
        clock=clock,
    )

    app = Flask(__name__)
    app.config["SECRET_KEY"] = cfg.auth.secret_key

    def ok(data=None, status: int = 200, **extra):
        body = {"success": True, **extra}
        if data is not None:
            body["data"] = data
        return jsonify(body), status

    def body() -> dict:
        return require_body(request.get_json(silent=True))

    def page_args() -> tuple[int, int]:
        return parse_page(
            request.args,
            default_limit=cfg.business.default_page_size,
            max_limit=cfg.business.max_page_size,
        )

    def require_roles(*roles: str) -> None:
        if g.principal.role not in roles:
            raise AuthorizationError("Forbidden")

    def today():
        return clock().astimezone(timezone.utc).date()

    # ---- boundary --------------------------------------------------------------

    @app.before_request
    def load_principal():
        if request.path.startswith("/api/"):
            g.principal = signer.load(bearer_token(request.headers.get("Authorization")))

    @app.errorhandler(AppError)
    def handle_app_error(e: AppError):
        message = e.message
        if isinstance(e, ServerError):
            logger.error("server error on %s %s: %s", request.method, request.path, e, exc_info=e)
            message = ServerError.public_message
        return jsonify({"success": False, "error": e.kind, "message": message}), e.status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(e: HTTPException):
        return jsonify({"success": False, "error": "http_error", "message": e.description}), e.code

    @app.errorhandler(Exception)
    def handle_unexpected(e: Exception):
        logger.exception("unhandled error on %s %s", request.method, request.path)
        return jsonify({"success": False, "error": ServerError.kind, "message": ServerError.public_message}), 500

    @app.get("/health")
    def health():
        return jsonify({"status": "ok"})

    # ---- auth ------------------------------------------------------------------

    @app.post("/auth/login")
    def login():
        payload = body()
        username = payload.get("username")
        password = payload.get("password")
        if not isinstance(username, str) or not isinstance(password, str):
            raise ValidationError("username and password are required.")
        with db.session() as conn:
            user = repos.users.get_by_username(conn, username.strip())
        if user is None or not user.is_active or not verify_password(user, password):
            raise AuthenticationError("Invalid credentials")
        return jsonify({"success": True, "user": user_json(user), "token": signer.issue(user)})

    # ---- users -----------------------------------------------------------------

    @app.get("/api/users")
    def users_list():
        require_roles("admin", "manager")
        page, limit = page_args()
        with db.session() as conn:
            rows = repos.users.list(conn, limit=limit, offset=(page - 1) * limit)
            total = repos.users.count(conn)
        return ok([user_json(u) for u in rows], pagination=_pagination(total, page, limit))

    @app.get("/api/users/<user_id>")
    def users_get(user_id):
        user_id = parse_id(user_id)
        if user_id != g.principal.id and not g.principal.is_privileged:
            raise AuthorizationError("Forbidden")
        with db.session() as conn:
            user = repos.users.get(conn, user_id)
        if user is None:
            raise NotFoundError("User not found")
        return ok(user_json(user))

    @app.post("/api/users")
    def users_create():
        require_roles("admin", "manager")
        fields = _user_fields(body(), partial=False)
        if fields["role"] == "admin" and not g.principal.is_admin:
            raise AuthorizationError("Only admins can create admin users.")
        with db.transaction() as conn:
            if repos.users.get_by_username(conn, fields["username"]) is not None:
                raise ValidationError("Username already exists.")
            user_id = repos.users.create(conn, **fields)
            user = repos.users.get(conn, user_id)
        return ok(user_json(user), 201)

    @app.put("/api/users/<user_id>")
    def users_update(user_id):
        user_id = parse_id(user_id)
        if user_id != g.principal.id and not g.principal.is_admin:
            raise AuthorizationError("Forbidden")
        fields = _user_fields(body(), partial=True)
        if ("role" in fields or "status" in fields) and not g.principal.is_admin:
            raise AuthorizationError("Only admins can change role or status.")
        if not fields:
            raise ValidationError("No fields to update")
        with db.transaction() as conn:
            if "username" in fields:
                other = repos.users.get_by_username(conn, fields["username"])
                if other is not None and other.id != user_id:
                    raise ValidationError("Username already exists.")
            user = repos.users.update(conn, user_id, fields)
        if user is None:
            raise NotFoundError("User not found or deleted")
        return ok(user_json(user))

    @app.delete("/api/users/<user_id>")
    def users_delete(user_id):
        require_roles("admin")
        user_id = parse_id(user_id)
        with db.transaction() as conn:
            if not repos.users.soft_delete(conn, user_id):
                raise NotFoundError("User not found or already deleted")
        return "", 204

    # ---- customers -------------------------------------------------------------

    @app.get("/api/customers")
    def customers_list():
        page, limit = page_args()
        with db.session() as conn:
            rows = repos.customers.list(conn, limit=limit, offset=(page - 1) * limit)
            total = repos.customers.count(conn)
        return ok([customer_json(c) for c in rows], pagination=_pagination(total, page, limit))

    @app.get("/api/customers/search")
    def customers_search():
        page, limit = page_args()
        criteria = {k: (request.args.get(k) or "").strip() or None for k in ("phone_number", "first_name", "last_name")}
        if not any(criteria.values()):
            raise ValidationError("phone_number, first_name or last_name is required.")
        with db.session() as conn:
            rows, total = repos.customers.search(conn, limit=limit, offset=(page - 1) * limit, **criteria)
        if not rows:
            raise NotFoundError("No customers found matching the specified criteria.")
        return ok([customer_json(c) for c in rows], pagination=_pagination(total, page, limit))

    @app.get("/api/customers/<customer_id>")
    def customers_get(customer_id):
        with db.session() as conn:
            customer = repos.customers.get(conn, parse_id(customer_id))
        if customer is None:
            raise NotFoundError("Customer not found")
        return ok(customer_json(customer))

    @app.post("/api/customers")
    def customers_create():
        fields = _customer_fields(body(), partial=False)
        with db.transaction() as conn:
            customer_id = repos.customers.create(conn, **fields)
            customer = repos.customers.get(conn, customer_id)
        return ok(customer_json(customer), 201)

    @app.put("/api/customers/<customer_id>")
    def customers_update(customer_id):
        require_roles("admin", "manager")
        customer_id = parse_id(customer_id)
        fields = _customer_fields(body(), partial=True)
        if not fields:
            raise ValidationError("No fields to update")
        with db.transaction() as conn:
            customer = repos.customers.update(conn, customer_id, fields)
        if customer is None:
            raise NotFoundError("Customer not found or deleted")
        return ok(customer_json(customer))

    @app.delete("/api/customers/<customer_id>")
    def customers_delete(customer_id):
        require_roles("admin", "manager")
        customer_id = parse_id(customer_id)
        with db.transaction() as conn:
            if not repos.customers.soft_delete(conn, customer_id):
                raise NotFoundError("Customer not found or already deleted")
        return "", 204

    # ---- services --------------------------------------------------------------

    @app.get("/api/services")
    def services_list():
        page, limit = page_args()
        with db.session() as conn:
            rows = repos.services.list(conn, limit=limit, offset=(page - 1) * limit)
            total = repos.services.count(conn)
        return ok([service_json(s) for s in rows], pagination=_pagination(total, page, limit))

    @app.get("/api/services/search")
    def services_search():
        page, limit = page_args()
        name = (request.args.get("name") or "").strip()
        if not name:
            raise ValidationError("name is required.")
        with db.session() as conn:
            rows = repos.services.list(conn, limit=limit, offset=(page - 1) * limit, name=name)
            total = repos.services.count(conn, name=name)
        return ok([service_json(s) for s in rows], pagination=_pagination(total, page, limit))

    @app.get("/api/services/<service_id>")
    def services_get(service_id):
        with db.session() as conn:
            service = repos.services.get(conn, parse_id(service_id))
        if service is None:
            raise NotFoundError("Service not found")
        return ok(service_json(service))

    @app.post("/api/services")
    def services_create():
        require_roles("admin", "manager")
        fields = _service_fields(body(), partial=False)
        with db.transaction() as conn:
            service_id = repos.services.create(conn, **fields)
            service = repos.services.get(conn, service_id)
        return ok(service_json(service), 201)

    @app.put("/api/services/<service_id>")
    def services_update(service_id):
        require_roles("admin", "manager")
        service_id = parse_id(service_id)
        fields = _service_fields(body(), partial=True)
        if not fields:
            raise ValidationError("No fields to update")
        with db.transaction() as conn:
            service = repos.services.update(conn, service_id, fields)
        if service is None:
            raise NotFoundError("Service not found or deleted")
        return ok(service_json(service))

    @app.delete("/api/services/<service_id>")
    def services_delete(service_id):
        require_roles("admin", "manager")
        service_id = parse_id(service_id)
        with db.transaction() as conn:
            if not repos.services.soft_delete(conn, service_id):
                raise NotFoundError("Service not found or already deleted")
        return "", 204

    # ---- discounts -------------------------------------------------------------

    @app.get("/api/discounts")
    def discounts_list():
        page, limit = page_args()
        with db.session() as conn:
            rows = repos.discounts.list(conn, limit=limit, offset=(page - 1) * limit)
            total = repos.discounts.count(conn)
        return ok([discount_json(d) for d in rows], pagination=_pagination(total, page, limit))

    @app.get("/api/discounts/<discount_id>")
    def discounts_get(discount_id):
        with db.session() as conn:
            discount = repos.discounts.get(conn, parse_id(discount_id))
        if discount is None:
            raise NotFoundError("Discount not found")
        return ok(discount_json(discount))

    @app.post("/api/discounts")
    def discounts_create():
        require_roles("admin", "manager")
        fields = _discount_fields(body(), partial=False)
        discount_rule(fields["discount_type"], fields["amount"])
        with db.transaction() as conn:
            discount_id = repos.discounts.create(conn, **fields)
            discount = repos.discounts.get(conn, discount_id)
        return ok(discount_json(discount), 201)

    @app.put("/api/discounts/<discount_id>")
    def discounts_update(discount_id):
        require_roles("admin", "manager")
        discount_id = parse_id(discount_id)
        fields = _discount_fields(body(), partial=True)
        if not fields:
            raise ValidationError("No fields to update")
        with db.transaction() as conn:
            current = repos.discounts.get(conn, discount_id)
            if current is None:
                raise NotFoundError("Discount not found or deleted")
            discount_rule(fields.get("discount_type", current.discount_type), fields.get("amount", current.amount))
            discount = repos.discounts.update(conn, discount_id, fields)
        return ok(discount_json(discount))

    @app.delete("/api/discounts/<discount_id>")
    def discounts_delete(discount_id):
        require_roles("admin")
        discount_id = parse_id(discount_id)
        with db.transaction() as conn:
            if not repos.discounts.soft_delete(conn, discount_id):
                raise NotFoundError("Discount not found or already deleted")
        return "", 204

    # ---- expenses --------------------------------------------------------------

    @app.get("/api/expenses")
    def expenses_list():
        require_roles("admin", "manager")
        page, limit = page_args()
        with db.session() as conn:
            rows = repos.expenses.list(conn, limit=limit, offset=(page - 1) * limit)
            total = repos.expenses.count(conn)
        return ok([expense_json(e) for e in rows], pagination=_pagination(total, page, limit))

    @app.get("/api/expenses/by-date-range")
    def expenses_by_date_range():
        require_roles("admin", "manager")
        period = resolve_date_range(request.args.get("start"), request.args.get("end"), today=today(), allow_future=True)
        with db.session() as conn:
            rows = repos.expenses.list_between(conn, period.start, period.end)
        return ok([expense_json(e) for e in rows])

    @app.get("/api/expenses/<expense_id>")
    def expenses_get(expense_id):
        require_roles("admin", "manager")
        with db.session() as conn:
            expense = repos.expenses.get(conn, parse_id(expense_id))
        if expense is None:
            raise NotFoundError("Expense not found")
        return ok(expense_json(expense))

    @app.post("/api/expenses")
    def expenses_create():
        require_roles("admin", "manager")
        fields = _expense_fields(body(), partial=False)
        with db.transaction() as conn:
            expense_id = repos.expenses.create(conn, **fields)
            expense = repos.expenses.get(conn, expense_id)
        return ok(expense_json(expense), 201)

    @app.put("/api/expenses/<expense_id>")
    def expenses_update(expense_id):
        require_roles("admin")
        expense_id = parse_id(expense_id)
        fields = _expense_fields(body(), partial=True)
        if not fields:
            raise ValidationError("No fields to update")
        with db.transaction() as conn:
            expense = repos.expenses.update(conn, expense_id, fields)
        if expense is None:
            raise NotFoundError("Expense not found or deleted")
        return ok(expense_json(expense))

    @app.delete("/api/expenses/<expense_id>")
    def expenses_delete(expense_id):
        require_roles("admin")
        expense_id = parse_id(expense_id)
        with db.transaction() as conn:
            if not repos.expenses.soft_delete(conn, expense_id):
                raise NotFoundError("Expense not found or already deleted")
        return "", 204

    # ---- orders ----------------------------------------------------------------

    @app.get("/api/orders")
    def orders_list():
        page, limit = page_args()
        with db.session() as conn:
            rows, total = order_service.list_orders(conn, g.principal, limit=limit, offset=(page - 1) * limit)
        return ok([order_json(o) for o in rows], pagination=_pagination(total, page, limit))

    @app.get("/api/orders/search")
    def orders_search():
        period = resolve_date_range(request.args.get("start"), request.args.get("end"), today=today(), allow_future=True)
        with db.session() as conn:
            rows = order_service.list_orders_by_date_range(
                conn, g.principal, date_from=period.start, date_to=period.end
            )
        return ok([order_json(o) for o in rows])

    @app.get("/api/orders/current/<handler_id>")
    def orders_current(handler_id):
        handler_id = parse_id(handler_id, "handler_id")
        with db.session() as conn:
            rows = order_service.list_open_orders_for_handler(conn, g.principal, handler_id=handler_id)
        return ok([order_json(o) for o in rows])

    @app.get("/api/orders/<order_id>")
    def orders_get(order_id):
        with db.session() as conn:
            order = order_service.get_order(conn, parse_order_id(order_id))
        return ok(order_json(order))

    @app.post("/api/orders")
    def orders_create():
        payload = body()
        customer_id = parse_id(payload.get("customer_id"), "customer_id")
        handler_id = parse_optional_id(payload.get("handler_id"), "handler_id")
        discount_id = parse_optional_id(payload.get("discount_id"), "discount_id")
        lines = _order_lines(payload)
        with db.transaction() as conn:
            order = order_service.create_order(
                conn,
                g.principal,
                customer_id=customer_id,
                handler_id=handler_id,
                discount_id=discount_id,
                lines=lines,
            )
        return ok(order_json(order), 201, message="Order created successfully")

    @app.patch("/api/orders/<order_id>/status")
    def orders_update_status(order_id):
        order_id = parse_order_id(order_id)
        status = body().get("status")
        if not isinstance(status, str):
            raise ValidationError("status is required.")
        with db.transaction() as conn:
            order = order_service.update_status(conn, g.principal, order_id=order_id, status=status)
        return ok(order_json(order), message="Order status updated")

    @app.put("/api/orders/<order_id>")
    def orders_update(order_id):
        order_id = parse_order_id(order_id)
        payload = body()
        changes = UpdateOrderInput(status=payload.get("status"))
        if "handler_id" in payload:
            changes.handler_id = parse_optional_id(payload["handler_id"], "handler_id")
        if "discount_id" in payload:
            changes.discount_id = parse_optional_id(payload["discount_id"], "discount_id")
        with db.transaction() as conn:
            order = order_service.update_order(conn, g.principal, order_id=order_id, changes=changes)
        return ok(order_json(order), message="Order updated")

    @app.delete("/api/orders/<order_id>")
    def orders_delete(order_id):
        order_id = parse_order_id(order_id)
        with db.transaction() as conn:
            order_service.delete_order(conn, g.principal, order_id=order_id)
        return "", 204

    @app.post("/api/orders/<order_id>/lines")
    def orders_add_line(order_id):
        order_id = parse_order_id(order_id)
        payload = body()
        service_id = parse_id(payload.get("service_id"), "service_id")
        quantity = parse_quantity(payload.get("quantity"))
        with db.transaction() as conn:
            order = order_service.add_line(conn, g.principal, order_id=order_id, service_id=service_id, quantity=quantity)
        return ok(order_json(order), 201, message="Service added to order")

    @app.put("/api/orders/<order_id>/lines/<service_id>")
    def orders_update_line(order_id, service_id):
        order_id = parse_order_id(order_id)
        service_id = parse_id(service_id, "service_id")
        quantity = parse_quantity(body().get("quantity"))
        with db.transaction() as conn:
            order = order_service.update_line(
                conn, g.principal, order_id=order_id, service_id=service_id, quantity=quantity
            )
        return ok(order_json(order), message="Service quantity updated in order")

    @app.delete("/api/orders/<order_id>/lines/<service_id>")
    def orders_remove_line(order_id, service_id):
        order_id = parse_order_id(order_id)
        service_id = parse_id(service_id, "service_id")
        with db.transaction() as conn:
            order = order_service.remove_line(conn, g.principal, order_id=order_id, service_id=service_id)
        return ok(order_json(order), message="Service removed from order")

    # ---- analytics -------------------------------------------------------------

    @app.get("/api/analytics/financial")
    def analytics_financial():
        require_roles("admin", "manager")
        period = resolve_date_range(request.args.get("start"), request.args.get("end"), today=today())
        with db.session() as conn:
            summary = financial_summary(conn, period)
        return ok(_jsonable(summary), message="Financial summary fetched successfully")

    @app.get("/api/analytics/traffic")
    def analytics_traffic():
        require_roles("admin", "manager")
        period = resolve_date_range(request.args.get("start"), request.args.get("end"), today=today())
        with db.session() as conn:
            summary = order_traffic(conn, period)
        return ok(summary, message="Order volume summary fetched successfully.")

    @app.get("/api/analytics/service-popularity")
    def analytics_service_popularity():
        require_roles("admin", "manager")
        metric = request.args.get("type", "")
        with db.session() as conn:
            rows = service_popularity(conn, metric)
        return ok(_jsonable(rows), type=metric)

    return app


def _jsonable(value):
    """Turn the Decimals of report structures into strings."""
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_jsonable(v) for v in value]
    if isinstance(value, Decimal):
        return str(value)
    return value


if __name__ == "__main__":
    try:
        cfg = load_config("config.toml")
    except ConfigError as e:
        print(f"[CONFIG ERROR] {e}")
        raise SystemExit(2)
    configure_logging(cfg.log_level)
    create_app(cfg).run(debug=False, host="127.0.0.1", port=5000)
