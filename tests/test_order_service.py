from __future__ import annotations

from dataclasses import replace
from decimal import Decimal

import pytest

from fakes import NOW
from laundrydesk.errors import AuthorizationError, BusinessRuleError, NotFoundError, ValidationError
from laundrydesk.services.order_service import CreateOrderLineInput, UpdateOrderInput


def _lines(seed, wash=5, iron=1):
    return [CreateOrderLineInput(seed.wash_id, wash), CreateOrderLineInput(seed.iron_id, iron)]


def _create(order_service, db, seed, caller=None, **kwargs):
    kwargs.setdefault("customer_id", seed.customer_id)
    kwargs.setdefault("lines", _lines(seed))
    with db.transaction() as conn:
        return order_service.create_order(conn, caller or seed.clerk, **kwargs)


def _points(store, customer_id):
    return store.find("customer", customer_id).points


# ---- create ------------------------------------------------------------------


def test_create_order_with_discount_debits_points_and_prices_lines(order_service, db, store, seed):
    order = _create(order_service, db, seed, discount_id=seed.fixed_10_id)

    totals = order.totals()
    assert totals.gross == Decimal("55.00")
    assert totals.net == Decimal("45.00")
    assert order.status == "pending"
    assert order.completed_on is None
    assert order.order_date == NOW
    assert order.id.version == 4
    assert order.handler_id == seed.clerk.id
    assert order.handler.username == "eve"
    assert order.discount.name == "Loyalty 10"
    assert _points(store, seed.customer_id) == 50
    assert store.orders[order.id] == order
    assert ("customer", seed.customer_id) in store.locked


def test_create_order_without_enough_points_changes_nothing(order_service, db, store, seed):
    with pytest.raises(BusinessRuleError, match="enough points"):
        _create(order_service, db, seed, discount_id=seed.greedy_id)

    assert _points(store, seed.customer_id) == 100
    assert store.orders == {}


def test_create_order_rejects_fixed_discount_larger_than_gross(order_service, db, store, seed):
    with pytest.raises(BusinessRuleError, match="exceeds"):
        _create(order_service, db, seed, discount_id=seed.big_fixed_id)
    assert store.orders == {}


def test_create_order_with_percent_discount(order_service, db, seed):
    order = _create(order_service, db, seed, discount_id=seed.percent_10_id)
    assert order.totals().net == Decimal("49.5")


def test_create_order_merges_duplicate_services(order_service, db, seed):
    lines = [
        CreateOrderLineInput(seed.wash_id, 2),
        CreateOrderLineInput(seed.iron_id, 1),
        CreateOrderLineInput(seed.wash_id, 3),
    ]
    order = _create(order_service, db, seed, lines=lines)

    assert [(ln.service_id, ln.quantity) for ln in order.lines] == [(seed.wash_id, 5), (seed.iron_id, 1)]
    assert order.find_line(seed.wash_id).line_total == Decimal("50.00")


@pytest.mark.parametrize("lines", [[], [CreateOrderLineInput(1, 0)], [CreateOrderLineInput(1, -2)]])
def test_create_order_validates_lines(order_service, db, seed, lines):
    with pytest.raises(ValidationError):
        _create(order_service, db, seed, lines=lines)


def test_create_order_unknown_service_or_customer(order_service, db, store, seed):
    with pytest.raises(NotFoundError, match="Service with ID 999"):
        _create(order_service, db, seed, lines=[CreateOrderLineInput(999, 1)])

    store.deleted.add(("customer", seed.customer_id))
    with pytest.raises(NotFoundError, match="Customer"):
        _create(order_service, db, seed)


def test_employee_cannot_create_order_for_another_handler(order_service, db, seed):
    with pytest.raises(AuthorizationError):
        _create(order_service, db, seed, handler_id=seed.other_clerk.id)

    order = _create(order_service, db, seed, caller=seed.manager, handler_id=seed.other_clerk.id)
    assert order.handler_id == seed.other_clerk.id
    assert order.handler.username == "erin"


def test_suspended_handler_is_not_assignable(order_service, db, seed):
    with pytest.raises(NotFoundError, match="Handler"):
        _create(order_service, db, seed, caller=seed.admin, handler_id=seed.suspended_id)


def test_order_keeps_snapshots_after_catalog_changes(order_service, db, store, repos, seed):
    order = _create(order_service, db, seed)

    repos.services.update(store, seed.wash_id, {"price_per_unit": Decimal("99.00"), "name": "Premium wash"})
    repos.customers.update(store, seed.customer_id, {"first_name": "Changed"})
    repos.services.soft_delete(store, seed.iron_id)

    loaded = order_service.get_order(store, order.id)
    assert loaded.customer.first_name == "Lan"
    assert loaded.find_line(seed.wash_id).service.name == "Wash & fold"
    assert loaded.find_line(seed.wash_id).service.price_per_unit == Decimal("10.00")
    assert loaded.totals().gross == Decimal("55.00")


# ---- status ------------------------------------------------------------------


def test_status_completed_sets_and_clears_completed_on(order_service, db, store, seed, clock):
    order = _create(order_service, db, seed)
    clock.advance(hours=3)

    with db.transaction() as conn:
        order_service.update_status(conn, seed.clerk, order_id=order.id, status="confirmed")
        done = order_service.update_status(conn, seed.clerk, order_id=order.id, status="completed")
    assert done.completed_on == clock.now
    assert store.orders[order.id].completed_on == clock.now

    with db.transaction() as conn:
        reopened = order_service.update_status(conn, seed.admin, order_id=order.id, status="pending")
    assert reopened.status == "pending"
    assert reopened.completed_on is None


def test_completing_twice_keeps_first_completion_time(order_service, db, seed, clock):
    order = _create(order_service, db, seed)
    with db.transaction() as conn:
        first = order_service.update_status(conn, seed.clerk, order_id=order.id, status="completed")
    clock.advance(days=1)
    with db.transaction() as conn:
        again = order_service.update_status(conn, seed.admin, order_id=order.id, status="completed")
    assert again.completed_on == first.completed_on


def test_closed_order_status_is_locked_for_non_admins(order_service, db, store, seed):
    order = _create(order_service, db, seed)
    with db.transaction() as conn:
        order_service.update_status(conn, seed.clerk, order_id=order.id, status="cancelled")

    for caller in (seed.clerk, seed.manager):
        with pytest.raises(AuthorizationError):
            with db.transaction() as conn:
                order_service.update_status(conn, caller, order_id=order.id, status="pending")
    assert store.orders[order.id].status == "cancelled"


def test_cancelling_does_not_restore_points(order_service, db, store, seed):
    order = _create(order_service, db, seed, discount_id=seed.fixed_10_id)
    with db.transaction() as conn:
        order_service.update_status(conn, seed.clerk, order_id=order.id, status="cancelled")
    assert _points(store, seed.customer_id) == 50


def test_unknown_status_is_rejected(order_service, db, seed):
    order = _create(order_service, db, seed)
    with pytest.raises(ValidationError):
        order_service.update_status(db.store, seed.clerk, order_id=order.id, status="lost")


# ---- update_order ------------------------------------------------------------


def test_update_order_reassigns_discount_without_touching_points(order_service, db, store, seed):
    order = _create(order_service, db, seed, discount_id=seed.fixed_10_id)

    with db.transaction() as conn:
        updated = order_service.update_order(
            conn, seed.manager, order_id=order.id, changes=UpdateOrderInput(discount_id=seed.percent_10_id)
        )
    assert updated.discount.name == "Ten percent"
    assert updated.totals().net == Decimal("49.5")
    assert _points(store, seed.customer_id) == 50

    with db.transaction() as conn:
        cleared = order_service.update_order(conn, seed.manager, order_id=order.id, changes=UpdateOrderInput(discount_id=None))
    assert cleared.discount is None
    assert cleared.totals().net == Decimal("55.00")


def test_update_order_rejects_overshooting_discount(order_service, db, store, seed):
    order = _create(order_service, db, seed)
    with pytest.raises(BusinessRuleError):
        with db.transaction() as conn:
            order_service.update_order(
                conn, seed.manager, order_id=order.id, changes=UpdateOrderInput(discount_id=seed.big_fixed_id)
            )
    assert store.orders[order.id].discount is None


def test_update_order_requires_privilege_and_fields(order_service, db, seed):
    order = _create(order_service, db, seed)
    with pytest.raises(AuthorizationError):
        order_service.update_order(db.store, seed.clerk, order_id=order.id, changes=UpdateOrderInput(status="confirmed"))
    with pytest.raises(ValidationError):
        order_service.update_order(db.store, seed.manager, order_id=order.id, changes=UpdateOrderInput())


def test_update_order_on_closed_order_is_admin_only(order_service, db, seed):
    order = _create(order_service, db, seed)
    with db.transaction() as conn:
        order_service.update_status(conn, seed.clerk, order_id=order.id, status="completed")

    with pytest.raises(AuthorizationError):
        order_service.update_order(
            db.store, seed.manager, order_id=order.id, changes=UpdateOrderInput(handler_id=seed.other_clerk.id)
        )
    with db.transaction() as conn:
        updated = order_service.update_order(
            conn, seed.admin, order_id=order.id, changes=UpdateOrderInput(handler_id=seed.other_clerk.id)
        )
    assert updated.handler.username == "erin"


# ---- lines -------------------------------------------------------------------


def test_add_existing_service_increases_quantity_at_stored_price(order_service, db, store, repos, seed):
    order = _create(order_service, db, seed)
    repos.services.update(store, seed.wash_id, {"price_per_unit": Decimal("20.00")})

    with db.transaction() as conn:
        updated = order_service.add_line(conn, seed.clerk, order_id=order.id, service_id=seed.wash_id, quantity=2)

    line = updated.find_line(seed.wash_id)
    assert line.quantity == 7
    assert line.line_total == Decimal("70.00")
    assert store.orders[order.id].find_line(seed.wash_id).quantity == 7


def test_add_new_service_uses_current_catalog_price(order_service, db, store, repos, seed):
    order = _create(order_service, db, seed, lines=[CreateOrderLineInput(seed.wash_id, 1)])
    repos.services.update(store, seed.iron_id, {"price_per_unit": Decimal("6.50")})

    with db.transaction() as conn:
        updated = order_service.add_line(conn, seed.clerk, order_id=order.id, service_id=seed.iron_id, quantity=2)
    assert updated.find_line(seed.iron_id).line_total == Decimal("13.00")
    assert updated.totals().gross == Decimal("23.00")


def test_update_and_remove_line(order_service, db, store, seed):
    order = _create(order_service, db, seed)

    with db.transaction() as conn:
        updated = order_service.update_line(conn, seed.clerk, order_id=order.id, service_id=seed.iron_id, quantity=4)
    assert updated.find_line(seed.iron_id).line_total == Decimal("20.00")

    with db.transaction() as conn:
        removed = order_service.remove_line(conn, seed.clerk, order_id=order.id, service_id=seed.iron_id)
    assert removed.find_line(seed.iron_id) is None
    assert store.orders[order.id].totals().gross == Decimal("50.00")


def test_missing_line_is_not_found(order_service, db, seed):
    order = _create(order_service, db, seed, lines=[CreateOrderLineInput(seed.wash_id, 1)])
    with pytest.raises(NotFoundError, match="not found in order"):
        order_service.remove_line(db.store, seed.clerk, order_id=order.id, service_id=seed.iron_id)
    with pytest.raises(NotFoundError, match="not found in order"):
        order_service.update_line(db.store, seed.clerk, order_id=order.id, service_id=seed.iron_id, quantity=1)


def test_line_change_cannot_push_fixed_discount_past_gross(order_service, db, store, seed):
    order = _create(order_service, db, seed, discount_id=seed.fixed_10_id)
    with pytest.raises(BusinessRuleError):
        with db.transaction() as conn:
            order_service.remove_line(conn, seed.clerk, order_id=order.id, service_id=seed.wash_id)
    assert store.orders[order.id].find_line(seed.wash_id) is not None


def test_lines_of_closed_order_are_locked_except_for_admin(order_service, db, seed):
    order = _create(order_service, db, seed)
    with db.transaction() as conn:
        order_service.update_status(conn, seed.clerk, order_id=order.id, status="completed")

    with pytest.raises(BusinessRuleError):
        order_service.add_line(db.store, seed.clerk, order_id=order.id, service_id=seed.iron_id, quantity=1)

    with db.transaction() as conn:
        updated = order_service.add_line(conn, seed.admin, order_id=order.id, service_id=seed.iron_id, quantity=1)
    assert updated.find_line(seed.iron_id).quantity == 2


def test_only_handler_or_admin_changes_lines(order_service, db, seed):
    order = _create(order_service, db, seed)
    with pytest.raises(AuthorizationError):
        order_service.update_line(db.store, seed.other_clerk, order_id=order.id, service_id=seed.wash_id, quantity=1)


def test_unassigned_order_accepts_line_changes_from_any_staff(order_service, db, store, seed):
    order = _create(order_service, db, seed)
    store.orders[order.id] = replace(store.orders[order.id], handler_id=None, handler=None)

    with db.transaction() as conn:
        updated = order_service.update_line(
            conn, seed.other_clerk, order_id=order.id, service_id=seed.wash_id, quantity=1
        )
    assert updated.find_line(seed.wash_id).quantity == 1


# ---- queries / delete --------------------------------------------------------


def test_delete_order_is_soft_and_privileged(order_service, db, store, seed):
    order = _create(order_service, db, seed)
    with pytest.raises(AuthorizationError):
        order_service.delete_order(db.store, seed.clerk, order_id=order.id)

    with db.transaction() as conn:
        order_service.delete_order(conn, seed.manager, order_id=order.id)
    assert store.orders[order.id].is_deleted
    with pytest.raises(NotFoundError):
        order_service.get_order(db.store, order.id)
    with pytest.raises(NotFoundError):
        order_service.delete_order(db.store, seed.manager, order_id=order.id)


def test_open_orders_for_handler(order_service, db, seed):
    first = _create(order_service, db, seed)
    second = _create(order_service, db, seed)
    with db.transaction() as conn:
        order_service.update_status(conn, seed.clerk, order_id=second.id, status="completed")

    open_orders = order_service.list_open_orders_for_handler(db.store, seed.clerk, handler_id=seed.clerk.id)
    assert [o.id for o in open_orders] == [first.id]

    with pytest.raises(AuthorizationError):
        order_service.list_open_orders_for_handler(db.store, seed.other_clerk, handler_id=seed.clerk.id)
    with pytest.raises(NotFoundError):
        order_service.list_open_orders_for_handler(db.store, seed.admin, handler_id=999)


def test_list_orders_is_privileged(order_service, db, seed):
    _create(order_service, db, seed)
    with pytest.raises(AuthorizationError):
        order_service.list_orders(db.store, seed.clerk, limit=10, offset=0)
    rows, total = order_service.list_orders(db.store, seed.manager, limit=10, offset=0)
    assert total == 1 and len(rows) == 1


def test_lost_points_race_aborts_order(order_service, db, store, repos, seed, monkeypatch):
    # a concurrent redemption drained the points after the locked read
    monkeypatch.setattr(repos.customers, "debit_points", lambda conn, *, customer_id, points: False)

    with pytest.raises(BusinessRuleError, match="enough points"):
        _create(order_service, db, seed, discount_id=seed.fixed_10_id)

    assert store.orders == {}
    assert _points(store, seed.customer_id) == 100
