from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal

import pytest

from fakes import (
    NOW,
    FakeCustomerRepository,
    FakeDb,
    FakeDiscountRepository,
    FakeExpenseRepository,
    FakeOrderLineRepository,
    FakeOrderRepository,
    FakeServiceRepository,
    FakeStore,
    FakeUserRepository,
)
from laundrydesk.domain import Principal
from laundrydesk.services.catalog import CatalogLookup
from laundrydesk.services.order_service import OrderService
from laundrydesk.web_app import Repositories


class Clock:
    def __init__(self) -> None:
        self.now = NOW

    def __call__(self):
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@dataclass
class Seed:
    admin: Principal
    manager: Principal
    clerk: Principal
    other_clerk: Principal
    suspended_id: int
    customer_id: int
    poor_customer_id: int
    wash_id: int
    iron_id: int
    fixed_10_id: int
    percent_10_id: int
    greedy_id: int
    big_fixed_id: int


@pytest.fixture()
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture()
def db(store) -> FakeDb:
    return FakeDb(store)


@pytest.fixture()
def repos() -> Repositories:
    return Repositories(
        customers=FakeCustomerRepository(),
        services=FakeServiceRepository(),
        discounts=FakeDiscountRepository(),
        users=FakeUserRepository(),
        expenses=FakeExpenseRepository(),
        orders=FakeOrderRepository(),
        order_lines=FakeOrderLineRepository(),
    )


@pytest.fixture()
def clock() -> Clock:
    return Clock()


@pytest.fixture()
def catalog(repos) -> CatalogLookup:
    return CatalogLookup(
        customer_repo=repos.customers,
        service_repo=repos.services,
        discount_repo=repos.discounts,
        user_repo=repos.users,
    )


@pytest.fixture()
def order_service(repos, catalog, clock) -> OrderService:
    return OrderService(
        catalog=catalog,
        customer_repo=repos.customers,
        order_repo=repos.orders,
        order_line_repo=repos.order_lines,
        clock=clock,
    )


@pytest.fixture()
def seed(store, repos) -> Seed:
    def staff(username: str, role: str) -> Principal:
        user_id = repos.users.create(store, username=username, role=role, password_hash="x")
        return Principal(id=user_id, username=username, role=role)

    admin = staff("alice", "admin")
    manager = staff("mona", "manager")
    clerk = staff("eve", "employee")
    other_clerk = staff("erin", "employee")
    suspended_id = repos.users.create(store, username="sam", role="employee", password_hash="x", status="suspended")

    customer_id = repos.customers.create(
        store, first_name="Lan", last_name="Nguyen", phone_number="0901234567", address="12 Le Loi, District 1", points=100
    )
    poor_customer_id = repos.customers.create(
        store, first_name="Minh", last_name="Tran", phone_number=None, address="5 Hai Ba Trung", points=0
    )

    wash_id = repos.services.create(store, name="Wash & fold", unit="kg", price_per_unit=Decimal("10.00"))
    iron_id = repos.services.create(store, name="Ironing", unit="item", price_per_unit=Decimal("5.00"))

    fixed_10_id = repos.discounts.create(
        store, name="Loyalty 10", required_points=50, discount_type="fixed", amount=Decimal("10")
    )
    percent_10_id = repos.discounts.create(
        store, name="Ten percent", required_points=0, discount_type="percent", amount=Decimal("10")
    )
    greedy_id = repos.discounts.create(
        store, name="Gold", required_points=150, discount_type="fixed", amount=Decimal("10")
    )
    big_fixed_id = repos.discounts.create(
        store, name="Jackpot", required_points=0, discount_type="fixed", amount=Decimal("80")
    )

    return Seed(
        admin=admin,
        manager=manager,
        clerk=clerk,
        other_clerk=other_clerk,
        suspended_id=suspended_id,
        customer_id=customer_id,
        poor_customer_id=poor_customer_id,
        wash_id=wash_id,
        iron_id=iron_id,
        fixed_10_id=fixed_10_id,
        percent_10_id=percent_10_id,
        greedy_id=greedy_id,
        big_fixed_id=big_fixed_id,
    )
