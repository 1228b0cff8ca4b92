from __future__ import annotations

from psycopg import Connection

from ..domain import Customer, Discount, Principal, Service, User
from ..errors import AuthorizationError, NotFoundError
from ..repositories.customer_repo import CustomerRepository
from ..repositories.discount_repo import DiscountRepository
from ..repositories.service_repo import ServiceRepository
from ..repositories.user_repo import UserRepository


class CatalogLookup:
    """Resolves the entities an order refers to; soft-deleted rows count as missing."""

    def __init__(
        self,
        *,
        customer_repo: CustomerRepository,
        service_repo: ServiceRepository,
        discount_repo: DiscountRepository,
        user_repo: UserRepository,
    ) -> None:
        self.customer_repo = customer_repo
        self.service_repo = service_repo
        self.discount_repo = discount_repo
        self.user_repo = user_repo

    def resolve_customer(self, conn: Connection, customer_id: int, *, for_update: bool = False) -> Customer:
        customer = self.customer_repo.get(conn, customer_id, for_update=for_update)
        if customer is None:
            raise NotFoundError("Customer not found or deleted.")
        return customer

    def resolve_service(self, conn: Connection, service_id: int) -> Service:
        service = self.service_repo.get(conn, service_id)
        if service is None:
            raise NotFoundError(f"Service with ID {service_id} not found or deleted.")
        return service

    def resolve_discount(self, conn: Connection, discount_id: int) -> Discount:
        discount = self.discount_repo.get(conn, discount_id)
        if discount is None:
            raise NotFoundError("Discount not found or deleted.")
        return discount

    def resolve_user(self, conn: Connection, user_id: int) -> User:
        user = self.user_repo.get(conn, user_id)
        if user is None:
            raise NotFoundError("User not found or deleted.")
        return user

    def resolve_handler(self, conn: Connection, handler_id: int, caller: Principal) -> User:
        if handler_id != caller.id and not caller.is_privileged:
            raise AuthorizationError("Only admins or managers can assign orders to other handlers.")
        user = self.user_repo.get(conn, handler_id)
        if user is None or not user.is_active:
            raise NotFoundError("Handler not found or deleted.")
        return user
