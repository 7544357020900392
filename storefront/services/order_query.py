# storefront/services/order_query.py
from typing import Any, Dict, Iterable, List

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from storefront.domain.errors import NotAuthenticated, NotFound, PersistenceError, ValidationError
from storefront.repos.order_repo import OrderRepo
from storefront.services.order_service import order_to_dict

STATUS_FILTERS = ("all", "paid", "unpaid")


def filter_orders(
    orders: Iterable[Dict[str, Any]],
    status: str = "all",
    search: str = "",
) -> List[Dict[str, Any]]:
    term = (search or "").strip().lower()
    result = []

    for order in orders:
        if status != "all" and order["status"] != status:
            continue

        if term:
            products_match = any(term in i["product_name"].lower() for i in order["items"])
            if not (
                products_match
                or term in order["id"].lower()
                or term in order["customer_name"].lower()
            ):
                continue

        result.append(order)

    return result


class OrderQuery:
    """Read side for the orders page. Never writes."""

    def __init__(self, db: Session, identity: str | None):
        self.repo = OrderRepo(db)
        self.identity = identity

    def list_orders(self, status: str = "all", search: str = "") -> List[Dict[str, Any]]:
        if not self.identity:
            raise NotAuthenticated()
        if status not in STATUS_FILTERS:
            raise ValidationError(f"Unknown status filter {status}", {"status": "Use all, paid or unpaid"})

        try:
            orders = self.repo.list_orders_by_user(self.identity)
        except SQLAlchemyError as e:
            raise PersistenceError("Failed to load orders") from e

        return filter_orders((order_to_dict(o) for o in orders), status, search)

    def get_order(self, order_id: str) -> Dict[str, Any]:
        if not self.identity:
            raise NotAuthenticated()

        try:
            order = self.repo.get_order(order_id)
        except SQLAlchemyError as e:
            raise PersistenceError("Failed to load order") from e

        # someone else's order looks the same as a missing one
        if not order or order.user_id != self.identity:
            raise NotFound(f"Order {order_id} does not exist")

        return order_to_dict(order)
