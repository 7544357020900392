# storefront/services/order_service.py
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from storefront.data.models.order import OrderModel, ORDER_UNPAID
from storefront.data.models.order_item import OrderItemModel
from storefront.domain.errors import NotAuthenticated, NotFound, PersistenceError, ValidationError
from storefront.repos.order_repo import OrderRepo
from storefront.utils.money import lines_subtotal, shipping_for, to_money
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

CUSTOMER_FIELDS = ("name", "email")
ADDRESS_FIELDS = ("street", "city", "state", "postal_code", "country")


def order_totals(lines: Sequence[Mapping[str, Any]]) -> Dict[str, Decimal]:
    subtotal = lines_subtotal(lines)
    shipping = shipping_for(subtotal)
    return {"subtotal": subtotal, "shipping_fee": shipping, "total": subtotal + shipping}


def validate_checkout(
    customer_info: Mapping[str, Any],
    shipping_address: Mapping[str, Any],
    cart_snapshot: Sequence[Mapping[str, Any]],
) -> None:
    errors: Dict[str, str] = {}

    for field in CUSTOMER_FIELDS:
        if not str(customer_info.get(field) or "").strip():
            errors[field] = "This field is required"

    for field in ADDRESS_FIELDS:
        if not str(shipping_address.get(field) or "").strip():
            errors[f"shipping_address.{field}"] = "This field is required"

    if not cart_snapshot:
        errors["items"] = "Cart is empty"

    if errors:
        raise ValidationError("Please fill in all required fields", errors)


class OrderService:
    """
    Order use cases.
    Orders are written once from a cart snapshot; afterwards only the status
    and the payment session reference change.
    """

    def __init__(self, db: Session, identity: str | None = None):
        self.db = db
        self.repo = OrderRepo(db)
        self.identity = identity

    def create_order(
        self,
        customer_info: Mapping[str, Any],
        shipping_address: Mapping[str, Any],
        cart_snapshot: Sequence[Mapping[str, Any]],
    ) -> str:
        """
        Use Case: create an order from a cart snapshot.

        1. Validates customer and shipping fields
        2. Computes totals from the snapshot (never re-reads the live cart)
        3. Writes the order and its items in one transaction
        """
        if not self.identity:
            raise NotAuthenticated("User must be authenticated to create an order")

        validate_checkout(customer_info, shipping_address, cart_snapshot)

        frozen = [self._freeze(line, pos) for pos, line in enumerate(cart_snapshot)]
        totals = order_totals(
            [{"price": i.product_price, "quantity": i.quantity} for i in frozen]
        )

        order = OrderModel(
            user_id=self.identity,
            customer_name=str(customer_info["name"]).strip(),
            customer_email=str(customer_info["email"]).strip(),
            shipping_address={f: str(shipping_address.get(f) or "").strip() for f in ADDRESS_FIELDS},
            subtotal=totals["subtotal"],
            shipping_fee=totals["shipping_fee"],
            total=totals["total"],
            status=ORDER_UNPAID,
        )

        try:
            created = self.repo.add_order(order, frozen)
            self.repo.commit()
        except SQLAlchemyError as e:
            self.repo.rollback()
            logger.error(f"Failed to create order for user {self.identity}: {e}")
            raise PersistenceError("Failed to create order") from e

        logger.info(
            f"Order {created.id} created for user {self.identity}, "
            f"{len(frozen)} items, total {totals['total']}"
        )
        return created.id

    def get_order(self, order_id: str) -> OrderModel:
        try:
            order = self.repo.get_order(order_id)
        except SQLAlchemyError as e:
            raise PersistenceError("Failed to load order") from e

        if not order:
            raise NotFound(f"Order {order_id} does not exist")

        if self.identity is not None and order.user_id != self.identity:
            raise PermissionError("No access to this order")

        return order

    def attach_session(self, order_id: str, session_id: str) -> bool:
        try:
            rowcount = self.repo.set_session_reference(order_id, session_id)
            self.repo.commit()
        except SQLAlchemyError as e:
            self.repo.rollback()
            raise PersistenceError("Failed to store payment session") from e

        if rowcount:
            logger.info(f"Order {order_id} bound to payment session {session_id}")
        else:
            logger.warning(f"Order {order_id} is not unpaid, session {session_id} not stored")
        return bool(rowcount)

    def mark_paid(self, order_id: str, session_id: str, commit: bool = True) -> bool:
        """
        unpaid -> paid. True only for the call that performed the transition;
        with commit=False the caller finishes the transaction.
        """
        try:
            rowcount = self.repo.mark_paid(order_id, session_id)
            if commit:
                self.repo.commit()
        except SQLAlchemyError as e:
            self.repo.rollback()
            raise PersistenceError("Failed to update order status") from e

        return rowcount == 1

    @staticmethod
    def _freeze(line: Mapping[str, Any], position: int) -> OrderItemModel:
        return OrderItemModel(
            position=position,
            product_id=line["product_id"],
            product_name=line["name"],
            product_price=to_money(line["price"]),
            product_image=line.get("image"),
            quantity=int(line["quantity"]),
        )


def order_to_dict(order: OrderModel) -> Dict[str, Any]:
    return {
        "id": order.id,
        "user_id": order.user_id,
        "customer_name": order.customer_name,
        "customer_email": order.customer_email,
        "shipping_address": dict(order.shipping_address or {}),
        "items": [
            {
                "product_id": i.product_id,
                "product_name": i.product_name,
                "product_price": to_money(i.product_price),
                "product_image": i.product_image,
                "quantity": i.quantity,
            }
            for i in order.items
        ],
        "subtotal": to_money(order.subtotal),
        "shipping_fee": to_money(order.shipping_fee),
        "total": to_money(order.total),
        "status": order.status,
        "payment_session_id": order.payment_session_id,
        "created_at": order.created_at,
        "updated_at": order.updated_at,
    }


def checkout_lines(order: OrderModel) -> List[Dict[str, Any]]:
    """Priced lines to charge for an order: its frozen items plus shipping."""
    lines = [
        {
            "name": i.product_name,
            "price": to_money(i.product_price),
            "quantity": i.quantity,
            "image": i.product_image,
        }
        for i in order.items
    ]
    if to_money(order.shipping_fee) > 0:
        lines.append({"name": "Shipping", "price": to_money(order.shipping_fee), "quantity": 1, "image": None})
    return lines
