# storefront/services/cart_service.py
from decimal import Decimal
from typing import Any, Dict, List

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from storefront.data.models.cart import CartModel
from storefront.data.models.cart_item import CartItemModel
from storefront.domain.errors import NotAuthenticated, NotFound, PersistenceError, ValidationError
from storefront.repos.cart_repo import CartRepo
from storefront.repos.product_repo import ProductRepo
from storefront.utils.money import lines_subtotal, shipping_for, to_money
from storefront.utils.settings import MAX_LINE_QUANTITY
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


def clamp_quantity(quantity: int) -> int:
    return max(1, min(quantity, MAX_LINE_QUANTITY))


class CartService:
    """
    Cart use cases for one identity.

    commands (add, update, remove, clear) write, commit and then refresh the
    in-memory view; a failed write rolls back and leaves `lines` untouched
    queries (get_total, get_item_count, snapshot) only read `lines`
    """

    def __init__(self, db: Session, identity: str | None):
        self.repo = CartRepo(db)
        self.products = ProductRepo(db)
        self.identity = identity
        self.cart_id: str | None = None
        self.lines: List[Dict[str, Any]] = []

    # =====================================================
    # QUERY
    # =====================================================
    def get_total(self) -> Decimal:
        return lines_subtotal(self.lines)

    def get_item_count(self) -> int:
        return sum(line["quantity"] for line in self.lines)

    def snapshot(self) -> Dict[str, Any]:
        subtotal = self.get_total()
        shipping = shipping_for(subtotal)
        return {
            "cart_id": self.cart_id,
            "user_id": self.identity,
            "items": [dict(line) for line in self.lines],
            "item_count": self.get_item_count(),
            "subtotal": subtotal,
            "shipping_fee": shipping,
            "total": subtotal + shipping,
        }

    def refresh(self) -> List[Dict[str, Any]]:
        """Re-read the cart from the store and replace the in-memory lines."""
        if not self.identity:
            self.cart_id = None
            self.lines = []
            return self.lines

        try:
            cart = self.repo.get_cart_by_user(self.identity)
            items = self.repo.get_cart_items(cart.id) if cart else []
        except SQLAlchemyError as e:
            logger.error(f"Failed to load cart for {self.identity}: {e}")
            raise PersistenceError("Failed to load cart items") from e

        self.cart_id = cart.id if cart else None
        self.lines = [self._line(i) for i in items]
        return self.lines

    def on_identity_changed(self, identity: str | None) -> List[Dict[str, Any]]:
        logger.info(f"Cart identity changed to {identity}")
        self.identity = identity
        return self.refresh()

    # =====================================================
    # COMMANDS
    # =====================================================
    def add_line(self, product_id: int, quantity: int = 1) -> List[Dict[str, Any]]:
        self._require_identity()

        if quantity <= 0:
            raise ValidationError("Quantity must be greater than 0", {"quantity": "Must be greater than 0"})

        product = self.products.get_product(product_id)
        if not product:
            raise NotFound(f"Product {product_id} does not exist")

        cart = self._get_or_create_cart()

        try:
            existing = self.repo.get_cart_item(cart.id, product_id)

            if existing:
                new_qty = clamp_quantity(existing.quantity + quantity)
                logger.info(
                    f"Product {product_id} already in cart {cart.id}, quantity "
                    f"{existing.quantity} -> {new_qty}"
                )
                existing.quantity = new_qty
                self.repo.add_cart_item(existing)
            else:
                logger.info(f"Adding product {product_id} to cart {cart.id}")
                self.repo.add_cart_item(
                    CartItemModel(
                        cart_id=cart.id,
                        product_id=product.id,
                        quantity=clamp_quantity(quantity),
                        price=product.price,
                        name=product.name,
                        image=product.image,
                    )
                )

            self.repo.commit()
        except SQLAlchemyError as e:
            self._fail("add product", e)

        return self.refresh()

    def update_quantity(self, line_id: str, quantity: int) -> List[Dict[str, Any]]:
        self._require_identity()

        if quantity <= 0:
            return self.remove_line(line_id)

        cart = self._get_or_create_cart()

        try:
            item = self.repo.get_cart_item_by_id(cart.id, line_id)
            if not item:
                raise NotFound(f"Cart line {line_id} does not exist")

            item.quantity = clamp_quantity(quantity)
            self.repo.add_cart_item(item)
            self.repo.commit()
        except SQLAlchemyError as e:
            self._fail("update quantity", e)

        logger.info(f"Cart line {line_id} quantity set to {clamp_quantity(quantity)}")
        return self.refresh()

    def remove_line(self, line_id: str) -> List[Dict[str, Any]]:
        self._require_identity()
        cart = self._get_or_create_cart()

        try:
            removed = self.repo.delete_cart_item(cart.id, line_id)
            self.repo.commit()
        except SQLAlchemyError as e:
            self._fail("remove line", e)

        #removing twice is fine
        if removed:
            logger.info(f"Cart line {line_id} removed from cart {cart.id}")

        return self.refresh()

    def clear(self) -> List[Dict[str, Any]]:
        self._require_identity()
        cart = self._get_or_create_cart()

        try:
            removed = self.repo.delete_cart_items(cart.id)
            self.repo.commit()
        except SQLAlchemyError as e:
            self._fail("clear cart", e)

        logger.info(f"Cart {cart.id} cleared, {removed} lines removed")
        return self.refresh()

    # =====================================================
    # HELPERS
    # =====================================================
    def _require_identity(self):
        if not self.identity:
            raise NotAuthenticated("User must be authenticated to access cart")

    def _get_or_create_cart(self) -> CartModel:
        try:
            existing = self.repo.get_cart_by_user(self.identity)
            if existing:
                return existing

            created = self.repo.create_cart(CartModel(user_id=self.identity))
            logger.info(f"Created cart {created.id} for user {self.identity}")
            return created
        except IntegrityError:
            # another tab created it first
            self.repo.rollback()
            cart = self.repo.get_cart_by_user(self.identity)
            if cart:
                return cart
            raise PersistenceError("Failed to create cart")
        except SQLAlchemyError as e:
            self._fail("create cart", e)

    def _fail(self, action: str, e: Exception):
        self.repo.rollback()
        logger.error(f"Failed to {action} for user {self.identity}: {e}")
        raise PersistenceError(f"Failed to {action}") from e

    @staticmethod
    def _line(item: CartItemModel) -> Dict[str, Any]:
        return {
            "id": item.id,
            "product_id": item.product_id,
            "name": item.name,
            "price": to_money(item.price),
            "image": item.image,
            "quantity": item.quantity,
        }
