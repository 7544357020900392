# storefront/api/routers/orders.py
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from storefront.api import get_reconciler, http_error, require_identity
from storefront.data.database import get_db
from storefront.domain.errors import GatewayError, PersistenceError, StorefrontError
from storefront.domain.schemas import CheckoutIn, OrderCreatedOut, OrderOut, PaymentOut
from storefront.services.cart_service import CartService
from storefront.services.order_query import OrderQuery
from storefront.services.order_service import OrderService
from storefront.services.payment_reconciler import PaymentReconciler
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/orders", tags=["orders"])


def _create_from_cart(db: Session, identity: str, payload: CheckoutIn) -> str:
    cart = CartService(db=db, identity=identity)
    snapshot = cart.refresh()
    return OrderService(db, identity).create_order(
        payload.customer.model_dump(),
        payload.shipping_address.model_dump(),
        snapshot,
    )


@router.post("/", response_model=OrderCreatedOut, status_code=201)
def create_order(
    payload: CheckoutIn,
    identity: str = Depends(require_identity),
    db: Session = Depends(get_db),
):
    """
    Creates an unpaid order from the current cart, without starting payment.
    """
    try:
        return {"order_id": _create_from_cart(db, identity, payload)}
    except StorefrontError as e:
        raise http_error(e)


@router.post("/checkout", response_model=PaymentOut, status_code=201)
def checkout(
    payload: CheckoutIn,
    identity: str = Depends(require_identity),
    db: Session = Depends(get_db),
    reconciler: PaymentReconciler = Depends(get_reconciler),
):
    """
    Creates the order and a checkout session; the client redirects to `url`.
    If the processor fails the order is kept and can be paid later.
    """
    try:
        order_id = _create_from_cart(db, identity, payload)
    except StorefrontError as e:
        raise http_error(e)

    try:
        return reconciler.start_payment(order_id, identity)
    except (GatewayError, PersistenceError) as e:
        logger.error(f"Checkout session for order {order_id} failed: {e}")
        raise HTTPException(
            status_code=http_error(e).status_code,
            detail={
                "message": "Could not create the payment session. Please try again.",
                "order_id": order_id,
            },
        )
    except StorefrontError as e:
        raise http_error(e)


@router.get("/", response_model=List[OrderOut])
def list_orders(
    status: str = Query("all"),
    search: str = Query(""),
    identity: str = Depends(require_identity),
    db: Session = Depends(get_db),
):
    try:
        return OrderQuery(db, identity).list_orders(status=status, search=search)
    except StorefrontError as e:
        raise http_error(e)


@router.get("/{order_id}", response_model=OrderOut)
def get_order(
    order_id: str,
    identity: str = Depends(require_identity),
    db: Session = Depends(get_db),
):
    try:
        return OrderQuery(db, identity).get_order(order_id)
    except StorefrontError as e:
        raise http_error(e)


@router.post("/{order_id}/pay", response_model=PaymentOut)
def pay_order(
    order_id: str,
    identity: str = Depends(require_identity),
    reconciler: PaymentReconciler = Depends(get_reconciler),
):
    """
    "Pay Now": checks the stored session before opening a new one.
    """
    try:
        return reconciler.start_payment(order_id, identity)
    except PermissionError as e:
        raise HTTPException(status_code=403, detail=str(e))
    except StorefrontError as e:
        raise http_error(e)
