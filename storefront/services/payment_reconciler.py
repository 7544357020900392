# storefront/services/payment_reconciler.py
from typing import Any, Dict

import redis
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from storefront.data.models.order import OrderModel, ORDER_PAID
from storefront.domain.errors import CheckoutInProgress, GatewayError, PersistenceError, VerificationPending
from storefront.domain.schemas import SessionStatus
from storefront.repos.cart_repo import CartRepo
from storefront.services.checkout_gateway import StripeCheckoutGateway, stripe_field
from storefront.services.lock_service import LockService
from storefront.services.notification_service import NotificationService
from storefront.services.order_service import OrderService, checkout_lines
from storefront.utils.settings import STRIPE_WEBHOOK_SECRET
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

PAID_EVENTS = (
    "checkout.session.completed",
    "checkout.session.async_payment_succeeded",
)

MSG_PAID = "Your order has been confirmed and paid successfully!"
MSG_PENDING = "Your payment is being processed. We'll update your order status once confirmed."
MSG_UNVERIFIED = "We couldn't verify your payment status. Please try again or contact support."


def _result(order_id, outcome: str, status, message: str, transitioned: bool = False) -> Dict[str, Any]:
    return {
        "order_id": order_id,
        "outcome": outcome,
        "status": status,
        "transitioned": transitioned,
        "message": message,
    }


class PaymentReconciler:
    """
    Turns processor truth into order status.

    The only way an order becomes paid is a session lookup that reports
    payment_status == "paid"; the order id always comes from the session
    metadata. The unpaid -> paid write is conditional, so any number of
    verifications of the same session perform the transition (cart clear +
    notification) at most once.
    """

    def __init__(
        self,
        db: Session,
        gateway: StripeCheckoutGateway,
        lock_service: LockService | None = None,
        notifier: NotificationService | None = None,
    ):
        self.db = db
        self.gateway = gateway
        self.lock_service = lock_service or LockService()
        self.notifier = notifier or NotificationService()
        self.orders = OrderService(db)
        self.carts = CartRepo(db)

    # =====================================================
    # VERIFY
    # =====================================================
    def verify_and_finalize(
        self,
        session_id: str,
        identity: str | None = None,
        order_hint: str | None = None,
    ) -> Dict[str, Any]:
        """
        Use Case: return from the processor (or webhook).

        order_hint is the id from the return URL; it is only echoed back when
        the session cannot be read, never used to pick the order to update.
        """
        logger.info(f"Verifying payment for session {session_id}")

        try:
            session = self.gateway.retrieve_session(session_id)
        except (GatewayError, VerificationPending) as e:
            logger.warning(f"Payment for session {session_id} could not be verified: {e}")
            return _result(order_hint, "unverified", None, MSG_UNVERIFIED)

        if not session.order_id:
            logger.error(f"Order ID not found in metadata of session {session_id}")
            return _result(order_hint, "unverified", None, MSG_UNVERIFIED)

        if order_hint and order_hint != session.order_id:
            logger.warning(
                f"Return URL names order {order_hint} but session {session_id} "
                f"belongs to order {session.order_id}"
            )

        order = self.orders.get_order(session.order_id)
        if identity is not None and order.user_id != identity:
            raise PermissionError("No access to this order")

        return self._apply(order, session)

    def _apply(self, order: OrderModel, session: SessionStatus) -> Dict[str, Any]:
        order_id = order.id

        if not session.is_paid:
            logger.info(f"Session {session.session_id} for order {order_id} is {session.payment_status}")
            if order.status == ORDER_PAID:
                return _result(order_id, "paid", ORDER_PAID, MSG_PAID)
            return _result(order_id, "pending", order.status, MSG_PENDING)

        transitioned = self._finalize(order, session.session_id)
        return _result(order_id, "paid", ORDER_PAID, MSG_PAID, transitioned)

    def _finalize(self, order: OrderModel, session_id: str) -> bool:
        order_id = order.id
        user_id = order.user_id
        customer_email = order.customer_email

        try:
            transitioned = self.orders.mark_paid(order_id, session_id, commit=False)

            #cart is cleared only once payment is confirmed
            if transitioned:
                cart = self.carts.get_cart_by_user(user_id)
                if cart:
                    self.carts.delete_cart_items(cart.id)

            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to finalize order {order_id}: {e}")
            raise PersistenceError("Failed to update order status") from e

        if not transitioned:
            logger.info(f"Order {order_id} already paid, nothing to do for session {session_id}")
            return False

        logger.info(f"Order {order_id} marked as paid (session {session_id})")

        try:
            self.notifier.send_order_paid(user_id, order_id, customer_email)
        except Exception as e:
            # order is already committed as paid
            logger.error(f"Failed to queue paid notification for order {order_id}: {e}")

        return True

    # =====================================================
    # PAY NOW
    # =====================================================
    def start_payment(self, order_id: str, identity: str | None) -> Dict[str, Any]:
        """
        Use Case: first checkout or "Pay Now" on an unpaid order.

        The order is read again once the lock is held, so a session minted by
        a request that held the lock just before is seen and reused.
        A stored session is checked before anything new is minted:
        paid -> finalize, still open -> reuse its URL, otherwise a new one.
        """
        order = OrderService(self.db, identity).get_order(order_id)

        if order.status == ORDER_PAID:
            return self._paid_result(order)

        locked_id = order.id
        token = self.lock_service.new_token()
        try:
            acquired = self.lock_service.acquire_checkout_lock(locked_id, token)
        except redis.RedisError as e:
            logger.error(f"Checkout lock for order {locked_id} unavailable: {e}")
            raise GatewayError("Payment could not be started, try again") from e

        if not acquired:
            raise CheckoutInProgress("Payment for this order is already being started")

        try:
            self.db.expire_all()
            order = OrderService(self.db, identity).get_order(order_id)

            if order.status == ORDER_PAID:
                return self._paid_result(order)

            if order.payment_session_id:
                resumed = self._resume_session(order)
                if resumed:
                    return resumed

            session = self.gateway.create_checkout_session(
                order.id,
                checkout_lines(order),
                order.customer_email,
            )
            if not self._store_session(order, session.session_id):
                self.db.refresh(order)
                return self._paid_result(order)

            logger.info(f"Checkout session {session.session_id} created for order {order.id}")
            return {"order_id": order.id, "status": order.status, "session_id": session.session_id, "url": session.url}
        finally:
            self._release(locked_id, token)

    def _store_session(self, order: OrderModel, session_id: str) -> bool:
        try:
            stored = self.orders.attach_session(order.id, session_id)
        except PersistenceError:
            # an unrecorded session must not stay payable
            self._discard_session(order.id, session_id)
            raise

        if not stored:
            # paid in the meantime through an earlier session
            self._discard_session(order.id, session_id)
        return stored

    def _discard_session(self, order_id: str, session_id: str):
        try:
            self.gateway.expire_session(session_id)
            logger.warning(f"Expired unrecorded session {session_id} for order {order_id}")
        except GatewayError as e:
            logger.error(f"Orphaned checkout session {session_id} for order {order_id}: {e}")

    def _release(self, order_id: str, token: str):
        try:
            self.lock_service.release_checkout_lock(order_id, token)
        except redis.RedisError as e:
            # the key still expires on its own
            logger.error(f"Failed to release checkout lock for order {order_id}: {e}")

    @staticmethod
    def _paid_result(order: OrderModel) -> Dict[str, Any]:
        return {"order_id": order.id, "status": ORDER_PAID, "session_id": order.payment_session_id, "url": None}

    def _resume_session(self, order: OrderModel) -> Dict[str, Any] | None:
        try:
            existing = self.gateway.retrieve_session(order.payment_session_id)
        except VerificationPending as e:
            raise GatewayError(str(e)) from e

        if existing.order_id and existing.order_id != order.id:
            raise GatewayError(f"Session {existing.session_id} does not belong to order {order.id}")

        if existing.is_paid:
            logger.info(f"Stored session {existing.session_id} already paid, no new session for order {order.id}")
            self._finalize(order, existing.session_id)
            return {"order_id": order.id, "status": ORDER_PAID, "session_id": existing.session_id, "url": None}

        if existing.status == "open" and existing.url:
            logger.info(f"Reusing open session {existing.session_id} for order {order.id}")
            return {"order_id": order.id, "status": order.status, "session_id": existing.session_id, "url": existing.url}

        if existing.status == "complete":
            # async payment method, still settling
            logger.info(f"Stored session {existing.session_id} for order {order.id} is complete but not paid yet")
            raise VerificationPending("Your payment is still being processed. Please check back shortly.")

        logger.info(f"Stored session {existing.session_id} is {existing.status}, minting a new one")
        return None

    # =====================================================
    # WEBHOOK
    # =====================================================
    def handle_webhook(self, payload: bytes, signature: str | None, secret: str | None = None) -> Dict[str, Any] | None:
        event = self.gateway.construct_event(payload, signature, secret or STRIPE_WEBHOOK_SECRET)
        event_type = stripe_field(event, "type")

        if event_type not in PAID_EVENTS:
            logger.info(f"Ignoring webhook event {event_type}")
            return None

        session_obj = stripe_field(stripe_field(event, "data"), "object")
        session_id = stripe_field(session_obj, "id")
        logger.info(f"Webhook {event_type} for session {session_id}")

        return self.verify_and_finalize(session_id)
