# storefront/services/checkout_gateway.py
from typing import Any, Dict, List, Mapping, Sequence

import stripe

from storefront.domain.errors import GatewayError, VerificationPending
from storefront.domain.schemas import CheckoutSession, SessionStatus
from storefront.utils.money import to_minor_units
from storefront.utils.settings import CURRENCY, PUBLIC_BASE_URL, STRIPE_SECRET_KEY
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

KNOWN_PAYMENT_STATUSES = ("paid", "unpaid", "no_payment_required")


def success_url(base_url: str, order_id: str) -> str:
    # stripe substitutes {CHECKOUT_SESSION_ID} itself
    return f"{base_url}/payment/{order_id}?session_id={{CHECKOUT_SESSION_ID}}&success=true"


def cancel_url(base_url: str) -> str:
    return f"{base_url}/orders?canceled=true"


def stripe_field(obj, name: str):
    if obj is None:
        return None
    if isinstance(obj, Mapping):
        return obj.get(name)
    return getattr(obj, name, None)


def build_line_items(line_items: Sequence[Mapping[str, Any]], currency: str) -> List[Dict[str, Any]]:
    items = []
    for line in line_items:
        image = line.get("image")
        items.append(
            {
                "price_data": {
                    "currency": currency,
                    "product_data": {
                        "name": line["name"],
                        "images": [image] if image else [],
                        "description": f"Quantity: {line['quantity']}",
                    },
                    "unit_amount": to_minor_units(line["price"]),
                },
                "quantity": int(line["quantity"]),
            }
        )
    return items


class StripeCheckoutGateway:
    """
    Stripe Checkout adapter.
    Pure request/response: it never touches orders, callers store the session id.
    """

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        currency: str | None = None,
    ):
        self.api_key = api_key if api_key is not None else STRIPE_SECRET_KEY
        self.base_url = (base_url or PUBLIC_BASE_URL).rstrip("/")
        self.currency = currency or CURRENCY

    def create_checkout_session(
        self,
        order_id: str,
        line_items: Sequence[Mapping[str, Any]],
        customer_email: str,
    ) -> CheckoutSession:
        if not line_items:
            raise GatewayError("Checkout requires at least one line item")
        self._require_key()

        logger.info(f"Creating checkout session for order {order_id}")

        try:
            session = stripe.checkout.Session.create(
                api_key=self.api_key,
                payment_method_types=["card"],
                mode="payment",
                line_items=build_line_items(line_items, self.currency),
                success_url=success_url(self.base_url, order_id),
                cancel_url=cancel_url(self.base_url),
                metadata={"orderId": order_id},
                customer_email=customer_email,
            )
        except stripe.StripeError as e:
            logger.error(f"Stripe rejected checkout session for order {order_id}: {e}")
            raise GatewayError(f"Payment processor rejected the checkout: {e.user_message or e}") from e

        url = stripe_field(session, "url")
        if not url:
            raise GatewayError("Payment processor returned no redirect URL")

        return CheckoutSession(session_id=stripe_field(session, "id"), url=url)

    def retrieve_session(self, session_id: str) -> SessionStatus:
        if not session_id:
            raise GatewayError("Session ID is required")
        self._require_key()

        logger.info(f"Retrieving checkout session {session_id}")

        try:
            session = stripe.checkout.Session.retrieve(session_id, api_key=self.api_key)
        except stripe.StripeError as e:
            logger.error(f"Failed to retrieve checkout session {session_id}: {e}")
            raise GatewayError(f"Unable to verify payment: {e.user_message or e}") from e

        payment_status = stripe_field(session, "payment_status")
        if payment_status not in KNOWN_PAYMENT_STATUSES:
            raise VerificationPending(f"Session {session_id} has no payment status yet")

        metadata = stripe_field(session, "metadata") or {}
        return SessionStatus(
            session_id=stripe_field(session, "id"),
            payment_status=payment_status,
            status=stripe_field(session, "status"),
            order_id=stripe_field(metadata, "orderId"),
            url=stripe_field(session, "url"),
        )

    def expire_session(self, session_id: str) -> None:
        """Closes an open session so it can no longer be paid."""
        self._require_key()

        try:
            stripe.checkout.Session.expire(session_id, api_key=self.api_key)
        except stripe.StripeError as e:
            logger.error(f"Failed to expire checkout session {session_id}: {e}")
            raise GatewayError(f"Unable to expire session {session_id}: {e.user_message or e}") from e

        logger.info(f"Checkout session {session_id} expired")

    def construct_event(self, payload: bytes, signature: str | None, secret: str) -> Dict[str, Any]:
        if not secret:
            raise GatewayError("Webhook secret is not configured")
        try:
            return stripe.Webhook.construct_event(payload, signature or "", secret)
        except (ValueError, stripe.SignatureVerificationError) as e:
            logger.warning(f"Rejected webhook payload: {e}")
            raise GatewayError("Invalid webhook signature") from e

    def _require_key(self):
        if not self.api_key:
            raise GatewayError("STRIPE_SECRET_KEY is not configured")
