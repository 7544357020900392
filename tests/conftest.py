"""
Shared fixtures: in-memory SQLite store seeded with the flower catalog, and
fakes for the payment processor, the checkout lock and the notifier.
"""

import json
import os

# must be set before any storefront module reads its settings
os.environ["DATABASE_URL"] = "sqlite://"

import pytest
import redis
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import storefront.data.models  # noqa: F401
from storefront.data.database import Base
from storefront.data.seed import seed
from storefront.domain.errors import GatewayError
from storefront.domain.schemas import CheckoutSession, SessionStatus
from storefront.services.cart_service import CartService
from storefront.services.payment_reconciler import PaymentReconciler


# ============================================================================
# Fakes
# ============================================================================

class FakeGateway:
    """Stands in for Stripe Checkout; sessions live in a dict."""

    def __init__(self):
        self.sessions = {}
        self.created = []
        self.retrieved = []
        self.fail_create = False
        self.fail_retrieve = False
        self.fail_expire = False
        self.expired = []

    def create_checkout_session(self, order_id, line_items, customer_email):
        if self.fail_create:
            raise GatewayError("Payment processor rejected the checkout: bad line items")
        session_id = f"sess_{len(self.created) + 1}"
        self.created.append(
            {"order_id": order_id, "line_items": list(line_items), "customer_email": customer_email}
        )
        self.sessions[session_id] = SessionStatus(
            session_id=session_id,
            payment_status="unpaid",
            status="open",
            order_id=order_id,
            url=f"https://checkout.test/{session_id}",
        )
        return CheckoutSession(session_id=session_id, url=f"https://checkout.test/{session_id}")

    def retrieve_session(self, session_id):
        self.retrieved.append(session_id)
        if self.fail_retrieve:
            raise GatewayError("Unable to verify payment: connection reset")
        if session_id not in self.sessions:
            raise GatewayError(f"No such checkout.session: {session_id}")
        return self.sessions[session_id].model_copy()

    def expire_session(self, session_id):
        if self.fail_expire:
            raise GatewayError(f"Unable to expire session {session_id}")
        self.expired.append(session_id)
        self.expire(session_id)

    def construct_event(self, payload, signature, secret):
        if signature != "valid":
            raise GatewayError("Invalid webhook signature")
        return json.loads(payload)

    # helpers for tests
    def add_session(self, session_id, order_id, payment_status="unpaid", status="open"):
        self.sessions[session_id] = SessionStatus(
            session_id=session_id,
            payment_status=payment_status,
            status=status,
            order_id=order_id,
            url=f"https://checkout.test/{session_id}" if status == "open" else None,
        )

    def pay(self, session_id):
        s = self.sessions[session_id]
        self.sessions[session_id] = s.model_copy(update={"payment_status": "paid", "status": "complete", "url": None})

    def expire(self, session_id):
        s = self.sessions[session_id]
        self.sessions[session_id] = s.model_copy(update={"status": "expired", "url": None})


class FakeLock:
    def __init__(self):
        self.held = {}
        self.down = False
        # runs right before the lock is granted
        self.before_acquire = None

    @staticmethod
    def new_token():
        return "token"

    def acquire_checkout_lock(self, order_id, token, ttl=30):
        if self.down:
            raise redis.ConnectionError("redis down")
        if self.before_acquire:
            self.before_acquire()
        if order_id in self.held:
            return False
        self.held[order_id] = token
        return True

    def release_checkout_lock(self, order_id, token):
        if self.down:
            raise redis.ConnectionError("redis down")
        if self.held.get(order_id) == token:
            del self.held[order_id]
            return True
        return False


class FakeNotifier:
    def __init__(self):
        self.sent = []

    def send_order_paid(self, user_id, order_id, customer_email):
        self.sent.append((user_id, order_id, customer_email))


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(bind=engine, autoflush=False, autocommit=False)()
    seed(session)
    yield session
    session.close()


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def lock():
    return FakeLock()


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def reconciler(db, gateway, lock, notifier):
    return PaymentReconciler(db=db, gateway=gateway, lock_service=lock, notifier=notifier)


@pytest.fixture
def alice_cart(db):
    return CartService(db, "alice")


CUSTOMER = {"name": "Aigerim", "email": "aigerim@example.com"}
ADDRESS = {
    "street": "Abay Ave 10",
    "city": "Almaty",
    "state": "Almaty Region",
    "postal_code": "050000",
    "country": "Kazakhstan",
}


@pytest.fixture
def customer():
    return dict(CUSTOMER)


@pytest.fixture
def address():
    return dict(ADDRESS)
