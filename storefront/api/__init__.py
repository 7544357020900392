# storefront/api/__init__.py
from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session

from storefront.data.database import get_db
from storefront.domain.errors import StorefrontError, ValidationError, NotAuthenticated, NotFound, PersistenceError, GatewayError, CheckoutInProgress, VerificationPending
from storefront.services.checkout_gateway import StripeCheckoutGateway
from storefront.services.lock_service import LockService
from storefront.services.notification_service import NotificationService
from storefront.services.payment_reconciler import PaymentReconciler


def get_identity(x_user_id: str | None = Header(default=None)) -> str | None:
    #set by the auth proxy in front of the service
    return x_user_id.strip() if x_user_id and x_user_id.strip() else None


def require_identity(identity: str | None = Depends(get_identity)) -> str:
    if not identity:
        raise HTTPException(status_code=401, detail=str(NotAuthenticated()))
    return identity


def get_gateway() -> StripeCheckoutGateway:
    return StripeCheckoutGateway()


def get_lock_service() -> LockService:
    return LockService()


def get_notifier() -> NotificationService:
    return NotificationService()


def get_reconciler(
    db: Session = Depends(get_db),
    gateway: StripeCheckoutGateway = Depends(get_gateway),
    lock_service: LockService = Depends(get_lock_service),
    notifier: NotificationService = Depends(get_notifier),
) -> PaymentReconciler:
    return PaymentReconciler(db=db, gateway=gateway, lock_service=lock_service, notifier=notifier)


def http_error(e: StorefrontError) -> HTTPException:
    if isinstance(e, ValidationError):
        return HTTPException(status_code=422, detail={"message": str(e), "fields": e.fields})
    if isinstance(e, NotAuthenticated):
        return HTTPException(status_code=401, detail=str(e))
    if isinstance(e, NotFound):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, (CheckoutInProgress, VerificationPending)):
        return HTTPException(status_code=409, detail=str(e))
    if isinstance(e, GatewayError):
        return HTTPException(status_code=502, detail=str(e))
    if isinstance(e, PersistenceError):
        return HTTPException(status_code=503, detail=str(e))
    return HTTPException(status_code=400, detail=str(e))
