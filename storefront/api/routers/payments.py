# storefront/api/routers/payments.py
from fastapi import APIRouter, Depends, HTTPException, Query, Request

from storefront.api import get_identity, get_reconciler, http_error
from storefront.domain.errors import GatewayError, StorefrontError
from storefront.domain.schemas import VerificationOut
from storefront.services.payment_reconciler import PaymentReconciler

router = APIRouter(prefix="/payments", tags=["payments"])


@router.get("/verify", response_model=VerificationOut)
def verify_payment(
    session_id: str = Query(..., min_length=1),
    order_id: str | None = Query(None),
    success: str | None = Query(None),
    identity: str | None = Depends(get_identity),
    reconciler: PaymentReconciler = Depends(get_reconciler),
):
    """
    Called on every load of the success page. `success` is informational
    only; the answer always comes from the processor.
    """
    try:
        return reconciler.verify_and_finalize(session_id, identity=identity, order_hint=order_id)
    except PermissionError as e:
        raise HTTPException(status_code=403, detail=str(e))
    except StorefrontError as e:
        raise http_error(e)


@router.post("/webhook")
async def stripe_webhook(
    request: Request,
    reconciler: PaymentReconciler = Depends(get_reconciler),
):
    payload = await request.body()
    signature = request.headers.get("stripe-signature")

    try:
        result = reconciler.handle_webhook(payload, signature)
    except GatewayError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except StorefrontError as e:
        raise http_error(e)

    return {"received": True, "result": result}
