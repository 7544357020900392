#storefront/api/routers/carts.py
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from storefront.api import get_identity, http_error
from storefront.data.database import get_db
from storefront.domain.errors import NotAuthenticated, StorefrontError
from storefront.domain.schemas import CartOut, ItemIn, QuantityIn
from storefront.services.cart_service import CartService

router = APIRouter(prefix="/cart", tags=["cart"])


def get_service(db: Session = Depends(get_db), identity: str | None = Depends(get_identity)):
    return CartService(db=db, identity=identity)


@router.get("/", response_model=CartOut)
def get_cart(svc: CartService = Depends(get_service)):
    try:
        if not svc.identity:
            raise NotAuthenticated()
        svc.refresh()
        return svc.snapshot()
    except StorefrontError as e:
        raise http_error(e)


@router.post("/items", response_model=CartOut)
def add_item(payload: ItemIn, svc: CartService = Depends(get_service)):
    try:
        svc.add_line(payload.product_id, payload.quantity)
        return svc.snapshot()
    except StorefrontError as e:
        raise http_error(e)


@router.patch("/items/{line_id}", response_model=CartOut)
def update_item(line_id: str, payload: QuantityIn, svc: CartService = Depends(get_service)):
    try:
        svc.update_quantity(line_id, payload.quantity)
        return svc.snapshot()
    except StorefrontError as e:
        raise http_error(e)


@router.delete("/items/{line_id}", response_model=CartOut)
def remove_item(line_id: str, svc: CartService = Depends(get_service)):
    try:
        svc.remove_line(line_id)
        return svc.snapshot()
    except StorefrontError as e:
        raise http_error(e)


@router.delete("/", response_model=CartOut)
def clear_cart(svc: CartService = Depends(get_service)):
    try:
        svc.clear()
        return svc.snapshot()
    except StorefrontError as e:
        raise http_error(e)
