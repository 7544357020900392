# storefront/api/routers/products.py
from decimal import Decimal
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from storefront.data.database import get_db
from storefront.domain.schemas import ProductOut
from storefront.repos.product_repo import ProductRepo
from storefront.utils.settings import PRODUCT_SEARCH_LIMIT

router = APIRouter(prefix="/products", tags=["products"])


@router.get("/", response_model=List[ProductOut])
def search_products(
    q: str | None = Query(None),
    category: str | None = Query(None),
    min_price: Decimal | None = Query(None, ge=0),
    max_price: Decimal | None = Query(None, ge=0),
    limit: int = Query(PRODUCT_SEARCH_LIMIT, gt=0),
    db: Session = Depends(get_db),
):
    return ProductRepo(db).search_products(
        text=q,
        category=category,
        min_price=min_price,
        max_price=max_price,
        limit=limit,
    )


@router.get("/{product_id}", response_model=ProductOut)
def get_product(product_id: int, db: Session = Depends(get_db)):
    product = ProductRepo(db).get_product(product_id)
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    return product
