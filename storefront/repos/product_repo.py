# storefront/repos/product_repo.py
from decimal import Decimal
from typing import List

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from storefront.data.models.product import ProductModel
from storefront.utils.settings import PRODUCT_SEARCH_LIMIT


class ProductRepo:
    def __init__(self, db: Session):
        self.db = db

    def get_product(self, product_id: int) -> ProductModel | None:
        return self.db.get(ProductModel, product_id)

    def search_products(
        self,
        text: str | None = None,
        category: str | None = None,
        min_price: Decimal | None = None,
        max_price: Decimal | None = None,
        limit: int = PRODUCT_SEARCH_LIMIT,
    ) -> List[ProductModel]:
        stmt = select(ProductModel)

        if text:
            pattern = f"%{text.strip()}%"
            stmt = stmt.where(
                or_(
                    ProductModel.name.ilike(pattern),
                    ProductModel.description.ilike(pattern),
                )
            )
        if category:
            stmt = stmt.where(ProductModel.type == category)
        if min_price is not None:
            stmt = stmt.where(ProductModel.price >= min_price)
        if max_price is not None:
            stmt = stmt.where(ProductModel.price <= max_price)

        #result set is always bounded
        limit = max(1, min(limit, PRODUCT_SEARCH_LIMIT))
        stmt = stmt.order_by(ProductModel.featured.desc(), ProductModel.id).limit(limit)

        return list(self.db.execute(stmt).scalars().all())
