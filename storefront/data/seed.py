# storefront/data/seed.py
from decimal import Decimal

from storefront.data.database import SessionLocal
from storefront.data.models.product import ProductModel
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

PRODUCTS = [
    {"id": 1, "name": "Red Rose", "price": Decimal("1500"), "type": "rose", "occasions": ["anniversary", "valentines"], "featured": 5},
    {"id": 2, "name": "Pink Tulip", "price": Decimal("800"), "type": "tulip", "occasions": ["birthday", "spring"], "featured": 4},
    {"id": 3, "name": "White Lily Bouquet", "price": Decimal("12500"), "type": "bouquet", "occasions": ["wedding"], "featured": 3},
    {"id": 4, "name": "Sunflower Bunch", "price": Decimal("6000"), "type": "sunflower", "occasions": ["birthday"], "featured": 2},
    {"id": 5, "name": "Peony Box", "price": Decimal("24000"), "type": "bouquet", "occasions": ["anniversary"], "featured": 1},
]


def seed(db=None):
    own_session = db is None
    db = db or SessionLocal()
    try:
        # only seed an empty catalog
        if db.query(ProductModel).first():
            return
        for p in PRODUCTS:
            db.add(ProductModel(**p))
        db.commit()
        logger.info(f"Seeded {len(PRODUCTS)} products")
    finally:
        if own_session:
            db.close()


if __name__ == "__main__":
    seed()
