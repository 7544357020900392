from sqlalchemy import Column, Integer, String, Text, Numeric, JSON

from storefront.data.database import Base


class ProductModel(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)

    price = Column(Numeric(10, 2), nullable=False)
    image = Column(String, nullable=True)

    type = Column(String, nullable=True, index=True)  # bouquet, rose, tulip...
    occasions = Column(JSON, nullable=True)
    featured = Column(Integer, nullable=False, default=0)
