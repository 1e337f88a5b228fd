from sqlalchemy import Column, String, Integer, Numeric
from storefront.database import Base


class CartLine(Base):
    __tablename__ = "cart_lines"

    cart_id = Column(String, primary_key=True)     # browser cart cookie
    product_id = Column(String, primary_key=True)
    position = Column(Integer, default=0)          # insertion order
    name = Column(String)
    price = Column(Numeric(10, 2))
    image = Column(String, default="")
    quantity = Column(Integer)
