from sqlalchemy import Column, Integer, String, Float, DateTime, ForeignKey, Boolean, UniqueConstraint
from sqlalchemy.orm import relationship
from datetime import datetime
from bakery.database import Base


class Product(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)

    category_id = Column(
        Integer,
        ForeignKey("categories.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )

    price = Column(Float, nullable=False, default=0)

    # unique when set; generated on create when omitted
    sku = Column(String(50), nullable=True, index=True)

    # NULL means the configured defaults apply (pcs / 30)
    uom = Column(String(20), nullable=True)
    reorder_point = Column(Integer, nullable=True)

    is_active = Column(Boolean, default=True, nullable=False, index=True)

    created_at = Column(DateTime, default=datetime.utcnow)

    category = relationship("Category", back_populates="products")

    __table_args__ = (
        UniqueConstraint(
            "name",
            "category_id",
            name="uq_product_name_category"
        ),
    )
