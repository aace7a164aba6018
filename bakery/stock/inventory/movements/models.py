from sqlalchemy import Column, Integer, ForeignKey, DateTime, String
from sqlalchemy.orm import relationship
from datetime import datetime
from bakery.database import Base


# movement_type
MOVEMENT_IN = "in"
MOVEMENT_OUT = "out"
MOVEMENT_RETURN = "return"
MOVEMENT_ADJUSTMENT = "adjustment"

MOVEMENT_TYPES = (MOVEMENT_IN, MOVEMENT_OUT, MOVEMENT_RETURN, MOVEMENT_ADJUSTMENT)


class StockMovement(Base):
    """Append-only. Rows are never updated or deleted."""

    __tablename__ = "stock_movements"

    id = Column(Integer, primary_key=True, index=True)

    product_id = Column(Integer, ForeignKey("products.id"), nullable=False, index=True)
    branch_id = Column(Integer, ForeignKey("branches.id"), nullable=False, index=True)

    # signed
    quantity_change = Column(Integer, nullable=False)
    movement_type = Column(String(20), nullable=False, index=True)

    # transaction / transaction_void / batch_stock_add / return / ...
    reference_type = Column(String(40), nullable=True, index=True)
    reference_id = Column(String(64), nullable=True)

    reason = Column(String, nullable=True)

    performed_by = Column(
        Integer,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True
    )

    created_at = Column(DateTime, default=datetime.utcnow, index=True)

    product = relationship("Product")
    branch = relationship("Branch")
    user = relationship("User")
