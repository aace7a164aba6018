from sqlalchemy import Column, Integer, ForeignKey, String, DateTime
from sqlalchemy.orm import relationship
from datetime import datetime
from bakery.database import Base


# adjustment_type
ADJUST_INIT = "init"
ADJUST_IN = "adjust_in"
ADJUST_OUT = "adjust_out"
ADJUST_RECONCILIATION = "reconciliation"


class StockAdjustment(Base):
    __tablename__ = "stock_adjustments"

    id = Column(Integer, primary_key=True, index=True)

    product_id = Column(
        Integer,
        ForeignKey("products.id", ondelete="CASCADE"),
        nullable=False
    )

    branch_id = Column(
        Integer,
        ForeignKey("branches.id", ondelete="CASCADE"),
        nullable=False
    )

    adjustment_type = Column(String(20), nullable=False)

    # signed
    quantity_change = Column(Integer, nullable=False)

    reason = Column(String, nullable=True)

    performed_by = Column(
        Integer,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True
    )

    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    product = relationship("Product")
    branch = relationship("Branch")
