from sqlalchemy import Column, Integer, String, ForeignKey, DateTime
from sqlalchemy.orm import relationship
from datetime import datetime
from bakery.database import Base


CONDITION_RESALEABLE = "resaleable"
CONDITION_DAMAGED = "damaged"
CONDITION_EXPIRED = "expired"
CONDITIONS = (CONDITION_RESALEABLE, CONDITION_DAMAGED, CONDITION_EXPIRED)

STATUS_PENDING = "pending"
STATUS_APPROVED = "approved"
STATUS_REJECTED = "rejected"


class Return(Base):
    __tablename__ = "returns"

    id = Column(Integer, primary_key=True, index=True)

    transaction_id = Column(
        Integer,
        ForeignKey("transactions.id", ondelete="SET NULL"),
        nullable=True
    )
    branch_id = Column(Integer, ForeignKey("branches.id"), nullable=False, index=True)

    reason = Column(String, nullable=False)
    notes = Column(String, nullable=True)
    status = Column(String(20), nullable=False, default=STATUS_PENDING, index=True)

    created_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    processed_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    return_date = Column(DateTime, default=datetime.utcnow)
    processed_at = Column(DateTime, nullable=True)

    items = relationship(
        "ReturnItem",
        back_populates="return_record",
        cascade="all, delete-orphan",
        passive_deletes=True
    )
    branch = relationship("Branch")


class ReturnItem(Base):
    __tablename__ = "return_items"

    id = Column(Integer, primary_key=True, index=True)
    return_id = Column(
        Integer,
        ForeignKey("returns.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    quantity = Column(Integer, nullable=False)
    reason = Column(String, nullable=True)
    condition = Column(String(20), nullable=False, default=CONDITION_RESALEABLE)

    return_record = relationship("Return", back_populates="items")
    product = relationship("Product")
