from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Date
from sqlalchemy.orm import relationship
from datetime import datetime
from bakery.database import Base


STATUS_PENDING = "pending"
STATUS_IN_PROGRESS = "in_progress"
STATUS_COMPLETED = "completed"
STATUS_CANCELLED = "cancelled"

PRODUCTION_STATUSES = (STATUS_PENDING, STATUS_IN_PROGRESS, STATUS_COMPLETED, STATUS_CANCELLED)


class ProductionRequest(Base):
    __tablename__ = "production_requests"

    id = Column(Integer, primary_key=True, index=True)

    product_id = Column(Integer, ForeignKey("products.id"), nullable=False, index=True)
    branch_id = Column(Integer, ForeignKey("branches.id"), nullable=False, index=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="SET NULL"), nullable=True)

    quantity_requested = Column(Integer, nullable=False)
    quantity_produced = Column(Integer, nullable=True)
    production_date = Column(Date, nullable=False)

    status = Column(String(20), nullable=False, default=STATUS_PENDING, index=True)
    notes = Column(String, nullable=True)

    requested_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    produced_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    product = relationship("Product")
    branch = relationship("Branch")
