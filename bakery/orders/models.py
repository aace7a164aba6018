from sqlalchemy import Column, Integer, String, Float, ForeignKey, DateTime, Date
from sqlalchemy.orm import relationship
from datetime import datetime
from bakery.database import Base


# status
ORDER_NEW = "new"
ORDER_COMPLETED = "completed"
ORDER_CANCELLED = "cancelled"
ORDER_STATUSES = (ORDER_NEW, ORDER_COMPLETED, ORDER_CANCELLED)

# payment_type
PAY_COD = "cash_on_delivery"
PAY_DP = "dp"
PAY_FULL = "full_payment"
ORDER_PAYMENT_TYPES = (PAY_COD, PAY_DP, PAY_FULL)


class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    order_number = Column(String(30), unique=True, nullable=False, index=True)

    branch_id = Column(Integer, ForeignKey("branches.id"), nullable=False, index=True)
    pickup_branch_id = Column(Integer, ForeignKey("branches.id"), nullable=True)

    customer_name = Column(String, nullable=False)
    customer_phone = Column(String(30), nullable=True)
    delivery_address = Column(String, nullable=True)

    order_date = Column(Date, nullable=False)
    delivery_date = Column(Date, nullable=False)

    shipping_cost = Column(Float, nullable=False, default=0)
    total_amount = Column(Float, nullable=False, default=0)

    payment_type = Column(String(30), nullable=False, default=PAY_COD)
    payment_status = Column(String(20), nullable=False, default="pending")
    dp_amount = Column(Float, nullable=False, default=0)
    remaining_amount = Column(Float, nullable=False, default=0)

    status = Column(String(20), nullable=False, default=ORDER_NEW, index=True)
    tracking_status = Column(String(30), nullable=False, default="in_production", index=True)

    courier_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    notes = Column(String, nullable=True)

    created_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    items = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        passive_deletes=True
    )
    tracking_history = relationship(
        "OrderTrackingHistory",
        back_populates="order",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="OrderTrackingHistory.id",
    )
    status_history = relationship(
        "OrderStatusHistory",
        back_populates="order",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="OrderStatusHistory.id",
    )

    branch = relationship("Branch", foreign_keys=[branch_id])
    pickup_branch = relationship("Branch", foreign_keys=[pickup_branch_id])
    courier = relationship("User", foreign_keys=[courier_id])


class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(
        Integer,
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Float, nullable=False)
    subtotal = Column(Float, nullable=False)
    notes = Column(String, nullable=True)

    order = relationship("Order", back_populates="items")
    product = relationship("Product")


class OrderTrackingHistory(Base):
    __tablename__ = "order_tracking_history"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(
        Integer,
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    old_tracking_status = Column(String(30), nullable=True)
    new_tracking_status = Column(String(30), nullable=False)
    notes = Column(String, nullable=True)

    updated_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    updated_at = Column(DateTime, default=datetime.utcnow)

    order = relationship("Order", back_populates="tracking_history")


class OrderStatusHistory(Base):
    __tablename__ = "order_status_history"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(
        Integer,
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    old_status = Column(String(20), nullable=True)
    new_status = Column(String(20), nullable=False)
    notes = Column(String, nullable=True)

    changed_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    changed_at = Column(DateTime, default=datetime.utcnow)

    order = relationship("Order", back_populates="status_history")
