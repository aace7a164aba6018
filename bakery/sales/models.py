from sqlalchemy import Column, Integer, String, Float, ForeignKey, DateTime, Date
from sqlalchemy.orm import relationship
from datetime import datetime
from bakery.database import Base


# payment_status
PAYMENT_PAID = "paid"
PAYMENT_PENDING = "pending"
PAYMENT_PARTIAL = "partial"
PAYMENT_CANCELLED = "cancelled"

# status
STATUS_COMPLETED = "completed"
STATUS_CANCELLED = "cancelled"


class Transaction(Base):
    __tablename__ = "transactions"

    id = Column(Integer, primary_key=True, index=True)

    branch_id = Column(Integer, ForeignKey("branches.id"), nullable=False, index=True)
    cashier_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True
    )

    transaction_date = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)

    # net of discount
    total_amount = Column(Float, nullable=False, default=0)
    discount_amount = Column(Float, nullable=False, default=0)

    payment_method = Column(String(30), nullable=False, default="cash")  # cash / transfer / qris
    payment_status = Column(String(20), nullable=False, default=PAYMENT_PAID, index=True)
    amount_paid = Column(Float, nullable=False, default=0)
    amount_remaining = Column(Float, nullable=False, default=0)
    due_date = Column(Date, nullable=True)

    status = Column(String(20), nullable=False, default=STATUS_COMPLETED, index=True)
    notes = Column(String, nullable=True)
    override_reason = Column(String, nullable=True)
    void_reason = Column(String, nullable=True)

    # pos / order
    source_type = Column(String(20), nullable=False, default="pos")

    items = relationship(
        "TransactionItem",
        back_populates="transaction",
        cascade="all, delete-orphan",
        passive_deletes=True
    )

    payments = relationship(
        "PaymentHistory",
        back_populates="transaction",
        cascade="all, delete-orphan",
        passive_deletes=True
    )

    branch = relationship("Branch")
    cashier = relationship("User")


class TransactionItem(Base):
    __tablename__ = "transaction_items"

    id = Column(Integer, primary_key=True, index=True)
    transaction_id = Column(
        Integer,
        ForeignKey("transactions.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False, index=True)
    quantity = Column(Integer, nullable=False)
    price_per_item = Column(Float, nullable=False)
    subtotal = Column(Float, nullable=False)

    transaction = relationship("Transaction", back_populates="items")
    product = relationship("Product")
