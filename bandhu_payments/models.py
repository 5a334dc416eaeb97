import enum
from datetime import datetime, timezone

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer, String, UniqueConstraint

from bandhu_payments.database import Base


def utcnow():
    return datetime.now(timezone.utc)


class Gateway(str, enum.Enum):
    PAYU = "payu"
    RAZORPAY = "razorpay"
    PHONEPE = "phonepe"
    PAYTM = "paytm"


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = frozenset(
    {PaymentStatus.COMPLETED, PaymentStatus.FAILED, PaymentStatus.CANCELLED}
)


class Order(Base):
    __tablename__ = "orders"

    id = Column(String, primary_key=True)
    total_amount = Column(String, nullable=False)      # decimal kept as string
    customer_name = Column(String)
    customer_email = Column(String)
    payment_status = Column(String, nullable=False, default=PaymentStatus.PENDING.value)
    payment_gateway = Column(String)
    gateway_reference = Column(String)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class PaymentTransaction(Base):
    __tablename__ = "payment_transactions"
    __table_args__ = (UniqueConstraint("transaction_id", "gateway"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    transaction_id = Column(String, nullable=False, index=True)
    gateway = Column(String, nullable=False)
    order_id = Column(String, ForeignKey("orders.id"), nullable=False, index=True)
    amount = Column(String, nullable=False)
    status = Column(String, nullable=False, default=PaymentStatus.PENDING.value)
    gateway_reference = Column(String)                 # gateway's own payment id
    gateway_order_id = Column(String)                  # razorpay order id
    raw_response = Column(JSON)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class PaymentEvent(Base):
    __tablename__ = "payment_events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    transaction_id = Column(String, index=True)
    gateway = Column(String, nullable=False)
    outcome = Column(String, nullable=False)           # applied | duplicate | rejected | ...
    status = Column(String)
    payload = Column(JSON)
    created_at = Column(DateTime(timezone=True), default=utcnow)
