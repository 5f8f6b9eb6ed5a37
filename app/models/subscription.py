import enum
from sqlalchemy import Column, String, DateTime, ForeignKey, Enum
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from .base import Base, generate_uuid, enum_values


class SubscriptionStatus(str, enum.Enum):
    PENDING_PAYMENT = "pending_payment"
    ACTIVE = "active"
    CANCELED = "canceled"


class PaymentMethod(str, enum.Enum):
    CREDIT_CARD = "credit_card"
    BANK_SLIP = "bank_slip"
    PIX = "pix"


class Subscription(Base):
    """Local record of a recurring Iugu subscription"""
    __tablename__ = "subscriptions"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    profile_id = Column(String(36), ForeignKey("profiles.id"), nullable=False, index=True)
    account_id = Column(String(36), ForeignKey("accounts.id"), nullable=False, index=True)
    plan_id = Column(String(36), ForeignKey("plans.id"), nullable=False, index=True)
    status = Column(
        Enum(SubscriptionStatus, name="subscription_status", values_callable=enum_values),
        nullable=False,
        default=SubscriptionStatus.PENDING_PAYMENT,
        index=True,
    )
    iugu_subscription_id = Column(String(64), unique=True, nullable=True, index=True)
    iugu_customer_id = Column(String(64), nullable=True)
    payment_method = Column(
        Enum(PaymentMethod, name="payment_method", values_callable=enum_values),
        nullable=False,
    )
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    profile = relationship("Profile", back_populates="subscriptions")
    plan = relationship("Plan")
