import enum
from sqlalchemy import Column, String, DateTime, ForeignKey, Enum
from sqlalchemy.sql import func

from .base import Base, generate_uuid


class AccountType(str, enum.Enum):
    B2C = "B2C"  # direct consumer, keyed by profile
    B2B = "B2B"  # organization-linked, keyed by company


class Account(Base):
    """Billing grouping that every subscription is attached to"""
    __tablename__ = "accounts"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    type = Column(Enum(AccountType, name="account_type"), nullable=False)
    profile_id = Column(String(36), ForeignKey("profiles.id"), nullable=True, index=True)
    company_id = Column(String(36), ForeignKey("companies.id"), nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
