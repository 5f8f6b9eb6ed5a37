import enum
from sqlalchemy import Column, String, Integer, Boolean, Numeric, DateTime, Enum, Index, text
from sqlalchemy.sql import func

from .base import Base, generate_uuid


class PlanType(str, enum.Enum):
    B2C = "B2C"
    B2B = "B2B"


class Plan(Base):
    """Local cache of an Iugu plan. Name, price and existence follow the gateway."""
    __tablename__ = "plans"
    __table_args__ = (
        Index(
            "uq_plans_active_identifier",
            "iugu_plan_identifier",
            unique=True,
            postgresql_where=text("is_active"),
            sqlite_where=text("is_active = 1"),
        ),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    name = Column(String(255), nullable=False)
    price = Column(Numeric(10, 2), nullable=False)
    interval = Column(Integer, nullable=True)
    interval_type = Column(String(20), nullable=True)
    iugu_plan_identifier = Column(String(255), nullable=False, index=True)
    iugu_plan_id = Column(String(64), nullable=True)
    type = Column(Enum(PlanType, name="plan_type"), nullable=False, default=PlanType.B2C)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
