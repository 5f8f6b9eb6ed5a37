import enum
from sqlalchemy import Column, String, DateTime, ForeignKey, Enum, UniqueConstraint
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from .base import Base, generate_uuid, enum_values


class ContractStatus(str, enum.Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class Contract(Base):
    """Agreement held by an organization-linked account; owns its negotiated plans"""
    __tablename__ = "contracts"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    account_id = Column(String(36), ForeignKey("accounts.id"), nullable=False, index=True)
    status = Column(
        Enum(ContractStatus, name="contract_status", values_callable=enum_values),
        nullable=False,
        default=ContractStatus.ACTIVE,
    )
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    contract_plans = relationship("ContractPlan", back_populates="contract", cascade="all, delete-orphan")


class ContractPlan(Base):
    __tablename__ = "contract_plans"
    __table_args__ = (UniqueConstraint("contract_id", "plan_id", name="uq_contract_plan"),)

    id = Column(String(36), primary_key=True, default=generate_uuid)
    contract_id = Column(String(36), ForeignKey("contracts.id"), nullable=False, index=True)
    plan_id = Column(String(36), ForeignKey("plans.id"), nullable=False, index=True)

    contract = relationship("Contract", back_populates="contract_plans")
    plan = relationship("Plan")
