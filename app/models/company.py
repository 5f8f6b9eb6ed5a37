import enum
from sqlalchemy import Column, String, DateTime, ForeignKey, Enum
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from .base import Base, generate_uuid, enum_values


class MembershipStatus(str, enum.Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class Company(Base):
    """Employer or partner that negotiates group plans"""
    __tablename__ = "companies"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    name = Column(String(255), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    members = relationship("CompanyMember", back_populates="company")


class CompanyMember(Base):
    """Links a profile to a company. Only active memberships grant negotiated plans."""
    __tablename__ = "company_members"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String(36), ForeignKey("profiles.id"), nullable=False, index=True)
    company_id = Column(String(36), ForeignKey("companies.id"), nullable=False, index=True)
    status = Column(
        Enum(MembershipStatus, name="membership_status", values_callable=enum_values),
        nullable=False,
        default=MembershipStatus.ACTIVE,
    )
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    profile = relationship("Profile", back_populates="memberships")
    company = relationship("Company", back_populates="members")
