from sqlalchemy import Column, String, Date, DateTime
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from .base import Base, generate_uuid


class Profile(Base):
    """Buyer identity. cpf is stored digits-only; legacy rows may carry the masked form."""
    __tablename__ = "profiles"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    cpf = Column(String(14), unique=True, nullable=False, index=True)
    full_name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False, index=True)
    phone = Column(String(20), nullable=True)
    birth_date = Column(Date, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    memberships = relationship("CompanyMember", back_populates="profile")
    subscriptions = relationship("Subscription", back_populates="profile")
