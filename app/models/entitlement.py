from sqlalchemy import Column, String, DateTime, ForeignKey, Index, text
from sqlalchemy.sql import func

from .base import Base, generate_uuid

ENTITLEMENT_ACTIVE = "active"
SOURCE_TYPE_SUBSCRIPTION = "subscription"


class Entitlement(Base):
    """
    Proof of product access granted by a paid subscription.

    At most one active row per (profile_id, source_id): the partial unique index
    makes the second of two concurrent grants fail at insert time.
    """
    __tablename__ = "entitlements"
    __table_args__ = (
        Index(
            "uq_entitlements_active_source",
            "profile_id",
            "source_id",
            unique=True,
            postgresql_where=text("status = 'active'"),
            sqlite_where=text("status = 'active'"),
        ),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    profile_id = Column(String(36), ForeignKey("profiles.id"), nullable=False, index=True)
    product_id = Column(String(36), nullable=False)
    source_type = Column(String(50), nullable=False, default=SOURCE_TYPE_SUBSCRIPTION)
    source_id = Column(String(36), nullable=False, index=True)
    status = Column(String(20), nullable=False, default=ENTITLEMENT_ACTIVE)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
