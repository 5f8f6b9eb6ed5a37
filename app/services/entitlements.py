"""
Entitlement activation: the only place a subscription becomes active and the
only place entitlements are created.

All three reconciliation paths (inline card charge, Iugu webhook, pending sweep)
call activate_entitlement(). It is idempotent per (profile, subscription): an
existing active entitlement short-circuits with skipped=True and no writes, and
the partial unique index on entitlements turns a concurrent duplicate insert
into the same skipped result.
"""
import calendar
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.config import settings
from app.integrations import alloyal
from app.models.entitlement import Entitlement, ENTITLEMENT_ACTIVE, SOURCE_TYPE_SUBSCRIPTION
from app.models.subscription import Subscription, SubscriptionStatus
from app.services.events import log_event

logger = logging.getLogger(__name__)

FIXED_ENTITLEMENT_DAYS = 365


@dataclass
class ActivationResult:
    ok: bool
    skipped: bool = False
    reason: Optional[str] = None
    error: Optional[str] = None
    entitlement_id: Optional[str] = None
    loyalty: Optional[alloyal.LoyaltySyncResult] = None

    @property
    def loyalty_synced(self) -> bool:
        return bool(self.loyalty and self.loyalty.ok)

    def as_dict(self) -> dict:
        return {
            "ok": self.ok,
            "skipped": self.skipped,
            "reason": self.reason,
            "error": self.error,
            "entitlement_id": self.entitlement_id,
            "loyalty": self.loyalty.as_dict() if self.loyalty else None,
        }


def _add_months(moment: datetime, months: int) -> datetime:
    month_index = moment.month - 1 + months
    year = moment.year + month_index // 12
    month = month_index % 12 + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def compute_expiry(granted_at: datetime, subscription: Optional[Subscription] = None) -> datetime:
    """Fixed 365-day window, or one billing cycle of the plan when configured so."""
    plan = subscription.plan if subscription is not None else None
    if settings.entitlement_expiry_mode == "plan_interval" and plan is not None and plan.interval:
        if plan.interval_type == "weeks":
            return granted_at + timedelta(weeks=plan.interval)
        if plan.interval_type == "months":
            return _add_months(granted_at, plan.interval)
        logger.warning("Unknown plan interval_type %r, using fixed expiry", plan.interval_type)
    return granted_at + timedelta(days=FIXED_ENTITLEMENT_DAYS)


def _find_active_entitlement(db: Session, profile_id: str, subscription_id: str) -> Optional[Entitlement]:
    return db.query(Entitlement).filter(
        Entitlement.profile_id == profile_id,
        Entitlement.source_id == subscription_id,
        Entitlement.status == ENTITLEMENT_ACTIVE,
    ).first()


def activate_entitlement(
    db: Session,
    profile_id: str,
    subscription_id: str,
    cpf: str,
    full_name: str,
) -> ActivationResult:
    """
    Mark the subscription active, grant the entitlement and sync the buyer to Alloyal.

    Loyalty sync failures are reported in result.loyalty and never undo the grant.
    """
    try:
        existing = _find_active_entitlement(db, profile_id, subscription_id)
    except SQLAlchemyError as e:
        logger.exception("Entitlement lookup failed for subscription %s", subscription_id)
        return ActivationResult(ok=False, error=f"Erro ao verificar acesso: {e}")

    if existing is not None:
        logger.info(
            "Entitlement already granted for profile %s / subscription %s",
            profile_id, subscription_id,
        )
        return ActivationResult(
            ok=True, skipped=True, reason="already_granted", entitlement_id=existing.id,
        )

    now = datetime.now(timezone.utc)
    try:
        subscription = db.query(Subscription).filter(Subscription.id == subscription_id).first()
        if subscription is None:
            return ActivationResult(ok=False, error=f"Assinatura {subscription_id} não encontrada")

        subscription.status = SubscriptionStatus.ACTIVE
        subscription.updated_at = now

        entitlement = Entitlement(
            profile_id=profile_id,
            product_id=settings.entitlement_product_id,
            source_type=SOURCE_TYPE_SUBSCRIPTION,
            source_id=subscription_id,
            status=ENTITLEMENT_ACTIVE,
            expires_at=compute_expiry(now, subscription),
            created_at=now,
            updated_at=now,
        )
        db.add(entitlement)
        db.flush()
        log_event(db, "subscription.activated", subscription_id, {
            "profile_id": profile_id,
            "entitlement_id": entitlement.id,
            "expires_at": entitlement.expires_at.isoformat(),
        })
        db.commit()
    except IntegrityError:
        # a concurrent trigger inserted the same active entitlement first
        db.rollback()
        logger.info("Concurrent activation detected for subscription %s", subscription_id)
        return ActivationResult(ok=True, skipped=True, reason="already_granted")
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception("Failed to grant entitlement for subscription %s", subscription_id)
        return ActivationResult(ok=False, error=f"Erro ao liberar acesso: {e}")

    logger.info(
        "Entitlement %s granted to profile %s until %s",
        entitlement.id, profile_id, entitlement.expires_at,
    )

    loyalty = alloyal.sync_authorized_user(cpf, full_name)
    if not loyalty.ok:
        logger.warning("Access granted but Alloyal sync failed for subscription %s", subscription_id)

    return ActivationResult(ok=True, entitlement_id=entitlement.id, loyalty=loyalty)
