"""
Reconciliation of local subscriptions with Iugu payment state.

Two entry points besides the inline card activation in checkout:
- handle_invoice_event(): an Iugu webhook already decoded into an IuguWebhookEvent
- sweep_pending_subscriptions(): periodic poll of recent pending_payment rows

Both converge on activate_entitlement(), so a webhook and a sweep that see the
same payment at the same time still grant access once.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.config import settings
from app.integrations import iugu
from app.models.event import EventStatus
from app.models.profile import Profile
from app.models.subscription import Subscription, SubscriptionStatus
from app.services.entitlements import activate_entitlement
from app.services.events import log_event

logger = logging.getLogger(__name__)


def _skip(reason: str, subscription_id: Optional[str] = None) -> dict:
    return {
        "ok": True,
        "skipped": True,
        "reason": reason,
        "subscription_id": subscription_id,
        "alloyal_synced": False,
    }


def _record_webhook(db: Session, event: iugu.IuguWebhookEvent, status: EventStatus, outcome: str) -> None:
    try:
        log_event(db, f"iugu.{event.event_type or 'unknown'}", event.subscription_id, {
            "invoice_id": event.invoice_id,
            "status": event.status,
            "subscription_id": event.subscription_id,
            "outcome": outcome,
        }, status=status)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("Failed to record Iugu webhook event: %s", e)


def handle_invoice_event(db: Session, event: iugu.IuguWebhookEvent) -> dict:
    """
    Activate the subscription behind a paid invoice.

    Anything that isn't actionable is acknowledged as skipped; the caller answers
    200 for all of these so Iugu doesn't keep retrying.
    """
    if not event.is_invoice_paid:
        logger.info("Ignoring Iugu event %s (status=%s)", event.event_type, event.status)
        _record_webhook(db, event, EventStatus.IGNORED, "not_relevant")
        return _skip("Evento não relevante")

    if not event.subscription_id:
        logger.info("Paid invoice %s has no subscription, ignoring", event.invoice_id)
        _record_webhook(db, event, EventStatus.IGNORED, "no_subscription")
        return _skip("Fatura sem assinatura vinculada")

    try:
        subscription = db.query(Subscription).filter(
            Subscription.iugu_subscription_id == event.subscription_id,
        ).first()
        if subscription is None:
            logger.info("Iugu subscription %s not found locally, ignoring", event.subscription_id)
            _record_webhook(db, event, EventStatus.IGNORED, "unknown_subscription")
            return _skip("Assinatura não encontrada")

        if subscription.status == SubscriptionStatus.ACTIVE:
            logger.info("Subscription %s already active, nothing to do", subscription.id)
            _record_webhook(db, event, EventStatus.IGNORED, "already_active")
            return _skip("Assinatura já ativa", subscription.id)

        if subscription.status == SubscriptionStatus.CANCELED:
            logger.warning(
                "Paid invoice %s for canceled subscription %s, not reactivating",
                event.invoice_id, subscription.id,
            )
            _record_webhook(db, event, EventStatus.IGNORED, "subscription_canceled")
            return _skip("Assinatura cancelada", subscription.id)

        profile = db.query(Profile).filter(Profile.id == subscription.profile_id).first()
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception("Webhook lookup failed for Iugu subscription %s", event.subscription_id)
        return {"ok": False, "skipped": False, "error": f"Erro ao consultar assinatura: {e}",
                "subscription_id": None, "alloyal_synced": False}

    if profile is None:
        logger.error("Profile %s of subscription %s not found", subscription.profile_id, subscription.id)
        _record_webhook(db, event, EventStatus.FAILED, "profile_not_found")
        return {"ok": False, "skipped": False, "error": "Perfil não encontrado",
                "subscription_id": subscription.id, "alloyal_synced": False}

    result = activate_entitlement(db, profile.id, subscription.id, profile.cpf, profile.full_name)
    _record_webhook(
        db, event,
        EventStatus.PROCESSED if result.ok else EventStatus.FAILED,
        result.reason or ("activated" if result.ok else "activation_failed"),
    )
    return {
        "ok": result.ok,
        "skipped": result.skipped,
        "reason": result.reason,
        "error": result.error,
        "subscription_id": subscription.id,
        "alloyal_synced": result.loyalty_synced,
    }


def _sweep_row(db: Session, subscription: Subscription, report: dict) -> dict:
    detail = {
        "subscription_id": subscription.id,
        "iugu_subscription_id": subscription.iugu_subscription_id,
        "payment_method": subscription.payment_method.value if subscription.payment_method else None,
        "created_at": subscription.created_at.isoformat() if subscription.created_at else None,
        "action": None,
        "iugu_status": None,
        "iugu_active": None,
        "invoice_status": None,
        "error": None,
    }

    if not subscription.iugu_subscription_id:
        detail["action"] = "skipped"
        detail["error"] = "Sem iugu_subscription_id"
        report["errors"] += 1
        return detail

    try:
        remote = iugu.get_subscription(subscription.iugu_subscription_id)
    except iugu.IuguError as e:
        detail["action"] = "error"
        detail["error"] = f"Erro ao consultar Iugu: {e.message}"
        report["errors"] += 1
        return detail

    invoice = iugu.latest_invoice(remote)
    detail["iugu_status"] = remote.get("status")
    detail["iugu_active"] = bool(remote.get("active"))
    detail["invoice_status"] = invoice.get("status") if invoice else None

    is_paid = detail["iugu_active"] or detail["invoice_status"] == iugu.INVOICE_PAID
    is_dead = detail["iugu_status"] in iugu.SUBSCRIPTION_DEAD_STATUSES

    if is_paid:
        profile = db.query(Profile).filter(Profile.id == subscription.profile_id).first()
        if profile is None:
            detail["action"] = "skipped"
            detail["error"] = "Perfil não encontrado"
            report["skipped"] += 1
            return detail

        result = activate_entitlement(db, profile.id, subscription.id, profile.cpf, profile.full_name)
        if not result.ok:
            detail["action"] = "error"
            detail["error"] = result.error
            report["errors"] += 1
        elif result.skipped:
            detail["action"] = "already_active"
            report["already_active"] += 1
        else:
            detail["action"] = "activated"
            report["activated"] += 1
        return detail

    if is_dead:
        subscription.status = SubscriptionStatus.CANCELED
        subscription.updated_at = datetime.now(timezone.utc)
        log_event(db, "subscription.canceled", subscription.id, {
            "iugu_subscription_id": subscription.iugu_subscription_id,
            "iugu_status": detail["iugu_status"],
        })
        db.commit()
        detail["action"] = "canceled"
        report["canceled"] += 1
        return detail

    detail["action"] = "still_pending"
    report["still_pending"] += 1
    return detail


def sweep_pending_subscriptions(db: Session, now: Optional[datetime] = None) -> dict:
    """
    Poll Iugu for recent pending_payment subscriptions and settle them.

    Per-row failures are counted and the sweep moves on; the report is always
    returned.
    """
    started_at = now or datetime.now(timezone.utc)
    window_hours = settings.sweep_window_hours
    cutoff = started_at - timedelta(hours=window_hours)

    report = {
        "started_at": started_at.isoformat(),
        "window_hours": window_hours,
        "cutoff": cutoff.isoformat(),
        "total_found": 0,
        "processed": 0,
        "activated": 0,
        "already_active": 0,
        "canceled": 0,
        "still_pending": 0,
        "skipped": 0,
        "errors": 0,
        "details": [],
        "finished_at": None,
    }

    try:
        pending = (
            db.query(Subscription)
            .filter(
                Subscription.status == SubscriptionStatus.PENDING_PAYMENT,
                Subscription.created_at >= cutoff,
            )
            .order_by(Subscription.created_at.asc())
            .limit(settings.sweep_batch_size)
            .all()
        )
    except SQLAlchemyError as e:
        logger.exception("Sweep could not load pending subscriptions")
        report["errors"] += 1
        report["error"] = str(e)
        report["finished_at"] = datetime.now(timezone.utc).isoformat()
        return report

    report["total_found"] = len(pending)

    for subscription in pending:
        try:
            detail = _sweep_row(db, subscription, report)
        except SQLAlchemyError as e:
            db.rollback()
            logger.exception("Sweep failed for subscription %s", subscription.id)
            report["errors"] += 1
            detail = {"subscription_id": subscription.id, "action": "error", "error": str(e)}
        report["processed"] += 1
        report["details"].append(detail)

    report["finished_at"] = datetime.now(timezone.utc).isoformat()

    try:
        log_event(db, "reconciliation.sweep_completed", None, {
            k: v for k, v in report.items() if k != "details"
        })
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("Failed to record sweep event: %s", e)

    logger.info(
        "Sweep done: found=%d processed=%d activated=%d canceled=%d still_pending=%d errors=%d",
        report["total_found"], report["processed"], report["activated"],
        report["canceled"], report["still_pending"], report["errors"],
    )
    return report
