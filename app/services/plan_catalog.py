"""
Plan catalog: priced plan lists for checkout and the Iugu -> local plan sync.

Iugu is the source of truth for plan name, price and existence. The sync only
writes when something actually changed, so re-running it against an unchanged
catalog is a no-op.
"""
import logging
from decimal import Decimal
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.config import settings
from app.integrations import iugu
from app.models.account import Account, AccountType
from app.models.contract import Contract, ContractPlan, ContractStatus
from app.models.plan import Plan, PlanType
from app.services.eligibility import PLAN_TYPE_B2C, PLAN_TYPE_CONVENIO
from app.services.events import log_event

logger = logging.getLogger(__name__)

# Gateway prices are integer cents; local prices are decimals. Differences of a
# single cent come from float rounding on older rows and are not real changes.
PRICE_TOLERANCE_CENTS = 1


def format_price_brl(price) -> str:
    """1234.5 -> 'R$ 1.234,50'"""
    text = f"{Decimal(price or 0):,.2f}"
    return "R$ " + text.replace(",", "_").replace(".", ",").replace("_", ".")


def price_to_cents(price) -> int:
    return int((Decimal(price or 0) * 100).to_integral_value())


def serialize_plan(plan: Plan) -> dict:
    return {
        "id": plan.id,
        "name": plan.name,
        "price": float(plan.price),
        "price_formatted": format_price_brl(plan.price),
        "iugu_plan_identifier": plan.iugu_plan_identifier,
        "iugu_plan_id": plan.iugu_plan_id,
        "type": plan.type.value if plan.type else None,
        "interval": plan.interval,
        "interval_type": plan.interval_type,
    }


def _b2c_plans(db: Session) -> list[Plan]:
    return (
        db.query(Plan)
        .filter(Plan.type == PlanType.B2C, Plan.is_active.is_(True))
        .order_by(Plan.price.asc())
        .all()
    )


def _negotiated_plans(db: Session, company_id: str) -> list[Plan]:
    """company -> B2B account -> active contract -> contract_plans -> active plans"""
    account_ids = [
        row.id for row in db.query(Account.id).filter(
            Account.company_id == company_id,
            Account.type == AccountType.B2B,
        ).all()
    ]
    if not account_ids:
        logger.info("Company %s has no B2B account", company_id)
        return []

    contract_ids = [
        row.id for row in db.query(Contract.id).filter(
            Contract.account_id.in_(account_ids),
            Contract.status == ContractStatus.ACTIVE,
        ).all()
    ]
    if not contract_ids:
        logger.info("Company %s has no active contract", company_id)
        return []

    return (
        db.query(Plan)
        .join(ContractPlan, ContractPlan.plan_id == Plan.id)
        .filter(ContractPlan.contract_id.in_(contract_ids), Plan.is_active.is_(True))
        .order_by(Plan.price.asc())
        .distinct()
        .all()
    )


def list_plans(db: Session, plan_type: Optional[str], company_id: Optional[str] = None) -> dict:
    """
    Priced plan list for a buyer classification.

    Negotiated lookups that come up empty at any hop fall back to the
    direct-consumer catalog, and the response says so via plan_type.
    """
    if settings.plan_sync_on_list:
        try:
            sync_plan_catalog(db)
        except iugu.IuguError as e:
            logger.warning("Plan sync before listing failed, serving cached plans: %s", e)
        except SQLAlchemyError as e:
            db.rollback()
            logger.error("Plan sync before listing hit a database error, serving cached plans: %s", e)

    resolved_type = PLAN_TYPE_B2C
    plans: list[Plan] = []
    if plan_type == PLAN_TYPE_CONVENIO and company_id:
        plans = _negotiated_plans(db, company_id)
        if plans:
            resolved_type = PLAN_TYPE_CONVENIO
        else:
            logger.info("No negotiated plans for company %s, falling back to b2c", company_id)

    if not plans:
        plans = _b2c_plans(db)

    return {
        "plan_type": resolved_type,
        "total": len(plans),
        "plans": [serialize_plan(p) for p in plans],
    }


def _local_plans_by_identifier(db: Session) -> dict[str, Plan]:
    local: dict[str, Plan] = {}
    for plan in db.query(Plan).limit(settings.plan_sync_page_size).all():
        current = local.get(plan.iugu_plan_identifier)
        # an active row wins over inactive duplicates of the same identifier
        if current is None or (plan.is_active and not current.is_active):
            local[plan.iugu_plan_identifier] = plan
    return local


def _apply_gateway_fields(plan: Plan, remote: dict, price_cents: int) -> None:
    plan.name = remote.get("name") or plan.name
    plan.price = Decimal(price_cents) / 100
    plan.interval = remote.get("interval")
    plan.interval_type = remote.get("interval_type")
    plan.iugu_plan_id = remote.get("id")
    plan.is_active = True


def sync_plan_catalog(db: Session) -> dict:
    """
    Reconcile local plans with the Iugu catalog.

    Raises IuguError when the catalog can't be fetched; per-plan failures are
    counted and the batch continues.
    """
    remote_plans = iugu.list_plans(limit=settings.plan_sync_page_size)
    local = _local_plans_by_identifier(db)

    summary = {"inserted": 0, "updated": 0, "deactivated": 0, "activated": 0, "errors": 0}
    actions: list[dict] = []
    remote_identifiers: set[str] = set()

    for remote in remote_plans:
        identifier = remote.get("identifier")
        if not identifier:
            summary["errors"] += 1
            actions.append({"identifier": None, "action": "error", "error": "missing identifier"})
            continue
        remote_identifiers.add(identifier)

        try:
            price_cents = iugu.plan_price_cents(remote)
            if price_cents is None:
                raise ValueError("plan has no price")

            plan = local.get(identifier)
            if plan is None:
                plan = Plan(iugu_plan_identifier=identifier, type=PlanType.B2C)
                _apply_gateway_fields(plan, remote, price_cents)
                db.add(plan)
                db.commit()
                local[identifier] = plan
                summary["inserted"] += 1
                actions.append({"identifier": identifier, "action": "inserted"})
                continue

            name_changed = (remote.get("name") or plan.name) != plan.name
            price_changed = abs(price_to_cents(plan.price) - price_cents) > PRICE_TOLERANCE_CENTS
            was_inactive = not plan.is_active
            if not (name_changed or price_changed or was_inactive):
                continue

            _apply_gateway_fields(plan, remote, price_cents)
            db.commit()
            if was_inactive:
                summary["activated"] += 1
                actions.append({"identifier": identifier, "action": "activated"})
            else:
                summary["updated"] += 1
                actions.append({"identifier": identifier, "action": "updated"})
        except (SQLAlchemyError, ValueError, TypeError) as e:
            db.rollback()
            summary["errors"] += 1
            actions.append({"identifier": identifier, "action": "error", "error": str(e)})
            logger.error("Plan sync failed for %s: %s", identifier, e)

    for identifier, plan in local.items():
        if identifier in remote_identifiers or not plan.is_active:
            continue
        try:
            plan.is_active = False
            db.commit()
            summary["deactivated"] += 1
            actions.append({"identifier": identifier, "action": "deactivated"})
        except SQLAlchemyError as e:
            db.rollback()
            summary["errors"] += 1
            actions.append({"identifier": identifier, "action": "error", "error": str(e)})
            logger.error("Plan deactivation failed for %s: %s", identifier, e)

    if any(summary.values()):
        try:
            log_event(db, "plans.sync_completed", None, dict(summary))
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error("Failed to record plan sync event: %s", e)

    logger.info(
        "Plan sync completed: inserted=%d updated=%d activated=%d deactivated=%d errors=%d",
        summary["inserted"], summary["updated"], summary["activated"],
        summary["deactivated"], summary["errors"],
    )
    return {**summary, "actions": actions}
