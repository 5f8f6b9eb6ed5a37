"""
Celery tasks for scheduled reconciliation

Tasks:
- reconcile_pending_subscriptions: poll Iugu for recent pending_payment rows
- sync_plan_catalog: mirror the Iugu plan catalog into the plans table
"""
import logging

from app.celery_app import celery_app
from app.database import SessionLocal
from app.integrations.iugu import IuguError

logger = logging.getLogger(__name__)


@celery_app.task(name="reconcile_pending_subscriptions", bind=True, max_retries=0)
def reconcile_pending_subscriptions(self):
    """
    Settle pending_payment subscriptions from the last window_hours against Iugu.

    Idempotent: rows already activated by the webhook are reported as already_active.
    """
    from app.services.reconciliation import sweep_pending_subscriptions

    db = SessionLocal()
    try:
        report = sweep_pending_subscriptions(db)
        return {k: v for k, v in report.items() if k != "details"}
    except Exception as e:
        db.rollback()
        logger.exception("reconcile_pending_subscriptions failed")
        return {"error": str(e)}
    finally:
        db.close()


@celery_app.task(name="sync_plan_catalog", bind=True, max_retries=0)
def sync_plan_catalog(self):
    """Reconcile local plans with the Iugu catalog"""
    from app.services.plan_catalog import sync_plan_catalog as run_sync

    db = SessionLocal()
    try:
        return run_sync(db)
    except IuguError as e:
        logger.error("sync_plan_catalog: could not list Iugu plans: %s", e)
        return {"error": e.message}
    except Exception as e:
        db.rollback()
        logger.exception("sync_plan_catalog failed")
        return {"error": str(e)}
    finally:
        db.close()
