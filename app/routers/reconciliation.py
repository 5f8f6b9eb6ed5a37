"""
Token-protected triggers for the reconciliation jobs, for external schedulers
that can't reach Celery. The beat schedule runs the same code in-process.
"""
import logging
from typing import Optional
from fastapi import APIRouter, Depends, Header, HTTPException, Query, status
from sqlalchemy.orm import Session

from app.config import settings
from app.database import get_db
from app.integrations.iugu import IuguError
from app.schemas.reconciliation import PlanSyncReport, SweepReport
from app.services.plan_catalog import sync_plan_catalog
from app.services.reconciliation import sweep_pending_subscriptions

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/reconciliation", tags=["Reconciliation"])


def require_cron_token(
    token: Optional[str] = Query(None),
    x_cron_token: Optional[str] = Header(None),
):
    """Accept the shared secret from ?token= or the X-Cron-Token header"""
    received = token or x_cron_token
    if not settings.cron_token or received != settings.cron_token:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Acesso negado")


@router.api_route("/pending-subscriptions", methods=["GET", "POST"], response_model=SweepReport)
def run_pending_sweep(
    db: Session = Depends(get_db),
    _: None = Depends(require_cron_token),
):
    return sweep_pending_subscriptions(db)


@router.api_route("/plans-sync", methods=["GET", "POST"], response_model=PlanSyncReport)
def run_plan_sync(
    db: Session = Depends(get_db),
    _: None = Depends(require_cron_token),
):
    try:
        return sync_plan_catalog(db)
    except IuguError as e:
        logger.error("Plan sync aborted: %s", e)
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail={"error": "Erro ao listar planos na Iugu.", "details": e.payload or e.message},
        )
