from pydantic import BaseModel
from typing import Optional, List


class SweepDetail(BaseModel):
    subscription_id: str
    iugu_subscription_id: Optional[str] = None
    payment_method: Optional[str] = None
    created_at: Optional[str] = None
    action: Optional[str] = None
    iugu_status: Optional[str] = None
    iugu_active: Optional[bool] = None
    invoice_status: Optional[str] = None
    error: Optional[str] = None


class SweepReport(BaseModel):
    """Counters and per-row outcome of one pending-subscription sweep"""
    started_at: str
    finished_at: Optional[str] = None
    window_hours: int
    cutoff: str
    total_found: int = 0
    processed: int = 0
    activated: int = 0
    already_active: int = 0
    canceled: int = 0
    still_pending: int = 0
    skipped: int = 0
    errors: int = 0
    error: Optional[str] = None
    details: List[SweepDetail] = []


class PlanSyncAction(BaseModel):
    identifier: Optional[str] = None
    action: str
    error: Optional[str] = None


class PlanSyncReport(BaseModel):
    inserted: int = 0
    updated: int = 0
    deactivated: int = 0
    activated: int = 0
    errors: int = 0
    actions: List[PlanSyncAction] = []
