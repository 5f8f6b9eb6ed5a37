from pydantic import BaseModel
from typing import Optional


class IuguWebhookResponse(BaseModel):
    ok: bool = True
    skipped: bool = False
    reason: Optional[str] = None
    error: Optional[str] = None
    subscription_id: Optional[str] = None
    alloyal_synced: bool = False
