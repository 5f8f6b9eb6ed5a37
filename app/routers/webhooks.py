"""
Iugu webhook receiver.

Iugu retries anything that isn't a 2xx, so every authenticated delivery we
choose not to act on is still answered with 200.
"""
import logging
from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from app.database import get_db
from app.schemas.webhooks import IuguWebhookResponse
from app.integrations.iugu import parse_webhook_body, decode_webhook_event, validate_webhook_token
from app.services.reconciliation import handle_invoice_event
from app.config import settings

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["Webhooks"])


@router.post("/iugu", response_model=IuguWebhookResponse)
async def iugu_webhook(
    request: Request,
    db: Session = Depends(get_db),
):
    """Receive Iugu notifications, form-encoded or JSON"""
    body = await request.body()
    payload = parse_webhook_body(body, request.headers.get("content-type"))
    if payload is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Payload vazio ou inválido")

    event = decode_webhook_event(payload)
    if not validate_webhook_token(event.token, settings.iugu_webhook_token):
        logger.warning("Iugu webhook rejected: invalid token (event=%s)", event.event_type)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token inválido")

    logger.info(
        "Iugu webhook: event=%s invoice=%s status=%s subscription=%s",
        event.event_type, event.invoice_id, event.status, event.subscription_id,
    )
    return await run_in_threadpool(handle_invoice_event, db, event)
