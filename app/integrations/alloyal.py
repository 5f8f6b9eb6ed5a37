"""
Alloyal (Lecupon) loyalty platform client.

Registers entitled buyers as authorized users of the club. The sync is an upsert
on the platform side, so calling it again for the same CPF is harmless.
Never raises: failures are reported in the returned LoyaltySyncResult.
"""
import logging
from dataclasses import dataclass
from typing import Optional

import httpx

from app.config import settings
from app.services.validators import only_digits

logger = logging.getLogger(__name__)


@dataclass
class LoyaltySyncResult:
    ok: bool
    http_status: Optional[int] = None
    error: Optional[str] = None
    skipped: bool = False

    def as_dict(self) -> dict:
        return {
            "ok": self.ok,
            "http": self.http_status,
            "error": self.error,
            "skipped": self.skipped,
        }


def sync_authorized_user(cpf: str, name: str) -> LoyaltySyncResult:
    """Upsert the buyer as an active authorized user of the business"""
    if not settings.alloyal_enabled:
        logger.info("Alloyal sync disabled. Skipping sync for %s", cpf)
        return LoyaltySyncResult(ok=True, skipped=True)

    url = (
        f"{settings.alloyal_api_base}/businesses/"
        f"{settings.alloyal_business_code}/authorized_users/sync"
    )
    headers = {
        "X-ClientEmployee-Email": settings.alloyal_employee_email,
        "X-ClientEmployee-Token": settings.alloyal_employee_token,
        "Content-Type": "application/json",
    }
    payload = {
        "authorized_users": [
            {"cpf": only_digits(cpf), "name": name, "active": True},
        ],
    }

    try:
        with httpx.Client(timeout=settings.loyalty_timeout) as client:
            resp = client.post(url, headers=headers, json=payload)
    except httpx.HTTPError as e:
        logger.error("Alloyal sync exception for %s: %s", cpf, e)
        return LoyaltySyncResult(ok=False, error=str(e))

    if 200 <= resp.status_code < 300:
        logger.info("Alloyal sync ok for %s (HTTP %s)", cpf, resp.status_code)
        return LoyaltySyncResult(ok=True, http_status=resp.status_code)

    logger.error("Alloyal sync failed for %s: %s %s", cpf, resp.status_code, resp.text[:500])
    return LoyaltySyncResult(ok=False, http_status=resp.status_code, error=resp.text[:500])
