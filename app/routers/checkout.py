"""
Public checkout endpoints: CPF check, plan list and subscription creation.

The checkout POST is stateless: the client sends the full wizard state in one body.
"""
import logging
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from app.database import get_db
from app.schemas.checkout import (
    CheckoutRequest,
    CheckoutResponse,
    EligibilityResponse,
    PlanListResponse,
)
from app.services.checkout import CheckoutError, process_checkout
from app.services.eligibility import EligibilityError, resolve_eligibility
from app.services.plan_catalog import list_plans

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/checkout", tags=["Checkout"])


@router.get("/eligibility", response_model=EligibilityResponse)
def check_eligibility(
    cpf: Optional[str] = Query(None),
    db: Session = Depends(get_db),
):
    try:
        result = resolve_eligibility(db, cpf)
    except EligibilityError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return result.as_dict()


@router.get("/plans", response_model=PlanListResponse)
def get_plans(
    plan_type: str = Query("b2c"),
    company_id: Optional[str] = Query(None),
    db: Session = Depends(get_db),
):
    return list_plans(db, plan_type, company_id)


@router.post("/subscriptions", response_model=CheckoutResponse)
def create_subscription(
    data: CheckoutRequest,
    db: Session = Depends(get_db),
):
    try:
        return process_checkout(db, data)
    except CheckoutError as e:
        logger.warning("Checkout rejected (%s): %s", e.status_code, e.message)
        raise HTTPException(
            status_code=e.status_code,
            detail={"error": e.message, "details": e.details},
        )
