from pydantic import BaseModel
from typing import Optional, List


class EligibilityResponse(BaseModel):
    """Buyer classification plus prefill data for known buyers"""
    found: bool
    is_new_user: bool
    plan_type: str
    profile_id: Optional[str] = None
    full_name: Optional[str] = None
    cpf: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    birth_date: Optional[str] = None
    company_id: Optional[str] = None
    company_name: Optional[str] = None
    message: Optional[str] = None


class PlanOut(BaseModel):
    id: str
    name: str
    price: float
    price_formatted: str
    iugu_plan_identifier: str
    iugu_plan_id: Optional[str] = None
    type: Optional[str] = None
    interval: Optional[int] = None
    interval_type: Optional[str] = None


class PlanListResponse(BaseModel):
    plan_type: str
    total: int
    plans: List[PlanOut]


class CheckoutRequest(BaseModel):
    """
    Full checkout state submitted by the client in one request.

    Fields are optional at the schema level so missing values come back as a
    400 with a readable message instead of a validation dump.
    Card data never reaches us: only the token produced by Iugu.js.
    """
    cpf: Optional[str] = None
    full_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    birth_date: Optional[str] = None
    plan_id: Optional[str] = None
    iugu_plan_identifier: Optional[str] = None
    payment_method: Optional[str] = None
    card_token: Optional[str] = None
    profile_id: Optional[str] = None
    company_id: Optional[str] = None


class CheckoutResponse(BaseModel):
    success: bool
    payment_status: str
    message: str
    subscription_id: str
    payment_url: Optional[str] = None
    access_granted: bool = False
    loyalty_synced: bool = False
