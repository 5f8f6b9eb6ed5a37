"""
Eligibility: who is this buyer and which price list applies to them.

A buyer with an active company membership gets the company's negotiated plans
("convenio"); everyone else, including unknown CPFs, gets the direct-consumer
catalog ("b2c").
"""
import logging
from dataclasses import dataclass, asdict
from typing import Optional

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from app.models.company import CompanyMember, MembershipStatus
from app.models.profile import Profile
from app.services.validators import only_digits, format_cpf, is_valid_cpf

logger = logging.getLogger(__name__)

PLAN_TYPE_CONVENIO = "convenio"
PLAN_TYPE_B2C = "b2c"


class EligibilityError(Exception):
    def __init__(self, status_code: int, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.message = message


@dataclass
class EligibilityResult:
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

    def as_dict(self) -> dict:
        return asdict(self)


def find_profile_by_cpf(db: Session, cpf: str) -> Optional[Profile]:
    """Digits-only match first; masked form covers legacy rows"""
    digits = only_digits(cpf)
    return db.query(Profile).filter(
        or_(Profile.cpf == digits, Profile.cpf == format_cpf(digits))
    ).order_by((Profile.cpf == digits).desc()).first()


def find_active_membership(db: Session, profile_id: str) -> Optional[CompanyMember]:
    return (
        db.query(CompanyMember)
        .options(joinedload(CompanyMember.company))
        .filter(
            CompanyMember.user_id == profile_id,
            CompanyMember.status == MembershipStatus.ACTIVE,
        )
        .order_by(CompanyMember.created_at.desc())
        .first()
    )


def resolve_eligibility(db: Session, cpf: Optional[str]) -> EligibilityResult:
    """Classify a buyer by CPF. Raises EligibilityError (400 bad input, 503 store failure)."""
    if not cpf:
        raise EligibilityError(400, "CPF não informado")

    digits = only_digits(cpf)
    if len(digits) != 11 or not is_valid_cpf(digits):
        raise EligibilityError(400, "CPF inválido")

    try:
        profile = find_profile_by_cpf(db, digits)
        if profile is None:
            logger.info("Eligibility: CPF %s not found, new direct-consumer buyer", digits)
            return EligibilityResult(
                found=False,
                is_new_user=True,
                plan_type=PLAN_TYPE_B2C,
                cpf=digits,
                message="CPF não encontrado. Preencha seus dados para continuar.",
            )

        membership = find_active_membership(db, profile.id)
    except SQLAlchemyError as e:
        logger.exception("Eligibility lookup failed for CPF %s", digits)
        raise EligibilityError(503, "Erro ao consultar cadastro. Tente novamente.") from e

    result = EligibilityResult(
        found=True,
        is_new_user=False,
        plan_type=PLAN_TYPE_B2C,
        profile_id=profile.id,
        full_name=profile.full_name,
        cpf=only_digits(profile.cpf),
        email=profile.email,
        phone=profile.phone,
        birth_date=profile.birth_date.isoformat() if profile.birth_date else None,
    )
    if membership is not None:
        result.plan_type = PLAN_TYPE_CONVENIO
        result.company_id = membership.company_id
        result.company_name = membership.company.name if membership.company else None

    logger.info(
        "Eligibility: profile %s classified as %s (company=%s)",
        profile.id, result.plan_type, result.company_id,
    )
    return result
