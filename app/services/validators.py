"""
Buyer field validation: CPF (Brazilian tax id), phone, email and birth date.

Every validator returns an error message (str) or None when the value is fine,
so the checkout flow can collect all problems before touching the database.
"""
import re
from datetime import date, datetime
from typing import Optional

from pydantic import validate_email

MIN_BUYER_AGE = 15


def only_digits(value: Optional[str]) -> str:
    return re.sub(r"\D", "", value or "")


def _check_digit(digits: str, weight_start: int) -> int:
    total = sum(int(d) * (weight_start - i) for i, d in enumerate(digits))
    remainder = (total * 10) % 11
    return 0 if remainder >= 10 else remainder


def is_valid_cpf(value: Optional[str]) -> bool:
    """Two mod-11 check digits; strings of one repeated digit are always rejected."""
    cpf = only_digits(value)
    if len(cpf) != 11 or len(set(cpf)) == 1:
        return False
    if _check_digit(cpf[:9], 10) != int(cpf[9]):
        return False
    return _check_digit(cpf[:10], 11) == int(cpf[10])


def format_cpf(value: Optional[str]) -> str:
    """Render 12345678909 as 123.456.789-09 (input returned untouched if not 11 digits)"""
    cpf = only_digits(value)
    if len(cpf) != 11:
        return value or ""
    return f"{cpf[:3]}.{cpf[3:6]}.{cpf[6:9]}-{cpf[9:]}"


def split_phone(value: Optional[str]) -> Optional[tuple[str, str]]:
    """Split '11987654321' into ('11', '987654321'); None if it doesn't decompose."""
    phone = only_digits(value)
    if len(phone) != 11:
        return None
    return phone[:2], phone[2:]


def validate_phone(value: Optional[str]) -> Optional[str]:
    phone = only_digits(value)
    if not phone:
        return "Telefone é obrigatório"
    if len(phone) != 11:
        return "Telefone deve ter 11 dígitos (DDD + número)"
    if not 11 <= int(phone[:2]) <= 99:
        return "DDD inválido"
    if phone[2] != "9":
        return "Celular deve começar com 9"
    return None


def validate_email_address(value: Optional[str]) -> Optional[str]:
    if not value:
        return "E-mail é obrigatório"
    try:
        validate_email(value)
    except ValueError:
        return "E-mail inválido"
    return None


def parse_birth_date(value) -> Optional[date]:
    if isinstance(value, date):
        return value
    try:
        return datetime.strptime(value or "", "%Y-%m-%d").date()
    except ValueError:
        return None


def validate_birth_date(value, today: Optional[date] = None) -> Optional[str]:
    if not value:
        return "Data de nascimento é obrigatória"
    birth = parse_birth_date(value)
    if birth is None:
        return "Data de nascimento inválida"
    today = today or date.today()
    if birth > today:
        return "Data de nascimento não pode ser no futuro"
    age = today.year - birth.year - ((today.month, today.day) < (birth.month, birth.day))
    if age < MIN_BUYER_AGE:
        return f"Idade mínima de {MIN_BUYER_AGE} anos"
    return None
