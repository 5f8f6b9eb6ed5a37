"""
Checkout orchestration: buyer profile, Iugu customer, payment method and
subscription, local subscription row, and inline activation for paid cards.

Each step commits or calls out on its own. A failure aborts the checkout with
a CheckoutError but never undoes earlier steps. Once the local subscription row
exists, anything left unfinished (a failed inline activation, a card that clears
later) is settled by the pending sweep. A gateway subscription whose local write
failed is only logged with its Iugu ids for manual follow-up.
"""
import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.integrations import iugu
from app.models.account import Account, AccountType
from app.models.plan import Plan
from app.models.profile import Profile
from app.models.subscription import Subscription, SubscriptionStatus, PaymentMethod
from app.schemas.checkout import CheckoutRequest
from app.services import validators
from app.services.eligibility import find_profile_by_cpf
from app.services.entitlements import activate_entitlement, ActivationResult
from app.services.events import log_event

logger = logging.getLogger(__name__)

PAYMENT_PAID = "paid"
PAYMENT_PENDING = "pending"
PAYMENT_FAILED = "failed"

PAYMENT_MESSAGES = {
    PAYMENT_PAID: "Pagamento aprovado! Seu acesso foi liberado.",
    PAYMENT_PENDING: "Aguardando confirmação do pagamento.",
    PAYMENT_FAILED: "Pagamento recusado. Tente novamente.",
}
ACCESS_PENDING_MESSAGE = "Pagamento aprovado! Seu acesso será liberado em instantes."

REQUIRED_FIELDS = {
    "cpf": "CPF",
    "full_name": "Nome completo",
    "email": "E-mail",
    "phone": "Telefone",
    "birth_date": "Data de nascimento",
    "iugu_plan_identifier": "Plano (identificador Iugu)",
    "plan_id": "Plano",
    "payment_method": "Forma de pagamento",
}


class CheckoutError(Exception):
    """Aborts a checkout. status_code: 400 validation, 500 store, 502 gateway."""

    def __init__(self, status_code: int, message: str, details=None):
        super().__init__(message)
        self.status_code = status_code
        self.message = message
        self.details = details


@dataclass
class PaymentOutcome:
    status: str
    payment_url: Optional[str] = None
    invoice_id: Optional[str] = None
    invoice_status: Optional[str] = None


def validate_request(request: CheckoutRequest) -> PaymentMethod:
    """Reject bad input before anything is written or sent to Iugu"""
    missing = [label for name, label in REQUIRED_FIELDS.items() if not getattr(request, name)]
    if missing:
        raise CheckoutError(400, "Campos obrigatórios não preenchidos.", {"missing": missing})

    try:
        method = PaymentMethod(request.payment_method)
    except ValueError:
        raise CheckoutError(
            400,
            "Forma de pagamento inválida.",
            {"allowed": [m.value for m in PaymentMethod]},
        )

    if method == PaymentMethod.CREDIT_CARD and not request.card_token:
        raise CheckoutError(400, "Token do cartão é obrigatório para pagamento com cartão.")

    errors = {}
    if not validators.is_valid_cpf(request.cpf):
        errors["cpf"] = "CPF inválido"
    for field_name, check in (
        ("email", validators.validate_email_address),
        ("phone", validators.validate_phone),
        ("birth_date", validators.validate_birth_date),
    ):
        message = check(getattr(request, field_name))
        if message:
            errors[field_name] = message
    if errors:
        raise CheckoutError(400, "Dados inválidos.", errors)

    return method


def _load_plan(db: Session, request: CheckoutRequest) -> Plan:
    try:
        plan = db.query(Plan).filter(Plan.id == request.plan_id).first()
    except SQLAlchemyError as e:
        raise CheckoutError(500, "Erro ao consultar o plano.", str(e)) from e
    if plan is None or not plan.is_active:
        raise CheckoutError(400, "Plano inválido ou inativo.")
    if plan.iugu_plan_identifier != request.iugu_plan_identifier:
        raise CheckoutError(400, "Plano não corresponde ao identificador informado.")
    return plan


def upsert_profile(db: Session, request: CheckoutRequest) -> Profile:
    """Patch the profile the client already knows about, else match by CPF, else insert"""
    cpf = validators.only_digits(request.cpf)
    try:
        profile = None
        if request.profile_id:
            profile = db.query(Profile).filter(Profile.id == request.profile_id).first()
        if profile is None:
            profile = find_profile_by_cpf(db, cpf)
        if profile is None:
            profile = Profile(cpf=cpf)
            db.add(profile)

        profile.cpf = cpf
        profile.full_name = request.full_name.strip()
        profile.email = request.email.strip().lower()
        profile.phone = validators.only_digits(request.phone)
        profile.birth_date = validators.parse_birth_date(request.birth_date)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception("Failed to save profile for CPF %s", cpf)
        raise CheckoutError(500, "Erro ao salvar cadastro.", str(e)) from e

    logger.info("Profile %s saved for CPF %s", profile.id, cpf)
    return profile


def _charge_card_invoice(invoice: dict, payment_method_id: str) -> tuple[dict, bool]:
    """Charge an unpaid card invoice and re-read it. Returns (invoice, charge_declined)."""
    declined = False
    try:
        charge = iugu.charge_invoice(invoice["id"], payment_method_id)
        declined = charge.get("success") is False
        if declined:
            logger.info("Card charge declined for invoice %s: %s", invoice["id"], charge.get("message"))
    except iugu.IuguError as e:
        declined = e.status_code is not None and 400 <= e.status_code < 500
        logger.warning("Card charge failed for invoice %s: %s", invoice["id"], e)

    try:
        invoice = iugu.get_invoice(invoice["id"])
    except iugu.IuguError as e:
        logger.warning("Could not re-read invoice %s after charge: %s", invoice["id"], e)
    return invoice, declined


def classify_payment(
    subscription: dict,
    method: PaymentMethod,
    payment_method_id: Optional[str] = None,
) -> PaymentOutcome:
    """Decide paid/pending/failed from the newest invoice of a freshly created subscription"""
    invoice = iugu.latest_invoice(subscription)
    if invoice is None:
        if method == PaymentMethod.CREDIT_CARD:
            return PaymentOutcome(PAYMENT_PAID if subscription.get("active") else PAYMENT_PENDING)
        return PaymentOutcome(PAYMENT_PENDING, payment_url=subscription.get("secure_url"))

    declined = False
    if (
        method == PaymentMethod.CREDIT_CARD
        and payment_method_id
        and invoice.get("id")
        and invoice.get("status") != iugu.INVOICE_PAID
    ):
        invoice, declined = _charge_card_invoice(invoice, payment_method_id)

    invoice_status = invoice.get("status") or "pending"
    outcome = PaymentOutcome(PAYMENT_FAILED, invoice_id=invoice.get("id"), invoice_status=invoice_status)
    if invoice_status == iugu.INVOICE_PAID:
        outcome.status = PAYMENT_PAID
    elif invoice_status in iugu.INVOICE_PENDING_STATUSES and not declined:
        outcome.status = PAYMENT_PENDING
        if method != PaymentMethod.CREDIT_CARD:
            outcome.payment_url = invoice.get("secure_url") or subscription.get("secure_url")
    return outcome


def resolve_account(db: Session, profile: Profile, company_id: Optional[str]) -> Account:
    """Company's B2B account for negotiated buyers, else the buyer's own B2C account"""
    if company_id:
        account = db.query(Account).filter(
            Account.company_id == company_id,
            Account.type == AccountType.B2B,
        ).first()
        if account is not None:
            return account
        logger.warning("Company %s has no B2B account, attaching to buyer's B2C account", company_id)

    account = db.query(Account).filter(
        Account.profile_id == profile.id,
        Account.type == AccountType.B2C,
    ).first()
    if account is None:
        account = Account(type=AccountType.B2C, profile_id=profile.id)
        db.add(account)
        db.flush()
        logger.info("Created B2C account %s for profile %s", account.id, profile.id)
    return account


def process_checkout(db: Session, request: CheckoutRequest) -> dict:
    """Run the whole checkout for one request. Raises CheckoutError."""
    method = validate_request(request)
    plan = _load_plan(db, request)

    profile = upsert_profile(db, request)
    cpf = profile.cpf
    full_name = profile.full_name

    phone_parts = validators.split_phone(request.phone)
    if phone_parts is None:
        raise CheckoutError(400, "Telefone inválido. Use DDD + número com 9 dígitos.",
                            {"phone": request.phone})
    phone_prefix, phone_number = phone_parts

    try:
        customer = iugu.get_or_create_customer(
            profile.email, full_name, cpf, phone_prefix, phone_number,
        )
    except iugu.IuguError as e:
        raise CheckoutError(502, "Erro ao criar cliente na Iugu.", e.payload or e.message) from e
    customer_id = customer["id"]

    payment_method_id = None
    if method == PaymentMethod.CREDIT_CARD:
        try:
            payment_method_id = iugu.create_payment_method(customer_id, request.card_token)["id"]
        except iugu.IuguError as e:
            raise CheckoutError(502, "Erro ao registrar o cartão na Iugu.", e.payload or e.message) from e

    try:
        gateway_subscription = iugu.create_subscription(
            plan.iugu_plan_identifier, customer_id, method.value, payment_method_id,
        )
    except iugu.IuguError as e:
        raise CheckoutError(502, "Erro ao criar assinatura na Iugu.", e.payload or e.message) from e
    iugu_subscription_id = gateway_subscription["id"]

    outcome = classify_payment(gateway_subscription, method, payment_method_id)
    logger.info(
        "Iugu subscription %s for profile %s: payment %s (invoice %s=%s)",
        iugu_subscription_id, profile.id, outcome.status, outcome.invoice_id, outcome.invoice_status,
    )

    try:
        account = resolve_account(db, profile, request.company_id)
        subscription = Subscription(
            profile_id=profile.id,
            account_id=account.id,
            plan_id=plan.id,
            status=SubscriptionStatus.PENDING_PAYMENT,
            iugu_subscription_id=iugu_subscription_id,
            iugu_customer_id=customer_id,
            payment_method=method,
        )
        db.add(subscription)
        db.flush()
        log_event(db, "checkout.subscription_created", subscription.id, {
            "profile_id": profile.id,
            "plan_id": plan.id,
            "iugu_subscription_id": iugu_subscription_id,
            "payment_method": method.value,
            "payment_status": outcome.status,
        })
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception(
            "Failed to save subscription locally; Iugu subscription %s (customer %s) left without a local row",
            iugu_subscription_id, customer_id,
        )
        raise CheckoutError(500, "Erro ao salvar assinatura.", {
            "error": str(e),
            "iugu_subscription_id": iugu_subscription_id,
        }) from e

    activation: Optional[ActivationResult] = None
    if outcome.status == PAYMENT_PAID:
        activation = activate_entitlement(db, profile.id, subscription.id, cpf, full_name)
        if not activation.ok:
            logger.error(
                "Inline activation failed for subscription %s: %s", subscription.id, activation.error,
            )

    access_granted = bool(activation and activation.ok)
    message = PAYMENT_MESSAGES[outcome.status]
    if outcome.status == PAYMENT_PAID and not access_granted:
        message = ACCESS_PENDING_MESSAGE

    return {
        "success": outcome.status != PAYMENT_FAILED,
        "payment_status": outcome.status,
        "message": message,
        "subscription_id": subscription.id,
        "payment_url": outcome.payment_url,
        "access_granted": access_granted,
        "loyalty_synced": bool(activation and activation.loyalty_synced),
    }
