"""
Iugu payment gateway: REST client and webhook decoding.

API auth: HTTP basic with the API key as username and a blank password.
Webhook auth: shared secret carried in the `token` field of the payload.
Iugu posts webhooks form-encoded (`data[status]=paid`); JSON bodies are accepted too.
"""
import json
import logging
import requests
from dataclasses import dataclass, field
from typing import Optional
from urllib.parse import parse_qsl

from app.config import settings

logger = logging.getLogger(__name__)

INVOICE_STATUS_CHANGED = "invoice.status_changed"

INVOICE_PAID = "paid"
INVOICE_PENDING_STATUSES = {"pending", "in_analysis"}
SUBSCRIPTION_DEAD_STATUSES = {"expired", "suspended", "canceled"}


class IuguError(Exception):
    """Any failed gateway call: transport error, timeout, non-2xx or unreadable body"""

    def __init__(self, message: str, status_code: Optional[int] = None, payload=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload


@dataclass
class IuguWebhookEvent:
    """Canonical webhook event, independent of the wire format it arrived in"""
    event_type: str
    token: Optional[str]
    invoice_id: Optional[str]
    status: Optional[str]
    subscription_id: Optional[str]
    raw_payload: dict = field(default_factory=dict)

    @property
    def is_invoice_paid(self) -> bool:
        return self.event_type == INVOICE_STATUS_CHANGED and self.status == INVOICE_PAID


def validate_webhook_token(received: Optional[str], expected_token: str) -> bool:
    """Validate the payload token against the configured secret"""
    if not received or not expected_token:
        return False
    return received == expected_token


def _expand_form_fields(pairs: list[tuple[str, str]]) -> dict:
    """Turn [('data[object][status]', 'paid')] into {'data': {'object': {'status': 'paid'}}}"""
    result: dict = {}
    for key, value in pairs:
        head, _, rest = key.partition("[")
        parts = [head] + [p for p in rest.rstrip("]").split("][") if p] if rest else [head]
        node = result
        for part in parts[:-1]:
            child = node.get(part)
            if not isinstance(child, dict):
                child = {}
                node[part] = child
            node = child
        node[parts[-1]] = value
    return result


def parse_webhook_body(body: bytes, content_type: Optional[str] = None) -> Optional[dict]:
    """
    Decode a raw webhook body into a dict.

    Returns None for an empty or unparseable body.
    """
    if not body or not body.strip():
        return None

    try:
        text = body.decode("utf-8")
    except UnicodeDecodeError:
        logger.warning("Iugu webhook body is not valid UTF-8")
        return None

    stripped = text.lstrip()
    if "json" in (content_type or "") or stripped.startswith("{"):
        try:
            payload = json.loads(text)
        except ValueError:
            logger.warning("Iugu webhook body is not valid JSON: %.200s", text)
            return None
        return payload if isinstance(payload, dict) else None

    pairs = parse_qsl(text, keep_blank_values=True) if "=" in text else []
    if not pairs:
        logger.warning("Iugu webhook body has no form fields: %.200s", text)
        return None
    return _expand_form_fields(pairs)


def decode_webhook_event(payload: dict) -> IuguWebhookEvent:
    """Extract the fields we act on. JSON payloads may nest the invoice under data.object."""
    data = payload.get("data") or {}
    if not isinstance(data, dict):
        data = {}
    if isinstance(data.get("object"), dict):
        data = data["object"]

    def _str(value):
        return str(value) if value not in (None, "") else None

    return IuguWebhookEvent(
        event_type=str(payload.get("event") or ""),
        token=_str(payload.get("token")),
        invoice_id=_str(data.get("id")),
        status=_str(data.get("status")),
        subscription_id=_str(data.get("subscription_id")),
        raw_payload=payload,
    )


# ---------------------------------------------------------------------------
# Iugu REST API client
# ---------------------------------------------------------------------------

def _request(method: str, path: str, payload: Optional[dict] = None, params: Optional[dict] = None) -> dict:
    url = f"{settings.iugu_api_base}{path}"
    try:
        resp = requests.request(
            method,
            url,
            json=payload,
            params=params,
            auth=(settings.iugu_api_key, ""),
            headers={"Accept": "application/json"},
            timeout=settings.iugu_timeout,
        )
    except requests.RequestException as e:
        logger.error("Iugu %s %s failed: %s", method, path, e)
        raise IuguError(f"Falha de comunicação com o gateway: {e}") from e

    try:
        body = resp.json() if resp.content else {}
    except ValueError:
        body = {"raw": resp.text[:500]}

    if resp.status_code >= 400:
        logger.error("Iugu %s %s returned %s: %s", method, path, resp.status_code, body)
        raise IuguError(f"Gateway respondeu HTTP {resp.status_code}", resp.status_code, body)

    if not isinstance(body, dict):
        raise IuguError("Resposta inesperada do gateway", resp.status_code, body)

    return body


def find_customer_by_email(email: str) -> Optional[dict]:
    body = _request("GET", "/customers", params={"query": email, "limit": 10})
    for item in body.get("items", []):
        if (item.get("email") or "").lower() == email.lower():
            return item
    return None


def create_customer(email: str, name: str, cpf: str, phone_prefix: str, phone: str) -> dict:
    customer = _request("POST", "/customers", {
        "email": email,
        "name": name,
        "cpf_cnpj": cpf,
        "phone_prefix": phone_prefix,
        "phone": phone,
    })
    if not customer.get("id"):
        raise IuguError("Gateway não retornou o id do cliente", payload=customer)
    return customer


def get_or_create_customer(email: str, name: str, cpf: str, phone_prefix: str, phone: str) -> dict:
    """Reuse the Iugu customer registered under this email, creating it when absent"""
    existing = find_customer_by_email(email)
    if existing and existing.get("id"):
        logger.info("Reusing Iugu customer %s for %s", existing["id"], email)
        return existing
    customer = create_customer(email, name, cpf, phone_prefix, phone)
    logger.info("Created Iugu customer %s for %s", customer["id"], email)
    return customer


def create_payment_method(customer_id: str, card_token: str, description: str = "Cartão de crédito") -> dict:
    """Turn a one-time card token into a durable payment method on the customer"""
    method = _request("POST", f"/customers/{customer_id}/payment_methods", {
        "description": description,
        "token": card_token,
        "set_as_default": True,
    })
    if not method.get("id"):
        raise IuguError("Gateway não retornou o id do meio de pagamento", payload=method)
    return method


def create_subscription(
    plan_identifier: str,
    customer_id: str,
    payable_with: str,
    payment_method_id: Optional[str] = None,
) -> dict:
    payload = {
        "plan_identifier": plan_identifier,
        "customer_id": customer_id,
        "payable_with": payable_with,
        # keep the subscription even when the first charge fails
        "only_on_charge_success": False,
    }
    if payment_method_id:
        payload["customer_payment_method_id"] = payment_method_id

    subscription = _request("POST", "/subscriptions", payload)
    if not subscription.get("id"):
        raise IuguError("Gateway não retornou o id da assinatura", payload=subscription)
    return subscription


def get_subscription(subscription_id: str) -> dict:
    return _request("GET", f"/subscriptions/{subscription_id}")


def get_invoice(invoice_id: str) -> dict:
    return _request("GET", f"/invoices/{invoice_id}")


def charge_invoice(invoice_id: str, payment_method_id: str) -> dict:
    return _request("POST", "/charge", {
        "invoice_id": invoice_id,
        "customer_payment_method_id": payment_method_id,
    })


def list_plans(limit: int = 100) -> list[dict]:
    body = _request("GET", "/plans", params={"limit": limit})
    return body.get("items", [])


def latest_invoice(subscription: dict) -> Optional[dict]:
    """Most recent invoice embedded in a subscription resource"""
    invoices = subscription.get("recent_invoices") or []
    return invoices[0] if invoices else None


def plan_price_cents(plan: dict) -> Optional[int]:
    prices = plan.get("prices") or []
    if not prices:
        return None
    value = prices[0].get("value_cents")
    return int(value) if value is not None else None
