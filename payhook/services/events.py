import hashlib
import json
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from payhook.models import EVENT_ID_MAX, EVENT_TYPE_MAX, REFERENCE_ID_MAX
from .errors import MalformedEvent

EVENT_ID_HEADER = "X-Razorpay-Event-Id"
UNKNOWN = "unknown"

PAYMENT_CAPTURED = "payment.captured"
ORDER_PAID = "order.paid"
PAYMENT_FAILED = "payment.failed"


@dataclass(frozen=True)
class WebhookEvent:
    event_id: str
    event_type: str
    order_id: Optional[str] = None
    payment_id: Optional[str] = None
    payload: Dict[str, Any] = field(default_factory=dict)
    # False when the provider sent no ID and event_id is the body digest
    has_provider_id: bool = True

    @property
    def label(self) -> str:
        """Event ID for logs; provider-less deliveries log as "unknown"."""
        return self.event_id if self.has_provider_id else UNKNOWN


@dataclass(frozen=True)
class PaymentSucceeded:
    order_id: str
    payment_id: Optional[str]


@dataclass(frozen=True)
class PaymentFailed:
    order_id: str
    payment_id: Optional[str]


def _entity(payload: Dict[str, Any], name: str) -> Optional[Dict[str, Any]]:
    """payload[name]["entity"] when both levels are objects, else None."""
    wrapper = payload.get(name)
    if not isinstance(wrapper, dict):
        return None
    entity = wrapper.get("entity")
    return entity if isinstance(entity, dict) else None


def _str_or_none(value: Any) -> Optional[str]:
    if isinstance(value, (str, int)) and not isinstance(value, bool):
        value = str(value).strip()
        return value or None
    return None


def synthetic_event_id(raw_body: bytes) -> str:
    return "sha256:" + hashlib.sha256(raw_body).hexdigest()


def _ledger_event_id(provider_id: str) -> str:
    # Overlong provider IDs are keyed by digest so redeliveries still collide
    if len(provider_id) <= EVENT_ID_MAX:
        return provider_id
    return synthetic_event_id(provider_id.encode("utf-8"))


def _reference(value: Optional[str]) -> Optional[str]:
    """Order/payment ID for the ledger row; dropped when it cannot fit."""
    if value is None or len(value) > REFERENCE_ID_MAX:
        return None
    return value


def _checked_reference(value: Optional[str], what: str) -> Optional[str]:
    if value is not None and len(value) > REFERENCE_ID_MAX:
        raise MalformedEvent(f"{what} exceeds {REFERENCE_ID_MAX} characters")
    return value


def parse_event(raw_body: bytes, event_id_header: Optional[str] = None) -> WebhookEvent:
    """
    Parse one authenticated delivery.
    Raises ValueError when the body is not a JSON object.
    """
    doc = json.loads(raw_body.decode("utf-8"))
    if not isinstance(doc, dict):
        raise ValueError("webhook body must be a JSON object")

    payload = doc.get("payload")
    if not isinstance(payload, dict):
        payload = {}

    order = _entity(payload, "order") or {}
    payment = _entity(payload, "payment") or {}

    provider_id = _str_or_none(event_id_header) or _str_or_none(doc.get("id"))
    return WebhookEvent(
        event_id=_ledger_event_id(provider_id) if provider_id else synthetic_event_id(raw_body),
        event_type=(_str_or_none(doc.get("event")) or UNKNOWN)[:EVENT_TYPE_MAX],
        order_id=_reference(_str_or_none(order.get("id")) or _str_or_none(payment.get("order_id"))),
        payment_id=_reference(_str_or_none(payment.get("id"))),
        payload=payload,
        has_provider_id=provider_id is not None,
    )


def payment_succeeded(event: WebhookEvent) -> PaymentSucceeded:
    payment = _entity(event.payload, "payment")
    order = _entity(event.payload, "order")
    if payment is None and order is None:
        raise MalformedEvent("Missing payment or order data in event")

    order_id = _str_or_none((payment or {}).get("order_id")) or _str_or_none((order or {}).get("id"))
    if not order_id:
        raise MalformedEvent("Missing order ID in payment event")
    return PaymentSucceeded(
        order_id=_checked_reference(order_id, "Order ID"),
        payment_id=_checked_reference(_str_or_none((payment or {}).get("id")), "Payment ID"),
    )


def payment_failed(event: WebhookEvent) -> PaymentFailed:
    payment = _entity(event.payload, "payment") or {}
    order_id = _str_or_none(payment.get("order_id"))
    if not order_id:
        raise MalformedEvent("Missing order ID in payment failure event")
    return PaymentFailed(
        order_id=_checked_reference(order_id, "Order ID"),
        payment_id=_checked_reference(_str_or_none(payment.get("id")), "Payment ID"),
    )
