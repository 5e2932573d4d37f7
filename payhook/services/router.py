from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Optional

from flask import current_app
from sqlalchemy import exc as sa_exc

from payhook.extensions import db
from . import subscriptions
from .errors import (
    WebhookError,
    SubscriptionNotFound,
    KIND_PERSISTENCE,
    KIND_UNEXPECTED,
)
from .events import (
    WebhookEvent,
    PAYMENT_CAPTURED,
    ORDER_PAID,
    PAYMENT_FAILED,
    payment_succeeded,
    payment_failed,
)

SUCCESS_EVENTS = frozenset({PAYMENT_CAPTURED, ORDER_PAID})
FAILURE_EVENTS = frozenset({PAYMENT_FAILED})

ACTION_ACTIVATED = "activated"
ACTION_ALREADY_ACTIVE = "already_active"
ACTION_FAILED = "payment_failed"
ACTION_STALE_FAILURE_IGNORED = "stale_failure_ignored"
ACTION_NOT_FOUND = "subscription_not_found"
ACTION_IGNORED = "ignored"
ACTION_ERROR = "error"


@dataclass(frozen=True)
class Outcome:
    processed: bool
    action: str
    error_kind: Optional[str] = None
    error_message: Optional[str] = None


def handle_payment_success(event: WebhookEvent) -> Outcome:
    data = payment_succeeded(event)
    current_app.logger.info(json.dumps({
        "event": "payment_success", "event_id": event.label, "order_id": data.order_id,
    }))

    sub = subscriptions.lookup(data.order_id)
    if sub is None:
        current_app.logger.error(json.dumps({
            "event": "subscription_not_found", "message": "subscription not found", "order_id": data.order_id,
        }))
        raise SubscriptionNotFound(data.order_id)

    if subscriptions.activate(sub, data.payment_id):
        return Outcome(processed=True, action=ACTION_ACTIVATED)
    return Outcome(processed=True, action=ACTION_ALREADY_ACTIVE)


def handle_payment_failure(event: WebhookEvent) -> Outcome:
    data = payment_failed(event)
    current_app.logger.info(json.dumps({
        "event": "payment_failure", "event_id": event.label, "order_id": data.order_id,
    }))

    sub = subscriptions.lookup(data.order_id)
    if sub is None:
        # A failure for an order we never issued carries no obligation
        current_app.logger.warning(json.dumps({
            "event": "subscription_not_found", "message": "subscription not found", "order_id": data.order_id,
        }))
        return Outcome(processed=True, action=ACTION_NOT_FOUND)

    if subscriptions.fail(sub, data.payment_id):
        return Outcome(processed=True, action=ACTION_FAILED)
    return Outcome(processed=True, action=ACTION_STALE_FAILURE_IGNORED)


def dispatch(event: WebhookEvent) -> Outcome:
    """
    Run the handler for `event.event_type`. Handler errors come back as an
    Outcome with processed=False; they are never raised to the caller.
    """
    try:
        if event.event_type in SUCCESS_EVENTS:
            return handle_payment_success(event)
        if event.event_type in FAILURE_EVENTS:
            return handle_payment_failure(event)
    except WebhookError as e:
        db.session.rollback()
        return Outcome(processed=False, action=ACTION_ERROR, error_kind=e.kind, error_message=str(e))
    except sa_exc.SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.exception("payment_webhook.handler_persistence_error event_id=%s", event.label)
        return Outcome(processed=False, action=ACTION_ERROR, error_kind=KIND_PERSISTENCE, error_message=str(e))
    except Exception as e:
        db.session.rollback()
        current_app.logger.exception("payment_webhook.handler_error event_id=%s", event.label)
        return Outcome(processed=False, action=ACTION_ERROR, error_kind=KIND_UNEXPECTED, error_message=f"{type(e).__name__}: {e}")

    # Unknown types are acknowledged as processed so the ledger never retries them
    current_app.logger.info(json.dumps({
        "event": "unhandled_event_type", "event_id": event.label, "event_type": event.event_type,
    }))
    return Outcome(processed=True, action=ACTION_IGNORED)
