"""
Subscription payment lifecycle.

    pending ──success──▶ completed   (absorbing)
    pending ──failure──▶ failed ──success──▶ completed

Both transitions are conditional UPDATEs on payment_status, so duplicate or
concurrent deliveries cannot run the activation side effect twice and a stale
failure cannot downgrade a completed subscription.
"""
from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Optional

import sqlalchemy as sa
from flask import current_app
from sqlalchemy import exc as sa_exc

from payhook.extensions import db
from payhook.models import (
    Subscription,
    Purchase,
    PAYMENT_COMPLETED,
    PAYMENT_FAILED,
    STATUS_ACTIVE,
    STATUS_CANCELLED,
    PURCHASE_PAID,
    PURCHASE_FAILED,
)
from .errors import KIND_AUX_WRITE_FAILED


def _utcnow():
    return datetime.now(timezone.utc)


def _log(level: str, event: str, **fields):
    getattr(current_app.logger, level)(json.dumps({"event": event, **fields}))


def lookup(order_id: str) -> Optional[Subscription]:
    return db.session.query(Subscription).filter_by(order_id=order_id).one_or_none()


def _transition(subscription_id: int, **values) -> bool:
    """Apply `values` unless the subscription already reached completed."""
    result = db.session.execute(
        sa.update(Subscription)
        .where(
            Subscription.id == subscription_id,
            Subscription.payment_status != PAYMENT_COMPLETED,
        )
        .values(updated_at=_utcnow(), **values)
        .execution_options(synchronize_session=False)
    )
    db.session.commit()
    return result.rowcount == 1


def activate(subscription: Subscription, payment_id: Optional[str]) -> bool:
    """
    Move a subscription to completed/active.
    Returns False, with no write, when it was already completed.
    """
    if subscription.payment_status == PAYMENT_COMPLETED:
        _log("info", "subscription_already_active", subscription_id=subscription.id)
        return False

    sub_id, order_id = subscription.id, subscription.order_id
    values = {
        "payment_status": PAYMENT_COMPLETED,
        "status": STATUS_ACTIVE,
        "activated_at": _utcnow(),
    }
    if payment_id:
        values["payment_id"] = payment_id

    if not _transition(sub_id, **values):
        # Lost the race to a concurrent delivery of the same payment
        _log("info", "subscription_already_active", subscription_id=sub_id)
        return False

    mirror_purchase(order_id, PURCHASE_PAID, payment_id=payment_id)
    _log("info", "subscription_activated", subscription_id=sub_id, order_id=order_id)
    return True


def fail(subscription: Subscription, payment_id: Optional[str] = None) -> bool:
    """
    Record a failed payment: payment_status=failed, status=cancelled.
    A completed subscription is left untouched and False is returned.
    """
    sub_id, order_id = subscription.id, subscription.order_id
    if not _transition(sub_id, payment_status=PAYMENT_FAILED, status=STATUS_CANCELLED):
        _log("warning", "stale_payment_failure_ignored", subscription_id=sub_id, order_id=order_id)
        return False

    mirror_purchase(order_id, PURCHASE_FAILED, payment_id=payment_id)
    _log("info", "subscription_payment_failed", subscription_id=sub_id, order_id=order_id)
    return True


def mirror_purchase(order_id: str, status: str, payment_id: Optional[str] = None) -> bool:
    """Best-effort copy of the outcome onto the Purchase row; never raises."""
    values = {"status": status, "updated_at": _utcnow()}
    if payment_id:
        values["payment_id"] = payment_id
    try:
        db.session.execute(
            sa.update(Purchase)
            .where(Purchase.order_id == order_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        db.session.commit()
        return True
    except sa_exc.SQLAlchemyError as e:
        db.session.rollback()
        _log("error", "purchase_update_failed", kind=KIND_AUX_WRITE_FAILED, order_id=order_id, error=str(e))
        return False
