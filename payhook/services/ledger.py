from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import sqlalchemy as sa
from flask import current_app
from sqlalchemy import exc as sa_exc

from payhook.extensions import db
from payhook.models import (
    PaymentEvent,
    STATUS_RECORDED,
    STATUS_PROCESSED,
    STATUS_PROCESSED_WITH_ERROR,
)
from .errors import PersistenceUnavailable
from .events import WebhookEvent

ERROR_MESSAGE_MAX = 1000


@dataclass(frozen=True)
class RecordResult:
    inserted: bool
    already_processed: bool
    reclaimed: bool = False


def _utcnow():
    return datetime.now(timezone.utc)


def _reclaim(event_id: str) -> bool:
    """
    Take over a "recorded" row whose worker never marked an outcome.
    Compare-and-set on status + claim age, so at most one redelivery wins.
    """
    ttl = int(current_app.config.get("WEBHOOK_CLAIM_TTL_SECONDS", 300))
    now = _utcnow()
    stmt = (
        sa.update(PaymentEvent)
        .where(
            PaymentEvent.event_id == event_id,
            PaymentEvent.status == STATUS_RECORDED,
            PaymentEvent.claimed_at < now - timedelta(seconds=ttl),
        )
        .values(claimed_at=now, attempts=PaymentEvent.attempts + 1)
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    db.session.commit()
    return result.rowcount == 1


def record_if_new(event: WebhookEvent) -> RecordResult:
    """
    Insert-or-detect-duplicate keyed on the unique event_id.

    Exactly one concurrent caller sees inserted=True. Others see
    already_processed=True once the owner marked an outcome, or
    (False, False) while it is still in flight and should be skipped.

    Raises PersistenceUnavailable when the database cannot be reached.
    """
    row = PaymentEvent(
        event_id=event.event_id,
        event_type=event.event_type,
        order_id=event.order_id,
        payment_id=event.payment_id,
        payload=event.payload,
        status=STATUS_RECORDED,
        claimed_at=_utcnow(),
    )
    try:
        db.session.add(row)
        try:
            db.session.commit()
            return RecordResult(inserted=True, already_processed=False)
        except sa_exc.IntegrityError:
            db.session.rollback()

        existing = db.session.query(PaymentEvent).filter_by(event_id=event.event_id).one()
        if existing.is_processed:
            return RecordResult(inserted=False, already_processed=True)
        if _reclaim(event.event_id):
            current_app.logger.warning(json.dumps({
                "event": "payment_webhook.reclaimed",
                "event_id": event.event_id,
            }))
            return RecordResult(inserted=True, already_processed=False, reclaimed=True)
        return RecordResult(inserted=False, already_processed=False)
    except (sa_exc.OperationalError, sa_exc.TimeoutError) as e:
        db.session.rollback()
        raise PersistenceUnavailable(str(e)) from e


def mark_outcome(event_id: str, success: bool, error_message: Optional[str] = None) -> bool:
    """
    Close out a recorded event. Failure here leaves the row "recorded" for a
    later redelivery to reclaim; it is logged and never raised.
    """
    values = {
        "status": STATUS_PROCESSED if success else STATUS_PROCESSED_WITH_ERROR,
        "error_message": None if success else (error_message or "unknown error")[:ERROR_MESSAGE_MAX],
        "processed_at": _utcnow(),
    }
    try:
        db.session.execute(
            sa.update(PaymentEvent)
            .where(PaymentEvent.event_id == event_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        db.session.commit()
        return True
    except sa_exc.SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("payment_webhook.mark_outcome_failed event_id=%s", event_id)
        return False
