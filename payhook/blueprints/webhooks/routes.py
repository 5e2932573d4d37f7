import time

from flask import request, current_app

from payhook.extensions import limiter
from payhook.services import ledger, router
from payhook.services.errors import PersistenceUnavailable
from payhook.services.events import EVENT_ID_HEADER, UNKNOWN, parse_event
from payhook.services.rate_limit import delivery_rate_limit, forwarded_for
from payhook.services.signatures import SIGNATURE_HEADER, verify_signature
from . import bp
from . import outcomes


# ----- Razorpay Webhook (payment events) -----
@bp.post("/payment-events")
@limiter.limit(delivery_rate_limit, key_func=forwarded_for)
def payment_events():
    """
    Razorpay → /webhooks/payment-events
    Verifies signature, records the event once, drives the subscription
    state machine, and always acknowledges authenticated events.
    """
    started = time.monotonic()
    event_id = UNKNOWN
    try:
        # 1) Configuration: never accept deliveries we cannot authenticate
        secret = current_app.config.get("RAZORPAY_WEBHOOK_SECRET")
        if not secret:
            return outcomes.rejected(503, "Webhook not configured")

        # 2) Verify signature over the exact bytes received
        raw_bytes = request.get_data(cache=False, as_text=False)
        signature = request.headers.get(SIGNATURE_HEADER)
        if not signature:
            return outcomes.rejected(400, "Missing signature", source=forwarded_for())
        if not verify_signature(raw_bytes, signature, secret):
            return outcomes.rejected(401, "Invalid signature", source=forwarded_for())

        event = parse_event(raw_bytes, request.headers.get(EVENT_ID_HEADER))
        event_id = event.label

        # 3) Idempotency guard
        try:
            result = ledger.record_if_new(event)
        except PersistenceUnavailable:
            return outcomes.rejected(503, "Database unavailable", event_id=event_id)
        if not result.inserted:
            return outcomes.duplicate(event, result)

        # 4) Route, then close out the ledger row (best-effort)
        outcome = router.dispatch(event)
        ledger.mark_outcome(event.event_id, outcome.processed, outcome.error_message)
        return outcomes.acknowledged(event, outcome, started)
    except Exception:
        return outcomes.failed(event_id, started)
