"""
HTTP responses and structured log lines for one delivery attempt.
Each helper logs exactly one JSON object and returns a (response, status) pair.
"""
import json
import time

from flask import current_app, jsonify


def _log(level: str, event: str, **fields):
    getattr(current_app.logger, level)(json.dumps({"event": event, **fields}))


def elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


def rejected(status: int, error: str, **fields):
    """Transport/auth rejection: nothing was recorded."""
    level = "error" if status >= 500 else "warning"
    _log(level, "payment_webhook.rejected", status=status, error=error, **fields)
    return jsonify({"error": error}), status


def duplicate(event, result):
    message = "Already processed" if result.already_processed else "Already processing"
    _log("info", "payment_webhook.duplicate", event_id=event.label, event_type=event.event_type, message=message)
    return jsonify({"ok": True, "message": message}), 200


def acknowledged(event, outcome, started: float):
    duration = elapsed_ms(started)
    fields = {
        "event_id": event.label,
        "event_type": event.event_type,
        "order_id": event.order_id,
        "processed": outcome.processed,
        "action": outcome.action,
        "duration_ms": duration,
    }
    if outcome.error_kind:
        # Acknowledged anyway; the error stays on the ledger row for triage
        _log("error", "payment_webhook.handler_error",
             error_kind=outcome.error_kind, error=outcome.error_message, **fields)
    else:
        _log("info", "payment_webhook.processed", **fields)
    return jsonify({"ok": True, "processed": outcome.processed, "duration": f"{duration}ms"}), 200


def failed(event_id: str, started: float):
    current_app.logger.exception(json.dumps({
        "event": "payment_webhook.unexpected_error",
        "event_id": event_id,
        "duration_ms": elapsed_ms(started),
    }))
    return jsonify({"error": "Webhook processing failed"}), 500
