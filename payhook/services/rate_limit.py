from flask import current_app, request

UNKNOWN_SOURCE = "unknown"


def forwarded_for() -> str:
    """
    Rate-limit bucket for one delivery: the client address the proxy forwarded.
    Deliveries without the header share a single "unknown" bucket.
    """
    header = request.headers.get("X-Forwarded-For", "")
    first = header.split(",")[0].strip()
    return first or UNKNOWN_SOURCE


def delivery_rate_limit() -> str:
    return current_app.config.get("WEBHOOK_RATE_LIMIT", "100 per minute")
