import json
import logging

from sqlalchemy import exc as sa_exc

from payhook.extensions import db
from payhook.models import PaymentEvent, Subscription, Purchase
from payhook.services.signatures import compute_signature

CAPTURED = {
    "event": "payment.captured",
    "payload": {"payment": {"entity": {"id": "pay_1", "order_id": "order_1"}}},
}
FAILED_UNKNOWN_ORDER = {
    "event": "payment.failed",
    "payload": {"payment": {"entity": {"order_id": "order_2"}}},
}


def _events():
    return PaymentEvent.query.order_by(PaymentEvent.id).all()


# ----- Scenarios -----
def test_scenario_a_capture_activates_subscription(app, deliver, make_subscription):
    make_subscription(order_id="order_1")

    resp = deliver(CAPTURED, event_id="evt_a")
    assert resp.status_code == 200
    body = resp.get_json()
    assert body["ok"] is True
    assert body["processed"] is True
    assert body["duration"].endswith("ms")

    with app.app_context():
        sub = Subscription.query.filter_by(order_id="order_1").one()
        assert sub.payment_status == "completed"
        assert sub.status == "active"
        assert sub.payment_id == "pay_1"
        assert Purchase.query.filter_by(order_id="order_1").one().status == "paid"
        (ev,) = _events()
        assert (ev.event_id, ev.status) == ("evt_a", "processed")


def test_scenario_b_redelivery_is_already_processed(app, deliver, make_subscription):
    make_subscription(order_id="order_1")
    assert deliver(CAPTURED, event_id="evt_a").status_code == 200

    with app.app_context():
        before = Subscription.query.filter_by(order_id="order_1").one()
        snapshot = (before.payment_status, before.status, before.payment_id, before.updated_at)

    resp = deliver(CAPTURED, event_id="evt_a")
    assert resp.status_code == 200
    assert resp.get_json() == {"ok": True, "message": "Already processed"}

    with app.app_context():
        after = Subscription.query.filter_by(order_id="order_1").one()
        assert (after.payment_status, after.status, after.payment_id, after.updated_at) == snapshot
        assert len(_events()) == 1


def test_redelivery_without_provider_id_is_deduplicated_by_body(app, deliver, make_subscription):
    make_subscription(order_id="order_1")
    raw = json.dumps(CAPTURED).encode("utf-8")

    assert deliver(raw).get_json()["processed"] is True
    assert deliver(raw).get_json() == {"ok": True, "message": "Already processed"}
    with app.app_context():
        (ev,) = _events()
        assert ev.event_id.startswith("sha256:")


def test_scenario_c_failure_for_unknown_order_is_acknowledged(app, deliver, caplog):
    with caplog.at_level(logging.WARNING):
        resp = deliver(FAILED_UNKNOWN_ORDER, event_id="evt_c")

    assert resp.status_code == 200
    body = resp.get_json()
    assert body["ok"] is True
    assert body["processed"] is True
    assert "error" not in body
    assert "subscription not found" in caplog.text

    with app.app_context():
        (ev,) = _events()
        assert ev.status == "processed"
        assert ev.error_message is None


# ----- Transport / auth rejections -----
def test_invalid_signature_is_401_and_records_nothing(app, deliver):
    resp = deliver(CAPTURED, event_id="evt_bad", signature="0" * 64)
    assert resp.status_code == 401
    assert resp.get_json() == {"error": "Invalid signature"}
    with app.app_context():
        assert PaymentEvent.query.count() == 0


def test_signature_over_different_bytes_is_401(app, client):
    signed = json.dumps(CAPTURED).encode("utf-8")
    sent = json.dumps(CAPTURED, indent=2).encode("utf-8")
    resp = client.post(
        "/webhooks/payment-events",
        data=sent,
        headers={"X-Razorpay-Signature": compute_signature(signed, app.config["RAZORPAY_WEBHOOK_SECRET"])},
    )
    assert resp.status_code == 401


def test_non_ascii_signature_is_401(app, deliver):
    resp = deliver(CAPTURED, event_id="evt_latin", signature="café")
    assert resp.status_code == 401
    assert resp.get_json() == {"error": "Invalid signature"}
    with app.app_context():
        assert PaymentEvent.query.count() == 0


def test_missing_signature_is_400(app, client):
    resp = client.post("/webhooks/payment-events", data=json.dumps(CAPTURED))
    assert resp.status_code == 400
    assert resp.get_json() == {"error": "Missing signature"}
    with app.app_context():
        assert PaymentEvent.query.count() == 0


def test_missing_secret_is_503_for_every_delivery(app, deliver, monkeypatch):
    monkeypatch.setitem(app.config, "RAZORPAY_WEBHOOK_SECRET", None)

    resp = deliver(CAPTURED, event_id="evt_1", signature="anything")
    assert resp.status_code == 503
    assert resp.get_json() == {"error": "Webhook not configured"}
    with app.app_context():
        assert PaymentEvent.query.count() == 0


def test_database_unavailable_is_503(app, deliver, monkeypatch):
    def _boom():
        raise sa_exc.OperationalError("INSERT", {}, Exception("could not connect"))

    with app.app_context():
        monkeypatch.setattr(db.session, "commit", _boom)
        resp = deliver(CAPTURED, event_id="evt_1")
    assert resp.status_code == 503
    assert resp.get_json() == {"error": "Database unavailable"}


def test_unparsable_body_is_500(deliver):
    resp = deliver(b"{not json", event_id="evt_1")
    assert resp.status_code == 500
    assert resp.get_json() == {"error": "Webhook processing failed"}


# ----- Routing outcomes -----
def test_unknown_event_type_is_processed_noop(app, deliver):
    resp = deliver({"event": "refund.created", "payload": {}}, event_id="evt_r")
    assert resp.status_code == 200
    assert resp.get_json()["processed"] is True
    with app.app_context():
        (ev,) = _events()
        assert ev.status == "processed"
        assert ev.event_type == "refund.created"


def test_success_for_unknown_subscription_is_acknowledged_with_error(app, deliver):
    resp = deliver(CAPTURED, event_id="evt_missing")
    assert resp.status_code == 200
    assert resp.get_json()["ok"] is True
    assert resp.get_json()["processed"] is False

    with app.app_context():
        (ev,) = _events()
        assert ev.status == "processed_with_error"
        assert ev.error_message == "Subscription not found"

    # The error is final for this event ID: no redelivery storm
    assert deliver(CAPTURED, event_id="evt_missing").get_json()["message"] == "Already processed"


def test_malformed_event_is_recorded_and_acknowledged(app, deliver):
    resp = deliver({"event": "payment.failed", "payload": {"payment": {"entity": {"id": "pay_7"}}}}, event_id="evt_m")
    assert resp.status_code == 200
    assert resp.get_json()["processed"] is False
    with app.app_context():
        (ev,) = _events()
        assert ev.status == "processed_with_error"
        assert "Missing order ID" in ev.error_message


def test_overlong_identifiers_are_recorded_and_acknowledged(app, deliver):
    long_id = "evt_" + "z" * 300
    body = {"event": "payment.captured", "payload": {"payment": {"entity": {"id": "pay_1", "order_id": "o" * 100}}}}
    resp = deliver(body, event_id=long_id)
    assert resp.status_code == 200
    assert resp.get_json()["processed"] is False
    with app.app_context():
        (ev,) = _events()
        assert len(ev.event_id) <= 255
        assert ev.order_id is None
        assert ev.status == "processed_with_error"
        assert "Order ID exceeds" in ev.error_message

    assert deliver(body, event_id=long_id).get_json()["message"] == "Already processed"


def test_order_paid_activates_via_order_entity(app, deliver, make_subscription):
    make_subscription(order_id="order_5")
    resp = deliver({"event": "order.paid", "payload": {"order": {"entity": {"id": "order_5"}}}}, event_id="evt_o")
    assert resp.get_json()["processed"] is True
    with app.app_context():
        assert Subscription.query.filter_by(order_id="order_5").one().payment_status == "completed"


def test_second_success_event_for_completed_subscription_is_noop(app, deliver, make_subscription):
    make_subscription(order_id="order_1")
    deliver(CAPTURED, event_id="evt_captured")
    resp = deliver({"event": "order.paid", "payload": {"order": {"entity": {"id": "order_1"}}}}, event_id="evt_order_paid")
    assert resp.get_json()["processed"] is True
    with app.app_context():
        sub = Subscription.query.filter_by(order_id="order_1").one()
        assert sub.payment_status == "completed"
        assert sub.payment_id == "pay_1"


def test_failure_after_completion_keeps_completed(app, deliver, make_subscription):
    make_subscription(order_id="order_1")
    deliver(CAPTURED, event_id="evt_ok")
    stale = {"event": "payment.failed", "payload": {"payment": {"entity": {"id": "pay_0", "order_id": "order_1"}}}}
    resp = deliver(stale, event_id="evt_stale_failure")
    assert resp.status_code == 200

    with app.app_context():
        sub = Subscription.query.filter_by(order_id="order_1").one()
        assert sub.payment_status == "completed"
        assert sub.status == "active"


def test_failure_after_completion_reports_ignored_action(app, make_subscription):
    from payhook.services import router
    from payhook.services.events import parse_event

    make_subscription(order_id="order_1", payment_status="completed", status="active")
    stale = {"event": "payment.failed", "payload": {"payment": {"entity": {"id": "pay_0", "order_id": "order_1"}}}}
    with app.app_context():
        outcome = router.dispatch(parse_event(json.dumps(stale).encode("utf-8"), "evt_stale"))
    assert outcome.processed is True
    assert outcome.action == router.ACTION_STALE_FAILURE_IGNORED


def test_failure_cancels_pending_subscription(app, deliver, make_subscription):
    make_subscription(order_id="order_2")
    resp = deliver(FAILED_UNKNOWN_ORDER, event_id="evt_f")
    assert resp.get_json()["processed"] is True
    with app.app_context():
        sub = Subscription.query.filter_by(order_id="order_2").one()
        assert (sub.payment_status, sub.status) == ("failed", "cancelled")
        assert Purchase.query.filter_by(order_id="order_2").one().status == "failed"


def test_in_flight_duplicate_is_skipped(app, deliver, make_subscription):
    make_subscription(order_id="order_1")
    with app.app_context():
        from payhook.services import ledger
        from payhook.services.events import parse_event
        ledger.record_if_new(parse_event(json.dumps(CAPTURED).encode("utf-8"), "evt_busy"))

    resp = deliver(CAPTURED, event_id="evt_busy")
    assert resp.get_json() == {"ok": True, "message": "Already processing"}
    with app.app_context():
        assert Subscription.query.filter_by(order_id="order_1").one().payment_status == "pending"


def test_handler_crash_is_acknowledged_and_recorded(app, deliver, make_subscription, monkeypatch):
    make_subscription(order_id="order_1")

    def _explode(subscription, payment_id):
        raise RuntimeError("kaboom")
    monkeypatch.setattr("payhook.services.subscriptions.activate", _explode)

    resp = deliver(CAPTURED, event_id="evt_crash")
    assert resp.status_code == 200
    assert resp.get_json()["processed"] is False
    with app.app_context():
        (ev,) = _events()
        assert ev.status == "processed_with_error"
        assert "RuntimeError: kaboom" in ev.error_message


def test_mark_outcome_failure_still_acknowledges(app, deliver, make_subscription, monkeypatch):
    make_subscription(order_id="order_1")
    monkeypatch.setattr("payhook.services.ledger.mark_outcome", lambda *a, **kw: False)

    resp = deliver(CAPTURED, event_id="evt_unmarked")
    assert resp.status_code == 200
    assert resp.get_json()["processed"] is True
    with app.app_context():
        (ev,) = _events()
        assert ev.status == "recorded"


def test_healthz(client):
    resp = client.get("/healthz")
    assert resp.status_code == 200
    assert resp.get_json() == {"status": "ok"}


def test_unknown_route_is_json_404(client):
    resp = client.get("/webhooks/nope")
    assert resp.status_code == 404
    assert resp.get_json()["error"] == "not_found"
