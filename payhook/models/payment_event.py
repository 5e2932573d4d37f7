from sqlalchemy import func, text
from payhook.extensions import db

STATUS_RECORDED = "recorded"
STATUS_PROCESSED = "processed"
STATUS_PROCESSED_WITH_ERROR = "processed_with_error"

# Column widths; parsing keeps provider values inside them
EVENT_ID_MAX = 255
EVENT_TYPE_MAX = 80
REFERENCE_ID_MAX = 64


class PaymentEvent(db.Model):
    """One row per distinct provider event ID; the unique index is the idempotency guard."""

    __tablename__ = "payment_events"

    id = db.Column(db.Integer, primary_key=True)
    event_id = db.Column(db.String(EVENT_ID_MAX), nullable=False, unique=True, index=True)
    event_type = db.Column(db.String(EVENT_TYPE_MAX), nullable=False, index=True)
    order_id = db.Column(db.String(REFERENCE_ID_MAX), nullable=True, index=True)
    payment_id = db.Column(db.String(REFERENCE_ID_MAX), nullable=True)
    payload = db.Column(db.JSON, nullable=False, default=dict)

    status = db.Column(db.String(32), nullable=False, index=True, server_default=text("'recorded'"))
    error_message = db.Column(db.Text, nullable=True)
    attempts = db.Column(db.Integer, nullable=False, server_default=text("1"))

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=func.now())
    claimed_at = db.Column(db.DateTime(timezone=True), nullable=False)
    processed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    @property
    def is_processed(self) -> bool:
        return self.status in (STATUS_PROCESSED, STATUS_PROCESSED_WITH_ERROR)

    def __repr__(self) -> str:
        return f"<PaymentEvent id={self.id} event_id={self.event_id!r} type={self.event_type!r} status={self.status!r}>"
