from sqlalchemy import func, text
from payhook.extensions import db

PAYMENT_PENDING = "pending"
PAYMENT_COMPLETED = "completed"
PAYMENT_FAILED = "failed"

STATUS_PENDING = "pending"
STATUS_ACTIVE = "active"
STATUS_CANCELLED = "cancelled"


class Subscription(db.Model):
    __tablename__ = "subscriptions"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(64), nullable=False, index=True)

    # Razorpay order the subscription was checked out with
    order_id = db.Column(db.String(64), nullable=False, unique=True, index=True)
    payment_id = db.Column(db.String(64), nullable=True)

    payment_status = db.Column(db.String(16), nullable=False, index=True, server_default=text("'pending'"))
    status = db.Column(db.String(32), nullable=False, index=True, server_default=text("'pending'"))

    activated_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=func.now())

    def __repr__(self) -> str:
        return (
            f"<Subscription id={self.id} order_id={self.order_id!r} "
            f"payment_status={self.payment_status!r} status={self.status!r}>"
        )
