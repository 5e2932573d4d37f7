from sqlalchemy import func, text
from payhook.extensions import db

PURCHASE_PENDING = "pending"
PURCHASE_PAID = "paid"
PURCHASE_FAILED = "failed"


class Purchase(db.Model):
    """Audit/reporting mirror of a subscription's payment outcome, keyed by order."""

    __tablename__ = "purchases"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(64), nullable=True, index=True)
    order_id = db.Column(db.String(64), nullable=False, unique=True, index=True)
    payment_id = db.Column(db.String(64), nullable=True)
    status = db.Column(db.String(16), nullable=False, index=True, server_default=text("'pending'"))

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=func.now())

    def __repr__(self) -> str:
        return f"<Purchase id={self.id} order_id={self.order_id!r} status={self.status!r}>"
