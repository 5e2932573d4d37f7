from .payment_event import (
    PaymentEvent,
    STATUS_RECORDED,
    STATUS_PROCESSED,
    STATUS_PROCESSED_WITH_ERROR,
    EVENT_ID_MAX,
    EVENT_TYPE_MAX,
    REFERENCE_ID_MAX,
)
from .subscription import (
    Subscription,
    PAYMENT_PENDING,
    PAYMENT_COMPLETED,
    PAYMENT_FAILED,
    STATUS_PENDING,
    STATUS_ACTIVE,
    STATUS_CANCELLED,
)
from .purchase import Purchase, PURCHASE_PENDING, PURCHASE_PAID, PURCHASE_FAILED
