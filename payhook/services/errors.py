KIND_MALFORMED_EVENT = "malformed_event"
KIND_NOT_FOUND = "not_found"
KIND_AUX_WRITE_FAILED = "aux_write_failed"
KIND_PERSISTENCE = "persistence"
KIND_UNEXPECTED = "unexpected"


class WebhookError(Exception):
    """Base for classified pipeline failures; `kind` tells the router how to report it."""

    kind = KIND_UNEXPECTED


class MalformedEvent(WebhookError):
    kind = KIND_MALFORMED_EVENT


class SubscriptionNotFound(WebhookError):
    kind = KIND_NOT_FOUND

    def __init__(self, order_id: str):
        super().__init__("Subscription not found")
        self.order_id = order_id


class PersistenceUnavailable(WebhookError):
    kind = KIND_PERSISTENCE
