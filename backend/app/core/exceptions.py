"""Domain exceptions raised by services and translated to HTTP errors by the API layer"""


class WebhookValidationError(ValueError):
    """Payload is malformed or references an unknown job, prediction or order.

    Terminal for the current delivery attempt. The event is still recorded as
    failed, so a later retry can succeed once the referenced row exists.
    """


class PayoutError(Exception):
    """One or more payout legs could not be created"""

    def __init__(self, message: str, failed_legs=None):
        super().__init__(message)
        self.failed_legs = failed_legs or []


class EventNotFoundError(LookupError):
    """Webhook event or dead letter entry does not exist"""


class InvalidStateTransition(Exception):
    """Requested status change is not allowed from the current status"""
