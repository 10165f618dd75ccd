class PaymentError(Exception):
    """Base class for errors raised by the payment verification services."""


class ValidationError(PaymentError):
    """Malformed reference, amount or request input."""


class NotFoundError(PaymentError):
    """Order id absent from both storage partitions."""


class PartialAvailabilityError(PaymentError):
    """One storage partition could not be queried."""

    def __init__(self, partition: str, cause: Exception):
        super().__init__(f"{partition} partition unavailable: {cause}")
        self.partition = partition
        self.cause = cause


class NotificationError(PaymentError):
    """A notification could not be rendered or handed off."""


class UnauthorizedTrigger(PaymentError):
    """Reconciliation entry point invoked without a valid shared secret."""


class InvalidTransitionError(PaymentError):
    """Status write not permitted by the order's state machine."""


class ConflictError(PaymentError):
    """Guarded write lost against a concurrent writer."""
