"""
Error taxonomy shared by every service.

Routers translate these into HTTP status codes; consumers log them.
"""


class FulfillmentError(Exception):
    """Base class for all domain errors."""


class ValidationError(FulfillmentError):
    """Malformed request — rejected synchronously, never enters the pipeline."""


class NotFoundError(FulfillmentError):
    """Unknown order or item id."""


class UpstreamUnavailable(FulfillmentError):
    """Bus, counter store or a peer service is unreachable or timed out."""


class ReservationContention(UpstreamUnavailable):
    """The optimistic reservation loop hit its attempt ceiling."""


class ConcurrencyConflict(FulfillmentError):
    """A watched key changed before EXEC. Only raised inside the reservation loop."""
