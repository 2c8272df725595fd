"""
Error kinds raised by the record store, the gateway and the orchestrators.

Every error is logged where it is raised or caught; callers facing the user
collapse all of them to GENERIC_ERROR_NOTICE.
"""

GENERIC_ERROR_NOTICE = "Something went wrong. Please try again."


class PartnerError(Exception):
    """Base class for all English Partner errors."""


class AuthorizationError(PartnerError):
    """No authenticated user, or the resource belongs to someone else."""


class NotFoundError(PartnerError):
    """A conversation, message, correction or quiz does not exist."""


class GatewayError(PartnerError):
    """The language model call failed or returned an unusable response."""


class StoreError(PartnerError):
    """The record store rejected a read or write."""


class EmptyMessageError(PartnerError):
    """The submitted text is empty or whitespace only."""


class TurnInProgressError(PartnerError):
    """A turn is already in flight for this conversation."""
