"""Delivery error taxonomy.

Lifecycle violations subclass Protean's ``ValidationError`` so they carry
the same field-keyed message dict as every other domain rule and surface
to the caller. Provider-boundary failures are plain exceptions raised by
adapters; assignment failures are invalid operations on the order flow.
"""

from protean.exceptions import InvalidOperationError, ValidationError


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------
class InvalidStateError(ValidationError):
    """The delivery is not in a state that allows the requested operation."""


class InvalidTransitionError(InvalidStateError):
    """The requested status is not reachable from the current one."""


class TerminalStateError(InvalidTransitionError):
    """The delivery is delivered, cancelled or returned and accepts no further transitions."""


# ---------------------------------------------------------------------------
# Provider boundary
# ---------------------------------------------------------------------------
class ProviderError(Exception):
    """Base class for errors raised by provider adapters."""

    def __init__(self, provider: str, message: str, retryable: bool = True):
        super().__init__(message)
        self.provider = provider
        self.message = message
        self.retryable = retryable

    def __str__(self):
        return f"[{self.provider}] {self.message}"


class DispatchError(ProviderError):
    """The provider rejected or failed to accept a delivery request."""


class StoreDispatchError(DispatchError):
    pass


class ChaskisDispatchError(DispatchError):
    pass


class UberDirectDispatchError(DispatchError):
    pass


class CancelError(ProviderError):
    """The provider refused to cancel a delivery."""


class UnrecognizedPayloadError(ProviderError):
    """A webhook payload carried an event type or status the adapter does not know."""

    def __init__(self, provider: str, message: str):
        super().__init__(provider, message, retryable=False)


# ---------------------------------------------------------------------------
# Assignment
# ---------------------------------------------------------------------------
class AssignmentError(InvalidOperationError):
    """A provider could not be assigned to a delivery."""

    def __init__(self, message: str):
        super().__init__({"provider": [message]})
        self.message = message


class NoDefaultProviderConfiguredError(AssignmentError):
    """A native-channel order arrived but the restaurant has no default provider."""


class ProviderUnavailableError(AssignmentError):
    """The chosen provider cannot accept new deliveries right now."""
