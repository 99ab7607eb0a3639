"""
XGate Exceptions

Base exception classes for the gateway. Components raise the concrete
errors defined next to them, all of which derive from one of these.
"""


class GatewayException(Exception):
    """Base exception for XGate."""
    pass


class ValidationError(GatewayException):
    """Malformed signer set, threshold, batch shape or payload.

    Raised before any state is touched.
    """
    pass


class AuthorizationError(GatewayException):
    """Caller or signature set is not allowed to perform the action."""
    pass


class ExecutionFailure(GatewayException):
    """A downstream call or command handler failed."""
    pass


class ConfigurationError(GatewayException):
    """Configuration error."""
    pass
