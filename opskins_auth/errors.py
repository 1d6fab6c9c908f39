"""Error taxonomy for the OPSkins OAuth strategy."""


class OpskinsAuthError(Exception):
    """Base class for all strategy errors."""

    pass


class ConfigurationError(OpskinsAuthError):
    """Missing or invalid construction parameters."""

    pass


class TransportError(OpskinsAuthError):
    """Network or connection failure talking to the provider."""

    pass


class ProtocolError(OpskinsAuthError):
    """Provider response was not JSON or signalled a failure."""

    pass


class StateMismatchError(OpskinsAuthError):
    """Callback state token is absent, expired or unknown."""

    pass


class NotReadyError(OpskinsAuthError):
    """Client registration has not been reconciled yet."""

    pass
