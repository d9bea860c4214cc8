from __future__ import annotations


class PowError(Exception):
    """Base class for every error raised by the pow client."""
    pass


class UsageError(PowError):
    """Raised when the caller uses a session in a way the protocol does not allow."""
    pass


class AlreadyConnected(UsageError):
    """Raised when connect() is invoked a second time on the same session."""
    pass


class NotConnected(UsageError):
    """Raised when sending without a live transport."""
    pass


class InvalidCallSpec(UsageError):
    pass


class TransportError(PowError):
    """Raised (or reported) when the underlying connection fails."""
    pass


class ConfigError(PowError):
    pass
