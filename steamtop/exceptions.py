class SteamTopError(Exception):
    """Base class for all errors raised by steamtop."""


class TransportError(SteamTopError):
    """Network or read failure during an HTTP GET."""


class DecodeError(SteamTopError):
    """Response body is not valid JSON or does not have the expected shape."""


class RateLimitedError(SteamTopError):
    """Steam answered with an empty envelope, which it does when throttling."""


class UnexpectedResponseError(SteamTopError):
    """Envelope decoded fine but does not carry the queried app."""


class StorageError(SteamTopError):
    """Any failure reported by the games database."""


class ConfigError(SteamTopError):
    """Database configuration is missing, unreadable or invalid."""
