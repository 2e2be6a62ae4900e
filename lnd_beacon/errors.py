"""Failure classes raised by the daemon boundary and the reconciliation core."""


class DaemonError(Exception):
    """Base class for every failure reported to the presentation layer."""


class TransportFailure(DaemonError):
    """No usable response from the daemon (refused, timed out, non-2xx)."""

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class DecodeFailure(DaemonError):
    """Response was not valid JSON or lacked a required field."""


class RateUnavailable(DaemonError):
    """Currency conversion requested without a usable exchange rate."""


class ValidationFailure(DaemonError):
    """Request rejected locally before any network call was made."""
