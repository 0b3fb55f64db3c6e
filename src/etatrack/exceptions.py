"""Custom exception hierarchy for etatrack."""

from __future__ import annotations


class EtaError(Exception):
    """Base exception for all etatrack errors."""


class EtaConfigError(EtaError):
    """Invalid or missing configuration."""


class EtaTransportError(EtaError):
    """HTTP-level failure (network, non-2xx, timeout, invalid JSON)."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        endpoint: str = "",
    ) -> None:
        self.status_code = status_code
        self.endpoint = endpoint
        super().__init__(message)


class EtaProviderError(EtaError):
    """Travel-time provider answered, but with an application-level error."""

    def __init__(self, message: str, *, endpoint: str = "") -> None:
        self.endpoint = endpoint
        super().__init__(message)


class EtaPublishError(EtaError):
    """A position record could not be delivered to the publish backend."""


class LocationError(EtaError):
    """Base for failures reported by a position watch."""


class LocationPermissionError(LocationError):
    """The platform refused access to the position capability.

    Terminal for the current session: the watch is torn down and never
    retried automatically.
    """


class LocationUnavailableError(LocationError):
    """A position fix could not be obtained (timeout, no signal).

    Transient: the watch is reopened after a short delay.
    """
