# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Exception types raised while validating and dispatching resume requests.

Every dispatch failure carries a stable ``code`` so the HTTP layer and the
metrics can classify it without inspecting messages.
"""

from __future__ import annotations


class ConfigError(ValueError):
    """Raised at startup when a configuration value cannot be parsed."""


class DispatchError(RuntimeError):
    """Base class for failures surfaced by the resume dispatcher."""

    code = "dispatch_failed"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.__class__.__doc__.strip())


class AuthenticationFailed(DispatchError):
    """Mail server rejected the configured credentials."""

    code = "authentication_failed"


class ConnectionFailed(DispatchError):
    """Mail server could not be reached."""

    code = "connection_failed"


class TransportTimeout(DispatchError):
    """Mail server did not answer in time."""

    code = "timeout"


class EnvelopeInvalid(DispatchError):
    """Recipient address was rejected."""

    code = "envelope_invalid"


class ResourceUnavailable(DispatchError):
    """Resume file is not available."""

    code = "resource_unavailable"


class ConfigurationMissing(DispatchError):
    """Required mail configuration is missing."""

    code = "configuration_missing"

    def __init__(self, message: str | None = None, missing: list[str] | None = None):
        self.missing = list(missing or [])
        if message is None and self.missing:
            message = f"Missing required environment variables: {', '.join(self.missing)}"
        super().__init__(message)


SERVICE_UNAVAILABLE_ERRORS = (
    AuthenticationFailed,
    ConnectionFailed,
    TransportTimeout,
    ConfigurationMissing,
)
