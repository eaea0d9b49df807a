# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Google OAuth2 helpers for sending through Gmail with XOAUTH2.

:class:`GoogleTokenProvider` turns the long-lived refresh token into
short-lived access tokens, caching each one until shortly before it expires.
:func:`build_consent_url` and :func:`exchange_code` back the CLI command that
obtains a refresh token in the first place.
"""

from __future__ import annotations

import asyncio
import base64
import time
from typing import Any, Optional
from urllib.parse import urlencode

import aiohttp

from .logger import get_logger

TOKEN_URL = "https://oauth2.googleapis.com/token"
AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GMAIL_SEND_SCOPE = "https://www.googleapis.com/auth/gmail.send"
OOB_REDIRECT_URI = "urn:ietf:wg:oauth:2.0:oob"
EXPIRY_MARGIN_SECONDS = 60


class OAuth2Error(RuntimeError):
    """Raised when Google's token endpoint refuses a request.

    Attributes:
        error: OAuth2 error code such as ``invalid_grant`` or ``invalid_client``.
        status: HTTP status returned by the token endpoint.
    """

    def __init__(self, error: str, description: str = "", status: int | None = None):
        self.error = error
        self.status = status
        message = f"OAuth2 token request failed: {error}"
        if description:
            message += f" ({description})"
        super().__init__(message)


def xoauth2_string(user: str, access_token: str) -> str:
    """Base64 SASL XOAUTH2 initial response for ``AUTH XOAUTH2``."""
    raw = f"user={user}\x01auth=Bearer {access_token}\x01\x01"
    return base64.b64encode(raw.encode()).decode()


async def _post_token_request(data: dict[str, str], timeout: float) -> dict[str, Any]:
    async with aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=timeout)) as session:
        async with session.post(TOKEN_URL, data=data) as response:
            try:
                payload = await response.json(content_type=None)
            except ValueError as exc:
                raise OAuth2Error(
                    "invalid_response", f"token endpoint returned non-JSON body: {exc}", status=response.status
                ) from exc
            if not isinstance(payload, dict):
                raise OAuth2Error("invalid_response", "token endpoint returned non-object JSON", status=response.status)
            if response.status >= 400 or "error" in payload:
                raise OAuth2Error(
                    str(payload.get("error", "unknown_error")),
                    str(payload.get("error_description", "")),
                    status=response.status,
                )
            return payload


class GoogleTokenProvider:
    """Cached access-token source for one Google OAuth2 client.

    Attributes:
        client_id: OAuth2 client id.
        client_secret: OAuth2 client secret.
        refresh_token: Long-lived refresh token with the ``gmail.send`` scope.
    """

    def __init__(self, client_id: str, client_secret: str, refresh_token: str, *, timeout: float = 10.0):
        self.client_id = client_id
        self.client_secret = client_secret
        self.refresh_token = refresh_token
        self.timeout = timeout
        self._access_token: Optional[str] = None
        self._expires_at = 0.0
        self._lock = asyncio.Lock()
        self.logger = get_logger("OAuth2")

    async def get_access_token(self) -> str:
        """Return a valid access token, refreshing it when needed.

        Raises:
            OAuth2Error: If Google rejects the refresh token or client.
            aiohttp.ClientError: If the token endpoint cannot be reached.
        """
        async with self._lock:
            if self._access_token and time.time() < self._expires_at - EXPIRY_MARGIN_SECONDS:
                return self._access_token
            payload = await _post_token_request(
                {
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                    "refresh_token": self.refresh_token,
                    "grant_type": "refresh_token",
                },
                self.timeout,
            )
            if not payload.get("access_token"):
                raise OAuth2Error("invalid_response", "token endpoint reply has no access_token")
            self._access_token = payload["access_token"]
            self._expires_at = time.time() + float(payload.get("expires_in", 3600))
            self.logger.debug("Refreshed OAuth2 access token")
            return self._access_token

    def invalidate(self) -> None:
        self._access_token = None
        self._expires_at = 0.0


def build_consent_url(client_id: str, redirect_uri: str = OOB_REDIRECT_URI) -> str:
    """Consent screen URL that yields an authorisation code with offline access."""
    params = {
        "client_id": client_id,
        "redirect_uri": redirect_uri,
        "response_type": "code",
        "scope": GMAIL_SEND_SCOPE,
        "access_type": "offline",
        "prompt": "consent",
    }
    return f"{AUTH_URL}?{urlencode(params)}"


async def exchange_code(
    client_id: str,
    client_secret: str,
    code: str,
    redirect_uri: str = OOB_REDIRECT_URI,
    timeout: float = 10.0,
) -> dict[str, Any]:
    """Exchange an authorisation code for tokens (includes ``refresh_token``)."""
    return await _post_token_request(
        {
            "client_id": client_id,
            "client_secret": client_secret,
            "code": code.strip(),
            "redirect_uri": redirect_uri,
            "grant_type": "authorization_code",
        },
        timeout,
    )
