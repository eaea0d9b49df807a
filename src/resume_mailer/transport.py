# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""One-shot SMTP session used for a single resume dispatch.

A session connects, authenticates (password login or Gmail XOAUTH2), checks
the connection with ``NOOP``, sends, and always closes. It is an async
context manager so the dispatcher cannot leak it on any exit path.

TLS behaviour based on port and ``use_tls``:

- Port 465 with ``use_tls``: implicit TLS
- Other ports with ``use_tls``: STARTTLS
- ``use_tls`` false: plain SMTP

Example:
    Sending one message::

        async with SmtpSession(transport_config, token_provider) as session:
            await session.send(message)
"""

from __future__ import annotations

import asyncio
from email.message import EmailMessage
from typing import Optional

import aiosmtplib

from .logger import get_logger
from .models import Protocol, TransportConfig
from .oauth2 import GoogleTokenProvider, xoauth2_string

CONNECT_TIMEOUT = 10.0
CONNECT_DEADLINE = 15.0
NOOP_TIMEOUT = 5.0
SEND_TIMEOUT = 30.0


class SmtpSession:
    """Async context manager wrapping one ``aiosmtplib.SMTP`` connection.

    Attributes:
        config: Transport configuration for this session.
        token_provider: Access-token source, required for OAuth2.
    """

    def __init__(self, config: TransportConfig, token_provider: Optional[GoogleTokenProvider] = None):
        self.config = config
        self.token_provider = token_provider
        self._smtp: Optional[aiosmtplib.SMTP] = None
        self.logger = get_logger("SmtpSession")

    def _client(self) -> aiosmtplib.SMTP:
        cfg = self.config
        if cfg.use_tls and cfg.port == 465:
            return aiosmtplib.SMTP(
                hostname=cfg.host, port=cfg.port, use_tls=True, start_tls=False,
                validate_certs=cfg.validate_certs, timeout=CONNECT_TIMEOUT,
            )
        if cfg.use_tls:
            return aiosmtplib.SMTP(
                hostname=cfg.host, port=cfg.port, use_tls=False, start_tls=True,
                validate_certs=cfg.validate_certs, timeout=CONNECT_TIMEOUT,
            )
        return aiosmtplib.SMTP(
            hostname=cfg.host, port=cfg.port, use_tls=False, start_tls=False, timeout=CONNECT_TIMEOUT,
        )

    async def _auth_xoauth2(self, smtp: aiosmtplib.SMTP) -> None:
        if self.token_provider is None:
            raise RuntimeError("OAuth2 transport requires a token provider")
        token = await self.token_provider.get_access_token()
        response = await smtp.execute_command(
            b"AUTH", b"XOAUTH2", xoauth2_string(self.config.user or "", token).encode()
        )
        if response.code == 334:
            # Server sent a base64 error challenge; an empty reply yields the final status
            response = await smtp.execute_command(b"")
        if response.code != 235:
            self.token_provider.invalidate()
            raise aiosmtplib.SMTPAuthenticationError(response.code, response.message)

    async def open(self) -> None:
        """Connect, authenticate and verify the connection.

        Raises:
            asyncio.TimeoutError: If the connection cannot be set up in time.
            aiosmtplib.SMTPException: If connection or authentication fails.
            OAuth2Error: If an OAuth2 access token cannot be obtained.
        """
        smtp = self._client()
        self._smtp = smtp

        async def _do_connect() -> None:
            await smtp.connect()
            if self.config.protocol is Protocol.OAUTH2:
                await self._auth_xoauth2(smtp)
            elif self.config.user and self.config.password:
                await smtp.login(self.config.user, self.config.password)

        await asyncio.wait_for(_do_connect(), timeout=CONNECT_DEADLINE)
        await self.verify()

    async def verify(self) -> None:
        """Connectivity check with ``NOOP``; raises if the server is not ready."""
        if self._smtp is None:
            raise aiosmtplib.SMTPServerDisconnected("Session is not open")
        code, message = await asyncio.wait_for(self._smtp.noop(), timeout=NOOP_TIMEOUT)
        if code != 250:
            raise aiosmtplib.SMTPResponseException(code, message)

    async def send(self, msg: EmailMessage) -> None:
        if self._smtp is None:
            raise aiosmtplib.SMTPServerDisconnected("Session is not open")
        await asyncio.wait_for(
            self._smtp.send_message(msg, sender=self.config.sender_address),
            timeout=SEND_TIMEOUT,
        )

    async def close(self) -> None:
        """Quit politely, dropping the socket if the server does not answer."""
        smtp, self._smtp = self._smtp, None
        if smtp is None:
            return
        if not smtp.is_connected:
            return
        try:
            await asyncio.wait_for(smtp.quit(), timeout=NOOP_TIMEOUT)
        except (aiosmtplib.SMTPException, asyncio.TimeoutError, OSError) as exc:
            self.logger.debug("QUIT failed, closing socket: %s", exc)
            smtp.close()

    async def __aenter__(self) -> "SmtpSession":
        try:
            await self.open()
        except BaseException:
            await self.close()
            raise
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()


class SessionFactory:
    """Creates sessions for a transport config, sharing OAuth2 token caches."""

    def __init__(self) -> None:
        self._providers: dict[tuple[str, str], GoogleTokenProvider] = {}

    def token_provider_for(self, config: TransportConfig) -> Optional[GoogleTokenProvider]:
        if config.protocol is not Protocol.OAUTH2:
            return None
        key = (config.client_id or "", config.refresh_token or "")
        provider = self._providers.get(key)
        if provider is None:
            provider = GoogleTokenProvider(
                config.client_id or "", config.client_secret or "", config.refresh_token or ""
            )
            self._providers[key] = provider
        return provider

    def __call__(self, config: TransportConfig) -> SmtpSession:
        return SmtpSession(config, self.token_provider_for(config))
