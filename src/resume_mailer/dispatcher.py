# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Resume dispatch: one code path for every delivery strategy.

:class:`ResumeDispatcher` validates the recipient again, resolves the
transport for the chosen :class:`~resume_mailer.models.Strategy`, opens an
SMTP session, resolves the attachment or download link, composes the message
and sends it. The session is closed on every exit path.

Transport failures are classified at this boundary into the
:mod:`resume_mailer.errors` taxonomy; raw ``aiosmtplib``/``aiohttp``
exceptions never reach the HTTP layer. Nothing is retried here.

Example:
    Sending a resume::

        dispatcher = ResumeDispatcher(config)
        result = await dispatcher.dispatch("visitor@example.com", Strategy.ATTACHMENT)
        print(result.message_id)
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
from email.message import EmailMessage
from email.utils import formataddr, make_msgid
from typing import Any, Optional

import aiohttp
import aiosmtplib

from .attachments import ResumeLocator
from .config import ServiceConfig
from .content import EmailContent, attachment_content, link_content
from .errors import (
    AuthenticationFailed,
    ConnectionFailed,
    DispatchError,
    EnvelopeInvalid,
    TransportTimeout,
)
from .links import DownloadLinkSigner
from .logger import get_logger, redact_email
from .models import Attachment, DispatchResult, Strategy, TransportConfig
from .oauth2 import OAuth2Error
from .prometheus import ResumeMetrics
from .transport import SessionFactory
from .validation import EmailValidationError, validate_email

ATTACHMENT_SENT_MESSAGE = "Resume sent successfully! Check your email."
LINK_SENT_MESSAGE = "Resume download link sent successfully! Check your email."

AUTH_FAILURE_CODES = (530, 534, 535)
OAUTH2_AUTH_ERRORS = ("invalid_grant", "invalid_client", "unauthorized_client")

SessionFactoryType = Callable[[TransportConfig], AbstractAsyncContextManager[Any]]


def classify_transport_error(exc: BaseException) -> Optional[DispatchError]:
    """Map a transport exception onto the dispatch error taxonomy.

    Returns:
        The matching :class:`DispatchError`, or None if ``exc`` is not a
        transport failure.
    """
    if isinstance(exc, DispatchError):
        return exc
    if isinstance(exc, OAuth2Error):
        if exc.error in OAUTH2_AUTH_ERRORS:
            return AuthenticationFailed(
                "OAuth2 authentication failed; the refresh token may have expired or been revoked"
            )
        return ConnectionFailed(str(exc))
    # Timeouts first: aiosmtplib timeout errors are also connection errors
    if isinstance(exc, (aiosmtplib.SMTPTimeoutError, asyncio.TimeoutError)):
        return TransportTimeout("Mail server connection timed out")
    if isinstance(exc, aiosmtplib.SMTPAuthenticationError):
        return AuthenticationFailed(f"SMTP authentication failed ({exc.code})")
    if isinstance(exc, (aiosmtplib.SMTPRecipientsRefused, aiosmtplib.SMTPRecipientRefused)):
        return EnvelopeInvalid("Recipient address was refused by the mail server")
    if isinstance(exc, aiosmtplib.SMTPSenderRefused):
        return AuthenticationFailed(f"Sender address refused ({exc.code})")
    if isinstance(exc, aiosmtplib.SMTPResponseException) and exc.code in AUTH_FAILURE_CODES:
        return AuthenticationFailed(f"SMTP authentication failed ({exc.code})")
    if isinstance(exc, (aiosmtplib.SMTPException, aiohttp.ClientError, ConnectionError, OSError)):
        return ConnectionFailed(f"Mail server unavailable: {exc.__class__.__name__}")
    return None


class ResumeDispatcher:
    """Sends the resume to one recipient using a delivery strategy.

    Attributes:
        config: Service configuration, read-only.
        session_factory: Builds an async context manager session from a
            :class:`TransportConfig`. Defaults to :class:`SessionFactory`.
        locator: Resolves the resume attachment.
        signer: Builds download links for :attr:`Strategy.SIGNED_LINK`.
        metrics: Optional Prometheus collector.
    """

    def __init__(
        self,
        config: ServiceConfig,
        session_factory: Optional[SessionFactoryType] = None,
        locator: Optional[ResumeLocator] = None,
        signer: Optional[DownloadLinkSigner] = None,
        metrics: Optional[ResumeMetrics] = None,
    ):
        self.config = config
        self.session_factory = session_factory or SessionFactory()
        self.locator = locator or ResumeLocator.from_config(config)
        self.signer = signer or DownloadLinkSigner.from_config(config)
        self.metrics = metrics
        self.logger = get_logger("ResumeDispatcher")

    def _redact(self, email: str) -> str:
        return redact_email(email, self.config.production)

    async def dispatch(self, email: str, strategy: Optional[Strategy] = None) -> DispatchResult:
        """Send the resume to ``email``.

        Args:
            email: Recipient address. Validated again here.
            strategy: Delivery strategy. Defaults to the configured one.

        Raises:
            EnvelopeInvalid: If the address fails validation or is refused.
            ConfigurationMissing: If the strategy's credentials are absent.
            AuthenticationFailed: If the mail server rejects the credentials.
            ConnectionFailed: If the mail server cannot be reached.
            TransportTimeout: If the mail server does not answer in time.
            ResourceUnavailable: If the resume cannot be found.
        """
        strategy = strategy or self.config.default_strategy
        try:
            recipient = validate_email(email)
        except EmailValidationError as exc:
            error = EnvelopeInvalid(f"Invalid recipient email format ({exc.kind.value})")
            self._record_failure(error, strategy)
            raise error from exc

        try:
            result = await self._send(recipient, strategy)
        except DispatchError as exc:
            self._record_failure(exc, strategy)
            raise
        except Exception as exc:
            mapped = classify_transport_error(exc)
            if mapped is None:
                self.logger.exception("Unexpected error sending resume via %s", strategy.value)
                if self.metrics:
                    self.metrics.inc_error("internal")
                raise
            self._record_failure(mapped, strategy)
            raise mapped from exc

        if self.metrics:
            self.metrics.inc_sent(strategy.value)
        self.logger.info(
            "Resume sent to %s via %s (message id %s)",
            self._redact(recipient), strategy.value, result.message_id,
        )
        return result

    def _record_failure(self, exc: DispatchError, strategy: Strategy) -> None:
        self.logger.error("Resume dispatch via %s failed [%s]: %s", strategy.value, exc.code, exc)
        if self.metrics:
            self.metrics.inc_error(exc.code)

    async def _send(self, recipient: str, strategy: Strategy) -> DispatchResult:
        transport = self.config.transport_for(strategy)
        self.logger.debug("Opening %s session to %s:%s", transport.protocol.value, transport.host, transport.port)
        async with self.session_factory(transport) as session:
            download_url: Optional[str] = None
            attachment: Optional[Attachment] = None
            if strategy is Strategy.SIGNED_LINK:
                download_url = await self.signer.generate(recipient)
                self.logger.info("Generated %s download link", self.signer.mode)
                content = link_content(
                    self.config.sender_name,
                    self.config.email_subject,
                    download_url,
                    self.signer.expiry_hours,
                    self.config.email_text,
                    self.config.email_html,
                )
            else:
                attachment = await self.locator.resolve(
                    allow_public_url=strategy is Strategy.SMTP,
                    warn_size=strategy is Strategy.ATTACHMENT,
                )
                content = attachment_content(
                    self.config.sender_name,
                    self.config.email_subject,
                    self.config.email_text,
                    self.config.email_html,
                )
            msg = build_message(transport, recipient, content, attachment)
            self.logger.info("Sending resume to %s", self._redact(recipient))
            await session.send(msg)

        return DispatchResult(
            succeeded=True,
            message_id=msg["Message-ID"],
            message=LINK_SENT_MESSAGE if download_url else ATTACHMENT_SENT_MESSAGE,
            recipient=recipient,
            strategy=strategy,
            download_url=download_url,
        )


def build_message(
    transport: TransportConfig,
    recipient: str,
    content: EmailContent,
    attachment: Optional[Attachment] = None,
) -> EmailMessage:
    """Compose a text + HTML message, with the resume attached when given."""
    msg = EmailMessage()
    msg["From"] = formataddr((transport.sender_name, transport.sender_address))
    msg["To"] = recipient
    msg["Subject"] = content.subject
    domain = transport.sender_address.rpartition("@")[2] or None
    msg["Message-ID"] = make_msgid(domain=domain)
    msg.set_content(content.text)
    msg.add_alternative(content.html, subtype="html")
    if attachment is not None:
        maintype, _, subtype = attachment.mime_type.partition("/")
        msg.add_attachment(
            attachment.content,
            maintype=maintype,
            subtype=subtype or "octet-stream",
            filename=attachment.filename,
        )
    return msg
