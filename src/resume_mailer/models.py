# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Value types shared by the dispatcher, the transport and the HTTP layer.

Request and response bodies are pydantic models, internal values are frozen
dataclasses.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel


class Strategy(str, Enum):
    """How the resume reaches the recipient."""

    SMTP = "smtp"
    OAUTH2 = "oauth2"
    ATTACHMENT = "attachment"
    SIGNED_LINK = "link"

    @classmethod
    def parse(cls, value: str) -> "Strategy":
        """Resolve a strategy from its value or name (case-insensitive)."""
        normalized = value.strip().lower()
        for member in cls:
            if normalized in (member.value, member.name.lower()):
                return member
        raise ValueError(f"Unknown resume strategy: {value!r}")


class Protocol(str, Enum):
    SMTP = "smtp"
    OAUTH2 = "oauth2"


GMAIL_SMTP_HOST = "smtp.gmail.com"
GMAIL_SMTP_PORT = 465


@dataclass(frozen=True)
class TransportConfig:
    """Immutable description of how to reach the mail server.

    Attributes:
        protocol: Password SMTP login or Gmail XOAUTH2.
        host: SMTP server hostname.
        port: SMTP server port; 465 means implicit TLS.
        user: Login name (the sender mailbox for OAuth2).
        password: SMTP password, unused for OAuth2.
        client_id: Google OAuth2 client id.
        client_secret: Google OAuth2 client secret.
        refresh_token: Long-lived Google refresh token.
        sender_address: Envelope and ``From`` address.
        sender_name: Display name used in the ``From`` header.
        use_tls: Encrypt the connection (implicit TLS or STARTTLS).
        validate_certs: Verify the server certificate chain.
    """

    protocol: Protocol
    host: str
    port: int
    sender_address: str
    sender_name: str
    user: Optional[str] = None
    password: Optional[str] = None
    client_id: Optional[str] = None
    client_secret: Optional[str] = None
    refresh_token: Optional[str] = None
    use_tls: bool = True
    validate_certs: bool = True

    def __repr__(self) -> str:
        return (
            f"TransportConfig(protocol={self.protocol.value!r}, host={self.host!r}, "
            f"port={self.port!r}, user={self.user!r})"
        )


@dataclass(frozen=True)
class Attachment:
    filename: str
    content: bytes
    mime_type: str = "application/pdf"
    source: str = ""

    @property
    def size(self) -> int:
        return len(self.content)


@dataclass(frozen=True)
class DispatchResult:
    """Outcome of a successful dispatch."""

    succeeded: bool
    message_id: str
    message: str
    recipient: str
    strategy: Strategy
    download_url: Optional[str] = None


class SendResumePayload(BaseModel):
    """Body accepted by ``POST /api/send-resume``."""

    email: Optional[Any] = None


class SendResumeResponse(BaseModel):
    success: bool
    message: str
    messageId: str


class ErrorResponse(BaseModel):
    error: str
    message: str
    reason: Optional[str] = None
    detail: Optional[str] = None


class HealthResponse(BaseModel):
    status: str
    message: str
    timestamp: str


class RootResponse(BaseModel):
    message: str
    version: str
