# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Service configuration collected once at startup.

All environment reads happen in :func:`load_config`. The result is a frozen
:class:`ServiceConfig` shared read-only by the HTTP layer, the rate limiter and
every dispatch. Missing credentials are detected in one place,
:meth:`ServiceConfig.transport_for`.

Values are read from an optional INI file first (path in
``RESUME_MAILER_CONFIG``, section ``[mailer]``, lowercase keys) with
environment variables as fallbacks.

Example:
    Configuration file format (mailer.ini)::

        [mailer]
        smtp_host = smtp.example.com
        smtp_port = 587
        smtp_user = me@example.com
        smtp_pass = secret
        from_email = me@example.com
        resume_strategy = attachment

    Loading::

        config = load_config()
        transport = config.transport_for(config.default_strategy)
"""

from __future__ import annotations

import configparser
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from .errors import ConfigError, ConfigurationMissing
from .logger import get_logger
from .models import GMAIL_SMTP_HOST, GMAIL_SMTP_PORT, Protocol, Strategy, TransportConfig

logger = get_logger("Config")

CONFIG_SECTION = "mailer"
DEFAULT_SENDER_NAME = "Portfolio Owner"
DEFAULT_EMAIL_SUBJECT = "Your Requested Resume"
DEFAULT_LINK_EXPIRY_SECONDS = 7 * 24 * 3600
DEFAULT_LOCAL_ORIGINS = (
    "http://localhost:5173",
    "http://localhost:3000",
    "http://127.0.0.1:5173",
    "http://127.0.0.1:3000",
)

SMTP_VARS = ("SMTP_HOST", "SMTP_USER", "SMTP_PASS", "FROM_EMAIL")
OAUTH2_VARS = ("GOOGLE_CLIENT_ID", "GOOGLE_CLIENT_SECRET", "GOOGLE_REFRESH_TOKEN", "FROM_EMAIL")
SECRET_FIELDS = frozenset({
    "smtp_pass",
    "google_client_secret",
    "google_refresh_token",
    "download_secret",
    "aws_secret_access_key",
})


@dataclass(frozen=True)
class ServiceConfig:
    """Every option the service recognises, parsed and typed."""

    smtp_host: Optional[str] = None
    smtp_port: int = 587
    smtp_user: Optional[str] = None
    smtp_pass: Optional[str] = None
    smtp_tls: bool = True
    from_email: Optional[str] = None
    google_client_id: Optional[str] = None
    google_client_secret: Optional[str] = None
    google_refresh_token: Optional[str] = None

    sender_name: str = DEFAULT_SENDER_NAME
    email_subject: str = DEFAULT_EMAIL_SUBJECT
    email_text: Optional[str] = None
    email_html: Optional[str] = None

    frontend_url: Optional[str] = None
    cors_origins: tuple[str, ...] = ()

    resume_public_url: Optional[str] = None
    resume_path: Optional[str] = None
    resume_strategy: Optional[Strategy] = None

    download_secret: Optional[str] = None
    download_base_url: Optional[str] = None
    link_expiry_seconds: int = DEFAULT_LINK_EXPIRY_SECONDS
    aws_access_key_id: Optional[str] = None
    aws_secret_access_key: Optional[str] = None
    aws_region: str = "us-east-1"
    aws_s3_bucket: Optional[str] = None
    aws_s3_key: str = "resume.pdf"

    rate_limit_window: int = 3600
    rate_limit_max: int = 5

    environment: str = "development"
    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 8000
    api_version: str = "1.0.0"

    @property
    def production(self) -> bool:
        return self.environment == "production"

    @property
    def development(self) -> bool:
        return self.environment == "development"

    @property
    def has_oauth2(self) -> bool:
        return bool(self.google_client_id and self.google_refresh_token)

    @property
    def has_smtp(self) -> bool:
        return bool(self.smtp_host and self.smtp_user)

    @property
    def has_aws(self) -> bool:
        return bool(self.aws_access_key_id and self.aws_s3_bucket)

    @property
    def allow_any_origin(self) -> bool:
        return self.frontend_url == "*"

    @property
    def allowed_origins(self) -> tuple[str, ...]:
        origins = [o for o in (self.frontend_url, *self.cors_origins) if o and o != "*"]
        origins.extend(DEFAULT_LOCAL_ORIGINS)
        return tuple(dict.fromkeys(origins))

    @property
    def default_strategy(self) -> Strategy:
        if self.resume_strategy is not None:
            return self.resume_strategy
        return Strategy.OAUTH2 if self.has_oauth2 else Strategy.SMTP

    def _value(self, env_name: str) -> Optional[str]:
        return getattr(self, env_name.lower())

    def missing_for(self, strategy: Strategy) -> list[str]:
        """Names of the variables the strategy needs but that are unset."""
        if strategy is Strategy.SMTP:
            required = SMTP_VARS
        elif strategy is Strategy.OAUTH2:
            required = OAUTH2_VARS
        elif self.has_oauth2:
            required = OAUTH2_VARS
        elif self.has_smtp:
            required = SMTP_VARS
        else:
            return sorted(set(SMTP_VARS) | set(OAUTH2_VARS))
        return [name for name in required if not self._value(name)]

    def transport_for(self, strategy: Strategy) -> TransportConfig:
        """Build the transport configuration a strategy runs on.

        SMTP and OAUTH2 hard-select their protocol. ATTACHMENT and
        SIGNED_LINK prefer OAuth2 and fall back to SMTP.

        Raises:
            ConfigurationMissing: If required credentials are absent.
        """
        if strategy in (Strategy.ATTACHMENT, Strategy.SIGNED_LINK) and not (
            self.has_oauth2 or self.has_smtp
        ):
            raise ConfigurationMissing(
                "No email configuration found. Set up OAuth2 or SMTP credentials.",
                missing=self.missing_for(strategy),
            )
        missing = self.missing_for(strategy)
        if missing:
            raise ConfigurationMissing(missing=missing)

        use_oauth2 = strategy is Strategy.OAUTH2 or (
            strategy is not Strategy.SMTP and self.has_oauth2
        )
        if use_oauth2:
            return TransportConfig(
                protocol=Protocol.OAUTH2,
                host=GMAIL_SMTP_HOST,
                port=GMAIL_SMTP_PORT,
                user=self.from_email,
                client_id=self.google_client_id,
                client_secret=self.google_client_secret,
                refresh_token=self.google_refresh_token,
                sender_address=self.from_email or "",
                sender_name=self.sender_name,
                use_tls=True,
                validate_certs=True,
            )
        return TransportConfig(
            protocol=Protocol.SMTP,
            host=self.smtp_host or "",
            port=self.smtp_port,
            user=self.smtp_user,
            password=self.smtp_pass,
            sender_address=self.from_email or "",
            sender_name=self.sender_name,
            use_tls=self.smtp_tls,
            validate_certs=self.production,
        )

    def describe(self) -> dict[str, object]:
        """Configuration as a dict with secrets masked, for operators."""
        out: dict[str, object] = {}
        for name in self.__dataclass_fields__:
            value = getattr(self, name)
            if name in SECRET_FIELDS and value:
                value = "********"
            elif isinstance(value, Strategy):
                value = value.value
            out[name] = value
        return out


@dataclass
class _Source:
    """Lookup chain: INI ``[mailer]`` section first, then the environment."""

    environ: Mapping[str, str]
    ini: dict[str, str] = field(default_factory=dict)

    def get(self, name: str, default: Optional[str] = None) -> Optional[str]:
        value = self.ini.get(name.lower())
        if value is None or value.strip() == "":
            value = self.environ.get(name)
        if value is None or value.strip() == "":
            return default
        return value.strip()

    def get_int(self, name: str, default: int, *, positive: bool = True) -> int:
        raw = self.get(name)
        if raw is None:
            return default
        try:
            value = int(raw)
        except ValueError as exc:
            raise ConfigError(f"{name} must be an integer, got {raw!r}") from exc
        if positive and value <= 0:
            raise ConfigError(f"{name} must be a positive integer, got {value}")
        return value

    def get_bool(self, name: str, default: bool) -> bool:
        raw = self.get(name)
        if raw is None:
            return default
        return raw.lower() in ("1", "true", "yes", "on")


def _read_ini(config_path: str) -> dict[str, str]:
    if not Path(config_path).exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")
    parser = configparser.ConfigParser(interpolation=None)
    parser.read(config_path)
    if not parser.has_section(CONFIG_SECTION):
        logger.info("No [%s] section in %s, using environment only", CONFIG_SECTION, config_path)
        return {}
    return dict(parser.items(CONFIG_SECTION))


def load_config(
    environ: Optional[Mapping[str, str]] = None,
    config_path: Optional[str] = None,
) -> ServiceConfig:
    """Collect every recognised option into a :class:`ServiceConfig`.

    Args:
        environ: Mapping to read variables from. Defaults to ``os.environ``.
        config_path: Optional INI file. Defaults to ``RESUME_MAILER_CONFIG``.

    Raises:
        ConfigError: If a numeric or enumerated value is malformed.
        FileNotFoundError: If an explicit config file does not exist.
    """
    env = os.environ if environ is None else environ
    config_path = config_path or env.get("RESUME_MAILER_CONFIG")
    src = _Source(env, _read_ini(config_path) if config_path else {})

    strategy_raw = src.get("RESUME_STRATEGY")
    try:
        strategy = Strategy.parse(strategy_raw) if strategy_raw else None
    except ValueError as exc:
        raise ConfigError(str(exc)) from exc

    cors = src.get("CORS_ORIGINS", "") or ""
    environment = (src.get("APP_ENV") or src.get("NODE_ENV") or "development").lower()

    return ServiceConfig(
        smtp_host=src.get("SMTP_HOST"),
        smtp_port=src.get_int("SMTP_PORT", 587),
        smtp_user=src.get("SMTP_USER"),
        smtp_pass=src.get("SMTP_PASS"),
        smtp_tls=src.get_bool("SMTP_TLS", True),
        from_email=src.get("FROM_EMAIL"),
        google_client_id=src.get("GOOGLE_CLIENT_ID"),
        google_client_secret=src.get("GOOGLE_CLIENT_SECRET"),
        google_refresh_token=src.get("GOOGLE_REFRESH_TOKEN"),
        sender_name=src.get("SENDER_NAME", DEFAULT_SENDER_NAME) or DEFAULT_SENDER_NAME,
        email_subject=src.get("EMAIL_SUBJECT", DEFAULT_EMAIL_SUBJECT) or DEFAULT_EMAIL_SUBJECT,
        email_text=src.get("EMAIL_TEXT"),
        email_html=src.get("EMAIL_HTML"),
        frontend_url=src.get("FRONTEND_URL"),
        cors_origins=tuple(o.strip() for o in cors.split(",") if o.strip()),
        resume_public_url=src.get("RESUME_PUBLIC_URL"),
        resume_path=src.get("RESUME_PATH"),
        resume_strategy=strategy,
        download_secret=src.get("DOWNLOAD_SECRET"),
        download_base_url=src.get("DOWNLOAD_BASE_URL"),
        link_expiry_seconds=src.get_int("LINK_EXPIRY_SECONDS", DEFAULT_LINK_EXPIRY_SECONDS),
        aws_access_key_id=src.get("AWS_ACCESS_KEY_ID"),
        aws_secret_access_key=src.get("AWS_SECRET_ACCESS_KEY"),
        aws_region=src.get("AWS_REGION", "us-east-1") or "us-east-1",
        aws_s3_bucket=src.get("AWS_S3_BUCKET"),
        aws_s3_key=src.get("AWS_S3_KEY", "resume.pdf") or "resume.pdf",
        rate_limit_window=src.get_int("RATE_LIMIT_WINDOW_SECONDS", 3600),
        rate_limit_max=src.get_int("RATE_LIMIT_MAX_REQUESTS", 5),
        environment=environment,
        log_level=(src.get("LOG_LEVEL", "INFO") or "INFO").upper(),
        host=src.get("HOST", "0.0.0.0") or "0.0.0.0",
        port=src.get_int("PORT", 8000),
        api_version=src.get("API_VERSION", "1.0.0") or "1.0.0",
    )
