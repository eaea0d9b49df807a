# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Time-limited download links sent instead of an attachment.

Three modes, chosen from the configuration:

- Object storage: an S3 presigned ``GetObject`` URL (``aioboto3``), when
  ``AWS_ACCESS_KEY_ID`` and ``AWS_S3_BUCKET`` are set.
- Signed: ``HMAC-SHA256(DOWNLOAD_SECRET, "{email}:{expires}")`` carried as
  query parameters, when ``DOWNLOAD_SECRET`` is set.
- Token: a reversible base64 token with no integrity protection. Only
  allowed outside production.

Example:
    Generating and checking a signed link::

        signer = DownloadLinkSigner.from_config(config)
        url = await signer.generate("visitor@example.com")
        assert signer.verify("visitor@example.com", expires, sig)
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import time
from collections.abc import Callable
from typing import Optional
from urllib.parse import urlencode

import aioboto3
import botocore.exceptions

from .errors import ConfigurationMissing, ResourceUnavailable
from .logger import get_logger

DOWNLOAD_PATH = "/api/download-resume"
DEFAULT_SIGNED_BASE_URL = "https://your-domain.com"
DEFAULT_TOKEN_BASE_URL = "http://localhost:5000"


def sign(secret: str, email: str, expires: int) -> str:
    return hmac.new(secret.encode(), f"{email}:{expires}".encode(), hashlib.sha256).hexdigest()


class DownloadLinkSigner:
    """Builds download links for the link strategy.

    Attributes:
        expiry_seconds: Link lifetime in seconds.
        mode: ``"s3"``, ``"signed"`` or ``"token"``.
    """

    def __init__(
        self,
        *,
        secret: Optional[str] = None,
        base_url: Optional[str] = None,
        expiry_seconds: int = 604800,
        production: bool = False,
        aws_access_key_id: Optional[str] = None,
        aws_secret_access_key: Optional[str] = None,
        aws_region: str = "us-east-1",
        aws_bucket: Optional[str] = None,
        aws_key: str = "resume.pdf",
        clock: Callable[[], float] = time.time,
    ):
        self.secret = secret
        self.base_url = base_url.rstrip("/") if base_url else None
        self.expiry_seconds = expiry_seconds
        self.production = production
        self.aws_access_key_id = aws_access_key_id
        self.aws_secret_access_key = aws_secret_access_key
        self.aws_region = aws_region
        self.aws_bucket = aws_bucket
        self.aws_key = aws_key
        self._clock = clock
        self.logger = get_logger("DownloadLinkSigner")

    @classmethod
    def from_config(cls, config) -> "DownloadLinkSigner":
        return cls(
            secret=config.download_secret,
            base_url=config.download_base_url,
            expiry_seconds=config.link_expiry_seconds,
            production=config.production,
            aws_access_key_id=config.aws_access_key_id,
            aws_secret_access_key=config.aws_secret_access_key,
            aws_region=config.aws_region,
            aws_bucket=config.aws_s3_bucket,
            aws_key=config.aws_s3_key,
        )

    @property
    def mode(self) -> str:
        if self.aws_access_key_id and self.aws_bucket:
            return "s3"
        if self.secret:
            return "signed"
        return "token"

    @property
    def expiry_hours(self) -> float:
        return self.expiry_seconds / 3600

    async def generate(self, email: str) -> str:
        """Return a download URL for ``email``.

        Raises:
            ConfigurationMissing: In production without a secret or storage credentials.
            ResourceUnavailable: If the storage service refuses to presign.
        """
        mode = self.mode
        if mode == "s3":
            return await self.presigned_url()
        if mode == "signed":
            return self.signed_url(email)
        if self.production:
            raise ConfigurationMissing(
                "Download links need DOWNLOAD_SECRET or AWS credentials in production",
                missing=["DOWNLOAD_SECRET"],
            )
        self.logger.warning("Using unsigned development download token; set DOWNLOAD_SECRET")
        return self.token_url(email)

    async def presigned_url(self) -> str:
        session = aioboto3.Session(
            aws_access_key_id=self.aws_access_key_id,
            aws_secret_access_key=self.aws_secret_access_key,
            region_name=self.aws_region,
        )
        try:
            async with session.client("s3") as s3:
                return await s3.generate_presigned_url(
                    "get_object",
                    Params={"Bucket": self.aws_bucket, "Key": self.aws_key},
                    ExpiresIn=self.expiry_seconds,
                )
        except botocore.exceptions.BotoCoreError as exc:
            raise ResourceUnavailable(f"Failed to generate download link: {exc}") from exc

    def signed_url(self, email: str) -> str:
        expires = int(self._clock()) + self.expiry_seconds
        params = urlencode({"email": email, "expires": str(expires), "sig": sign(self.secret or "", email, expires)})
        return f"{self.base_url or DEFAULT_SIGNED_BASE_URL}{DOWNLOAD_PATH}?{params}"

    def token_url(self, email: str) -> str:
        token = base64.b64encode(f"{email}:{int(self._clock() * 1000)}".encode()).decode()
        return f"{self.base_url or DEFAULT_TOKEN_BASE_URL}{DOWNLOAD_PATH}?{urlencode({'token': token})}"

    def verify(self, email: str, expires: int | str, sig: str, now: Optional[float] = None) -> bool:
        """Check a signed link's parameters.

        Returns False for a wrong signature, a malformed expiry, a missing
        secret, or when ``now`` is past the expiry.
        """
        if not self.secret:
            return False
        try:
            expires_at = int(expires)
        except (TypeError, ValueError):
            return False
        current = self._clock() if now is None else now
        if current > expires_at:
            return False
        return hmac.compare_digest(sign(self.secret, email, expires_at), sig or "")
