# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Locate the resume file to attach.

Sources, in order of preference:

- ``RESUME_PUBLIC_URL`` (only for strategies that allow it), downloaded with
  ``aiohttp``
- ``RESUME_PATH``
- ``./assets/resume.pdf`` and ``./backend/assets/resume.pdf`` under the
  working directory
- ``assets/resume.pdf`` inside the installed package
- ``/tmp/resume.pdf`` (serverless bundles)

The first existing file wins.

Example:
    Resolving the attachment::

        locator = ResumeLocator.from_config(config)
        attachment = await locator.resolve(allow_public_url=True)
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Optional, Sequence

import aiohttp

from .errors import ResourceUnavailable
from .logger import get_logger
from .models import Attachment

RESUME_FILENAME = "resume.pdf"
RESUME_MIME_TYPE = "application/pdf"
SIZE_WARNING_BYTES = 10 * 1024 * 1024
DOWNLOAD_TIMEOUT = 20.0

PACKAGE_ASSETS = Path(__file__).resolve().parent / "assets"


def default_candidates(resume_path: Optional[str] = None) -> list[Path]:
    """Ordered local paths where the resume may live."""
    candidates: list[Path] = []
    if resume_path:
        candidates.append(Path(resume_path))
    cwd = Path.cwd()
    candidates.extend([
        cwd / "assets" / RESUME_FILENAME,
        cwd / "backend" / "assets" / RESUME_FILENAME,
        PACKAGE_ASSETS / RESUME_FILENAME,
        Path("/tmp") / RESUME_FILENAME,
    ])
    return candidates


class ResumeLocator:
    """Resolves the resume attachment from a URL or local candidates.

    Attributes:
        candidates: Local paths tried in order.
        public_url: Optional URL serving the resume.
    """

    def __init__(self, candidates: Sequence[Path], public_url: Optional[str] = None):
        self.candidates = list(candidates)
        self.public_url = public_url
        self.logger = get_logger("ResumeLocator")

    @classmethod
    def from_config(cls, config) -> "ResumeLocator":
        return cls(default_candidates(config.resume_path), config.resume_public_url)

    def find_local(self) -> Optional[Path]:
        for path in self.candidates:
            if path.is_file():
                return path
        return None

    async def _download(self, url: str) -> bytes:
        timeout = aiohttp.ClientTimeout(total=DOWNLOAD_TIMEOUT)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            async with session.get(url) as response:
                response.raise_for_status()
                return await response.read()

    async def resolve(self, *, allow_public_url: bool = False, warn_size: bool = False) -> Attachment:
        """Load the resume.

        Args:
            allow_public_url: Prefer ``public_url`` when configured.
            warn_size: Log a warning when the file exceeds 10 MB.

        Raises:
            ResourceUnavailable: If no source yields the file.
        """
        if allow_public_url and self.public_url:
            self.logger.info("Using RESUME_PUBLIC_URL for attachment")
            try:
                content = await self._download(self.public_url)
            except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
                raise ResourceUnavailable(f"Resume download from public URL failed: {exc}") from exc
            return self._checked(Attachment(RESUME_FILENAME, content, RESUME_MIME_TYPE, self.public_url), warn_size)

        path = self.find_local()
        if path is None:
            raise ResourceUnavailable(
                "Resume file not available. Set RESUME_PUBLIC_URL or RESUME_PATH, "
                f"or package {RESUME_FILENAME} with the service."
            )
        self.logger.info("Resume file found at %s", path)
        try:
            content = await asyncio.to_thread(path.read_bytes)
        except OSError as exc:
            raise ResourceUnavailable(f"Resume file at {path} is not readable: {exc}") from exc
        return self._checked(Attachment(RESUME_FILENAME, content, RESUME_MIME_TYPE, str(path)), warn_size)

    def _checked(self, attachment: Attachment, warn_size: bool) -> Attachment:
        if warn_size and attachment.size > SIZE_WARNING_BYTES:
            self.logger.warning(
                "Resume file is %.2fMB. Large attachments may be rejected by email providers.",
                attachment.size / (1024 * 1024),
            )
        return attachment
