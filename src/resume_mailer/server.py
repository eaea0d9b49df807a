# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""ASGI application entry point for uvicorn.

Builds the configuration from the environment, wires the dispatcher, rate
limiter and metrics, and exposes ``app``.

Usage:
    uvicorn resume_mailer.server:app --host 0.0.0.0 --port 8000
"""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from .api import create_app
from .config import ServiceConfig, load_config
from .dispatcher import ResumeDispatcher
from .prometheus import ResumeMetrics
from .rate_limit import RateLimiter

_logger = logging.getLogger(__name__)


def build_app(config: Optional[ServiceConfig] = None) -> FastAPI:
    """Wire every component for ``config`` and return the application.

    The rate limiter's background sweep runs for the lifetime of the app.
    """
    config = config or load_config()
    metrics = ResumeMetrics()
    limiter = RateLimiter(
        config.rate_limit_window,
        config.rate_limit_max,
        on_change=metrics.set_tracked_clients,
    )
    dispatcher = ResumeDispatcher(config, metrics=metrics)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Start and stop the rate limiter sweep."""
        _logger.info(
            "Starting resume mailer (%s, default strategy %s)",
            config.environment, config.default_strategy.value,
        )
        limiter.start()
        try:
            yield
        finally:
            await limiter.stop()
            _logger.info("Resume mailer stopped")

    return create_app(dispatcher, limiter, config, metrics=metrics, lifespan=lifespan)


app = build_app()
