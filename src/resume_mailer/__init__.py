"""Rate-limited resume delivery service for a portfolio site.

This package provides a small FastAPI backend that emails a resume to
visitors who ask for it. Features include:

- Per-client fixed-window rate limiting
- Email address normalisation and validation
- Delivery over SMTP or Gmail OAuth2 (XOAUTH2)
- Resume as a PDF attachment or as a signed, time-limited download link
- Prometheus metrics and a small operator CLI

Example:
    Building the application by hand::

        from resume_mailer.api import create_app
        from resume_mailer.config import load_config
        from resume_mailer.dispatcher import ResumeDispatcher
        from resume_mailer.rate_limit import RateLimiter

        config = load_config()
        limiter = RateLimiter(config.rate_limit_window, config.rate_limit_max)
        app = create_app(ResumeDispatcher(config), limiter, config)
"""

__version__ = "1.0.0"
