"""Logging utilities for the resume mailer.

The actual logging setup (level, handlers, format) is done with
``logging.basicConfig()`` in the entry points to avoid duplicate handlers.

Example:
    Typical usage in a module::

        from resume_mailer.logger import get_logger

        logger = get_logger("Dispatcher")
        logger.info("Resume sent")
"""

import logging


def get_logger(name: str = "ResumeMailer") -> logging.Logger:
    """Retrieve a logger instance.

    Handlers and formatters are not configured here; that responsibility
    lies with the application entry point.

    Args:
        name: The logger name. Defaults to "ResumeMailer".

    Returns:
        A ``logging.Logger`` instance bound to the given name.
    """
    return logging.getLogger(name)


def redact_email(address: str, production: bool = True) -> str:
    """Mask the local part of an address for operator logs.

    Outside production the address is returned unchanged.

    >>> redact_email("jane.doe@example.com")
    'j***@example.com'
    """
    if not production:
        return address
    local, sep, domain = address.partition("@")
    if not sep:
        return "***"
    return f"{local[:1]}***@{domain}"
