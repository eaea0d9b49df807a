"""Recipient address normalisation and validation.

Four checks run in order and the first failure is reported:

1. Required: empty after trimming.
2. Format: ``local@domain.tld`` shape, no whitespace, exactly one ``@``
   on each side of the split.
3. Length: at most 254 characters (RFC 5321 practical ceiling).
4. Characters: none of ``< > " ' % ; ( ) & +``.

This is a shape check, not RFC 5322 validation.
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Any

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
FORBIDDEN_CHARS = re.compile(r"[<>\"'%;()&+]")
MAX_EMAIL_LENGTH = 254


class ValidationKind(str, Enum):
    EMAIL_REQUIRED = "EmailRequired"
    INVALID_FORMAT = "InvalidFormat"
    TOO_LONG = "TooLong"
    INVALID_CHARACTERS = "InvalidCharacters"


# (error, message) pairs returned to the client
USER_MESSAGES = {
    ValidationKind.EMAIL_REQUIRED: ("Email is required", "Please provide an email address"),
    ValidationKind.INVALID_FORMAT: ("Invalid email format", "Please provide a valid email address"),
    ValidationKind.TOO_LONG: ("Invalid email", "Email address is too long"),
    ValidationKind.INVALID_CHARACTERS: ("Invalid email format", "Email contains invalid characters"),
}


class EmailValidationError(ValueError):
    """Raised when a recipient address fails one of the checks."""

    def __init__(self, kind: ValidationKind):
        self.kind = kind
        self.error, self.user_message = USER_MESSAGES[kind]
        super().__init__(f"{kind.value}: {self.user_message}")


def normalize_email(raw: Any) -> str:
    if not isinstance(raw, str):
        return ""
    return raw.strip().lower()


def validate_email(raw: Any) -> str:
    """Normalise ``raw`` and run the checks.

    Returns:
        The trimmed, lowercased address.

    Raises:
        EmailValidationError: On the first failed check.
    """
    email = normalize_email(raw)
    if not email:
        raise EmailValidationError(ValidationKind.EMAIL_REQUIRED)
    if not EMAIL_PATTERN.match(email):
        raise EmailValidationError(ValidationKind.INVALID_FORMAT)
    if len(email) > MAX_EMAIL_LENGTH:
        raise EmailValidationError(ValidationKind.TOO_LONG)
    if FORBIDDEN_CHARS.search(email):
        raise EmailValidationError(ValidationKind.INVALID_CHARACTERS)
    return email
