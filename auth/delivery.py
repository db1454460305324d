"""
auth/delivery.py -- Side channel that gets one-time codes to the user.

Real email/SMS delivery is not part of this service. CodeDelivery is the seam
a mail or SMS sender plugs into; LoggingCodeDelivery is the default and only
writes a log line, with the code itself at DEBUG so it never shows up in
production INFO logs.

Delivery is fire-and-forget from the engine's point of view: AuthEngine
catches and logs any exception raised by send(), and the registration
request still succeeds.
"""

from __future__ import annotations

import logging
from typing import Protocol

logger = logging.getLogger("questrider.auth.delivery")


def redact_email(email: str) -> str:
    """Redact an email address for logging to avoid PII leakage."""
    if "@" not in email:
        return "redacted"
    local, domain = email.split("@", 1)
    return f"{local[:2]}***@{domain}"


class CodeDelivery(Protocol):
    def send(self, email: str, code: str) -> None: ...


class LoggingCodeDelivery:
    """Dev-mode delivery: log instead of sending."""

    def send(self, email: str, code: str) -> None:
        logger.info("One-time code issued for %s", redact_email(email))
        logger.debug("One-time code for %s: %s", redact_email(email), code)
