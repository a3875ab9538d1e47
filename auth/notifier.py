"""
auth/notifier.py -- Outbound account notifications.

Delivery belongs to an external mail provider. This module only defines the
hand-off point: account flows render the link and call the notifier. The
default LoggingNotifier writes the link to the log, which is what local
development and the test suite need; production wires a provider-backed
implementation into app.state.notifier.
"""

from __future__ import annotations

import logging
from typing import Protocol

logger = logging.getLogger("bonusauth.notify")


class Notifier(Protocol):
    def send_verification(self, email: str, name: str, link: str) -> None: ...

    def send_password_reset(self, email: str, link: str) -> None: ...


class LoggingNotifier:
    """Notifier that records links in the application log instead of sending mail."""

    def send_verification(self, email: str, name: str, link: str) -> None:
        logger.info("Verification link for %s <%s>: %s", name, email, link)

    def send_password_reset(self, email: str, link: str) -> None:
        logger.info("Password reset link for %s: %s", email, link)
