"""
SMS backends.

A backend has one method, send(to, body), and raises on failure. Real
carriers plug in through settings.SMS_BACKEND; the default only logs, the
same way Django's console email backend prints.
"""

import logging

logger = logging.getLogger(__name__)


class ConsoleSmsBackend:
    def send(self, to: str, body: str) -> None:
        logger.info("SMS to %s:\n%s", to, body)


class LocmemSmsBackend:
    """Keeps messages in memory (LocmemSmsBackend.outbox), for tests."""

    outbox = []

    def send(self, to: str, body: str) -> None:
        LocmemSmsBackend.outbox.append((to, body))
