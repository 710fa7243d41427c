"""Plain-text email notifications for batch failures."""

from __future__ import annotations

import asyncio
import logging
import smtplib
from datetime import datetime, timezone
from email.message import EmailMessage
from typing import Protocol

from series_sentinel.core.config import NotifyConfig
from series_sentinel.core.models import BatchResult

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    async def send(self, to: str, subject: str, body: str) -> None: ...


class SmtpNotifier:
    """Sends one plain-text message per call over SMTP.

    smtplib is blocking, so delivery runs in a worker thread. Delivery
    errors (``OSError``, ``smtplib.SMTPException``) propagate to the caller.
    """

    def __init__(self, config: NotifyConfig) -> None:
        self._host = config.smtp_host
        self._port = config.smtp_port
        self._from = config.from_address

    def _build_message(self, to: str, subject: str, body: str) -> EmailMessage:
        msg = EmailMessage()
        msg["Subject"] = subject
        msg["From"] = self._from
        msg["To"] = to
        msg.set_content(body)
        return msg

    def _send_sync(self, msg: EmailMessage) -> None:
        with smtplib.SMTP(self._host, self._port, timeout=30) as server:
            server.send_message(msg)

    async def send(self, to: str, subject: str, body: str) -> None:
        msg = self._build_message(to, subject, body)
        await asyncio.to_thread(self._send_sync, msg)
        logger.info("Sent notification %r to %s", subject, to)


def format_failure_summary(batch: BatchResult, now: datetime | None = None) -> str:
    """Summary body: totals, then one ``- slug: message`` line per failure."""
    lines = [
        "Series Sentinel Weekly Summary",
        "",
        f"Total Series: {batch.total}",
        f"Successful Updates: {batch.success}",
        f"Failed Updates: {batch.failed}",
        "",
        "Failed Series:",
    ]
    lines.extend(f"- {r.slug}: {r.message}" for r in batch.failures)
    stamp = (now or datetime.now(timezone.utc)).strftime("%Y-%m-%d %H:%M:%S UTC")
    lines.extend(["", "Check the audit log for more details.", "", f"Time: {stamp}"])
    return "\n".join(lines) + "\n"
