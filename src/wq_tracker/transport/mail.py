from __future__ import annotations

import logging
import smtplib
from email.mime.text import MIMEText

from ..core.errors import NotificationError

logger = logging.getLogger(__name__)


class SMTPNotifier:
    def __init__(
        self,
        host: str,
        port: int = 587,
        username: str = "",
        password: str = "",
        *,
        use_tls: bool = True,
        timeout: float = 30.0,
        dry_run: bool = False,
    ):
        self._host = host
        self._port = port
        self._username = username
        self._password = password
        self._use_tls = use_tls
        self._timeout = timeout
        self._dry_run = dry_run

    def send(self, to: str, sender: str, subject: str, body: str) -> None:
        if self._dry_run:
            logger.info("[DRY_RUN] Would send %r to %s:\n%s", subject, to, body)
            return
        if not to:
            raise NotificationError("No recipient configured")

        msg = MIMEText(body, "plain", "utf-8")
        msg["Subject"] = subject
        msg["From"] = sender
        msg["To"] = to

        try:
            with smtplib.SMTP(self._host, self._port, timeout=self._timeout) as server:
                server.ehlo()
                if self._use_tls:
                    server.starttls()
                    server.ehlo()
                if self._username:
                    server.login(self._username, self._password)
                server.sendmail(sender, [to], msg.as_string())
        except (smtplib.SMTPException, OSError) as exc:
            raise NotificationError(f"Failed to send {subject!r}: {exc}") from exc
        logger.info("Email sent to %s: %s", to, subject)
