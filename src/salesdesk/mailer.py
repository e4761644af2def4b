"""Outbound email delivery for exported reports.

The SMTP channel is built once at start-up from the ``[Mail]`` section of
``config.ini`` and handed to the runtime context, so callers and tests can
swap in any object exposing ``send_attachment_email``.
"""

from __future__ import annotations

import os
import smtplib
from email.mime.application import MIMEApplication
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional

from . import log
from .constants import EXCEL_MIME_TYPE, SMTP_PASSWORD_ENV
from .data_manager import MailSettings
from .errors import DeliveryFailedError

SMTP_TIMEOUT_SECONDS = 30


class SmtpDeliveryChannel:
    """Send report attachments through a single SMTP relay."""

    def __init__(self, settings: MailSettings, *, password: Optional[str] = None) -> None:
        self.settings = settings
        self._password = password
        self.validate()

    @classmethod
    def from_settings(cls, settings: MailSettings) -> "SmtpDeliveryChannel":
        """Build a channel reading the SMTP password from the environment."""

        return cls(settings, password=os.environ.get(SMTP_PASSWORD_ENV) or None)

    def validate(self) -> None:
        """Reject incomplete mail settings before any report is generated."""

        missing = [
            name
            for name, value in (
                ("Host", self.settings.host),
                ("Username", self.settings.username),
                ("Sender", self.settings.sender),
            )
            if not value
        ]
        if missing:
            raise ValueError(f"Mail configuration missing: {', '.join(missing)}")
        if not 0 < self.settings.port < 65536:
            raise ValueError(f"Mail configuration has invalid port: {self.settings.port}")

    def __repr__(self) -> str:
        return (
            f"SmtpDeliveryChannel(host={self.settings.host!r}, port={self.settings.port}, "
            f"sender={self.settings.sender!r})"
        )

    def build_message(
        self,
        to_address: str,
        subject: str,
        body: str,
        attachment: bytes,
        attachment_filename: str,
        *,
        html_body: Optional[str] = None,
        attachment_mime_type: str = EXCEL_MIME_TYPE,
    ) -> MIMEMultipart:
        msg = MIMEMultipart("mixed")
        msg["From"] = self.settings.sender
        msg["To"] = to_address
        msg["Subject"] = subject

        if html_body is None:
            msg.attach(MIMEText(body, "plain"))
        else:
            alternative = MIMEMultipart("alternative")
            alternative.attach(MIMEText(body, "plain"))
            alternative.attach(MIMEText(html_body, "html"))
            msg.attach(alternative)

        _, _, subtype = attachment_mime_type.partition("/")
        part = MIMEApplication(attachment, _subtype=subtype or "octet-stream")
        part.add_header("Content-Disposition", "attachment", filename=attachment_filename)
        msg.attach(part)
        return msg

    def send_attachment_email(
        self,
        to_address: str,
        subject: str,
        body: str,
        attachment: bytes,
        attachment_filename: str,
        *,
        html_body: Optional[str] = None,
    ) -> None:
        """Send ``attachment`` to ``to_address``.

        Raises:
            DeliveryFailedError: If connecting, authenticating, or sending
                fails. The message carries the SMTP error text only.
        """

        msg = self.build_message(
            to_address,
            subject,
            body,
            attachment,
            attachment_filename,
            html_body=html_body,
        )
        try:
            with smtplib.SMTP(self.settings.host, self.settings.port, timeout=SMTP_TIMEOUT_SECONDS) as server:
                if self.settings.use_tls:
                    server.starttls()
                if self._password:
                    server.login(self.settings.username, self._password)
                server.send_message(msg)
        except (smtplib.SMTPException, OSError) as exc:
            log.error("Failed to send report email to '%s': %s", to_address, exc)
            raise DeliveryFailedError(f"Failed to send report email: {exc}") from exc

        log.info("Sent '%s' to '%s'", attachment_filename, to_address)
