"""Outgoing mail for booking inquiries.

The front desk receives one message per inquiry, with ``Reply-To`` set to the
guest so staff can answer straight from their mail client. Drivers are
selected by ``MAIL_DRIVER``; development setups are forced onto the console
driver unless ``DEV_MAIL_BLOCK_EXTERNAL`` is switched off.
"""

from __future__ import annotations

import json
import logging
import re
import smtplib
from dataclasses import dataclass
from email.message import EmailMessage
from email.utils import formataddr
from threading import RLock
from typing import Callable, Protocol

import httpx

from app.core.config import get_settings

logger = logging.getLogger("app.mail")

SENDGRID_URL = "https://api.sendgrid.com/v3/mail/send"
EMAIL_PATTERN = re.compile(r"[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}")


@dataclass(slots=True)
class MailMessage:
    subject: str
    html: str
    text: str
    reply_to: str | None = None


class MailProvider(Protocol):
    name: str

    def send(self, *, to: str, message: MailMessage) -> None: ...


class MailProviderError(RuntimeError):
    """The configured driver could not be built or could not deliver."""


def _mask_part(value: str) -> str:
    return (value[:2] if len(value) > 2 else value[:1]) + "***"


def mask_email(address: str) -> str:
    """``aiko.tanaka@example.com`` -> ``ai***@ex***.com``."""

    local, _, domain = address.partition("@")
    if not local or not domain:
        return "***"
    host, _, tld = domain.rpartition(".")
    if not host or not tld:
        return f"{_mask_part(local)}@***"
    return f"{_mask_part(local)}@{_mask_part(host)}.{tld}"


def mask_addresses(value: str) -> str:
    return EMAIL_PATTERN.sub(lambda match: mask_email(match.group(0)), value)


class ConsoleMailProvider:
    """Logs the message instead of sending it, with guest addresses masked."""

    name = "console"

    def __init__(self) -> None:
        self._sender = get_settings().mail_from_address

    def send(self, *, to: str, message: MailMessage) -> None:
        summary = {
            "driver": self.name,
            "from": mask_email(self._sender),
            "to": mask_email(to),
            "reply_to": mask_email(message.reply_to) if message.reply_to else None,
            "subject": mask_addresses(message.subject),
            "text": mask_addresses(message.text),
        }
        logger.info("mail.outgoing %s", json.dumps(summary, ensure_ascii=False))


class SmtpMailProvider:
    name = "smtp"

    def __init__(self) -> None:
        settings = get_settings()
        if not settings.smtp_host:
            raise MailProviderError("SMTP_HOST must be configured for smtp driver")
        self._host = settings.smtp_host
        self._port = settings.smtp_port
        self._credentials = (
            (settings.smtp_username, settings.smtp_password or "") if settings.smtp_username else None
        )
        self._starttls = settings.smtp_tls
        self._sender = formataddr((settings.mail_from_name, settings.mail_from_address))

    def _compose(self, to: str, message: MailMessage) -> EmailMessage:
        email = EmailMessage()
        email["Subject"] = message.subject
        email["From"] = self._sender
        email["To"] = to
        if message.reply_to:
            email["Reply-To"] = message.reply_to
        email.set_content(message.text)
        email.add_alternative(message.html, subtype="html")
        return email

    def send(self, *, to: str, message: MailMessage) -> None:
        email = self._compose(to, message)
        try:
            with smtplib.SMTP(self._host, self._port, timeout=15) as client:
                if self._starttls:
                    client.starttls()
                if self._credentials:
                    client.login(*self._credentials)
                client.send_message(email)
        except (OSError, smtplib.SMTPException) as exc:  # pragma: no cover - network interaction
            raise MailProviderError("Failed to send message via SMTP") from exc


class SendgridMailProvider:
    name = "sendgrid"

    def __init__(self, client: httpx.Client | None = None) -> None:
        settings = get_settings()
        if not settings.sendgrid_api_key:
            raise MailProviderError("SENDGRID_API_KEY must be configured for sendgrid driver")
        self._headers = {"Authorization": f"Bearer {settings.sendgrid_api_key}"}
        self._sender = {"email": settings.mail_from_address, "name": settings.mail_from_name}
        self._client = client or httpx.Client(timeout=15)

    def _payload(self, to: str, message: MailMessage) -> dict[str, object]:
        payload: dict[str, object] = {
            "personalizations": [{"to": [{"email": to}]}],
            "from": self._sender,
            "subject": message.subject,
            "content": [
                {"type": "text/plain", "value": message.text},
                {"type": "text/html", "value": message.html},
            ],
        }
        if message.reply_to:
            payload["reply_to"] = {"email": message.reply_to}
        return payload

    def send(self, *, to: str, message: MailMessage) -> None:
        try:
            response = self._client.post(
                SENDGRID_URL, json=self._payload(to, message), headers=self._headers
            )
        except httpx.HTTPError as exc:  # pragma: no cover - network interaction
            raise MailProviderError("Failed to call SendGrid API") from exc
        if response.status_code >= 400:
            raise MailProviderError(f"SendGrid API returned {response.status_code}: {response.text}")


_DRIVERS: dict[str, Callable[[], MailProvider]] = {
    "console": ConsoleMailProvider,
    "smtp": SmtpMailProvider,
    "sendgrid": SendgridMailProvider,
}

_lock = RLock()
_cached: MailProvider | None = None
_override: MailProvider | None = None


def _build_provider() -> MailProvider:
    settings = get_settings()
    driver = settings.mail_driver
    if driver != "console" and settings.dev_mail_block_external:
        logger.info("DEV_MAIL_BLOCK_EXTERNAL enabled: using console mail driver")
        driver = "console"
    factory = _DRIVERS.get(driver)
    if factory is None:
        raise MailProviderError(f"Unsupported mail driver: {driver}")
    return factory()


def get_mail_provider() -> MailProvider:
    global _cached
    if _override is not None:
        return _override
    with _lock:
        if _cached is None:
            _cached = _build_provider()
        return _cached


def override_mail_provider(provider: MailProvider | None) -> None:
    global _override
    _override = provider


def reset_mail_provider() -> None:
    global _cached
    with _lock:
        _cached = None


def send_mail(to: str, message: MailMessage) -> None:
    get_mail_provider().send(to=to, message=message)


__all__ = [
    "EMAIL_PATTERN",
    "ConsoleMailProvider",
    "MailMessage",
    "MailProvider",
    "MailProviderError",
    "SendgridMailProvider",
    "SmtpMailProvider",
    "get_mail_provider",
    "mask_addresses",
    "mask_email",
    "override_mail_provider",
    "reset_mail_provider",
    "send_mail",
]
