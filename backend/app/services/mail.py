from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal, Mapping

from fastapi import BackgroundTasks
from jinja2 import Environment, FileSystemLoader, select_autoescape

from app.core.config import get_settings
from app.core.mail import MailMessage, MailProviderError, send_mail

logger = logging.getLogger("app.mail")

MailTemplateName = Literal["booking_inquiry"]


@dataclass(frozen=True)
class MailTemplateDefinition:
    subject: str
    html_template: str
    text_template: str
    sample_context: Mapping[str, Any]


def _templates_path() -> Path:
    return Path(__file__).resolve().parent.parent / "templates" / "mail"


@lru_cache
def _get_environment() -> Environment:
    loader = FileSystemLoader(str(_templates_path()))
    return Environment(loader=loader, autoescape=select_autoescape(["html", "xml"]))


MAIL_TEMPLATES: dict[MailTemplateName, MailTemplateDefinition] = {
    "booking_inquiry": MailTemplateDefinition(
        subject="New Booking Inquiry from {{ full_name }}",
        html_template="booking_inquiry.html",
        text_template="booking_inquiry.txt",
        sample_context={
            "full_name": "Aiko Tanaka",
            "email": "aiko@example.com",
            "room_label": "Sakura Room - Japanese Style",
            "guests": 2,
            "contact_app": "WhatsApp",
            "date_range": "2025-04-01 to 2025-04-05",
        },
    ),
}


def render_mail_template(template: MailTemplateName, context: Mapping[str, Any]) -> MailMessage:
    definition = MAIL_TEMPLATES[template]
    env = _get_environment()
    merged_context = {"brand_name": get_settings().mail_from_name, **context}
    return MailMessage(
        subject=env.from_string(definition.subject).render(merged_context),
        html=env.get_template(definition.html_template).render(merged_context),
        text=env.get_template(definition.text_template).render(merged_context),
    )


def deliver(recipient: str, message: MailMessage) -> None:
    """Background task body: a failed delivery is logged, the guest was already answered."""

    try:
        send_mail(recipient, message)
    except MailProviderError:
        logger.exception("Mail delivery failed", extra={"subject": message.subject})


def schedule_inquiry_email(
    tasks: BackgroundTasks,
    *,
    full_name: str,
    email: str,
    room_label: str,
    guests: int,
    contact_app: str,
    date_range: str,
) -> MailMessage:
    context = {
        "full_name": full_name,
        "email": email,
        "room_label": room_label,
        "guests": guests,
        "contact_app": contact_app,
        "date_range": date_range,
    }
    message = render_mail_template("booking_inquiry", context)
    message.reply_to = email
    tasks.add_task(deliver, get_settings().contact_email, message)
    return message


__all__ = [
    "MAIL_TEMPLATES",
    "MailTemplateDefinition",
    "MailTemplateName",
    "deliver",
    "render_mail_template",
    "schedule_inquiry_email",
]
