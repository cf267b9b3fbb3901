from __future__ import annotations

import logging

from fastapi import BackgroundTasks

from app.core.mail import mask_email
from app.schemas.inquiry import InquiryDateRange, InquiryRequest
from app.services.errors import CmsError
from app.services.mail import schedule_inquiry_email
from app.services.metadata_store import MetadataStore
from app.services.room_metadata import load_rooms

logger = logging.getLogger("app.inquiry")


async def resolve_room_label(store: MetadataStore, room_type: str) -> str:
    """``"<name> - <type>"`` for a known room id, otherwise the submitted value."""

    try:
        room = (await load_rooms(store)).get(room_type)
    except CmsError as exc:
        logger.warning("Room lookup for inquiry failed", extra={"error": exc.details or exc.error})
        return room_type
    if not room or not room.get("name"):
        return room_type
    if room.get("type"):
        return f"{room['name']} - {room['type']}"
    return str(room["name"])


def format_date_range(date_range: InquiryDateRange | None) -> str:
    if date_range is None or date_range.from_ is None or date_range.to is None:
        return "Not selected"
    return f"{date_range.from_.date().isoformat()} to {date_range.to.date().isoformat()}"


async def submit_inquiry(
    payload: InquiryRequest, tasks: BackgroundTasks, store: MetadataStore
) -> None:
    room_label = await resolve_room_label(store, payload.room_type)
    schedule_inquiry_email(
        tasks,
        full_name=payload.full_name,
        email=str(payload.email),
        room_label=room_label,
        guests=payload.guests,
        contact_app=payload.contact_app,
        date_range=format_date_range(payload.date_range),
    )
    logger.info(
        "Booking inquiry queued",
        extra={"guest": mask_email(str(payload.email)), "room": room_label},
    )


__all__ = ["format_date_range", "resolve_room_label", "submit_inquiry"]
