from __future__ import annotations

from datetime import datetime

from pydantic import EmailStr, Field, field_validator, model_validator

from app.schemas.base import CamelModel


class InquiryDateRange(CamelModel):
    from_: datetime | None = Field(default=None, alias="from")
    to: datetime | None = None

    @model_validator(mode="after")
    def _ordered(self) -> "InquiryDateRange":
        if self.from_ and self.to and self.to.date() < self.from_.date():
            raise ValueError("Check-out date must be after check-in date")
        return self


class InquiryRequest(CamelModel):
    full_name: str = Field(..., min_length=1, max_length=200)
    email: EmailStr
    guests: int = Field(1, ge=1, le=20)
    room_type: str = Field(..., min_length=1, max_length=100)
    contact_app: str = Field("Email", max_length=50)
    date_range: InquiryDateRange | None = None

    @field_validator("full_name", "room_type", "contact_app", mode="before")
    @classmethod
    def _strip(cls, value: object) -> object:
        return value.strip() if isinstance(value, str) else value


class InquiryResponse(CamelModel):
    success: bool = True
    message: str


__all__ = ["InquiryDateRange", "InquiryRequest", "InquiryResponse"]
