from functools import lru_cache

import json

from typing import Annotated, List, Literal, Sequence

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode


DEFAULT_SUPPORTED_LANGUAGES = [
    "en",
    "zh",
    "zh-TW",
    "ko",
    "th",
    "es",
    "fr",
    "id",
    "ar",
    "de",
    "vi",
    "my",
]


class Settings(BaseSettings):
    app_env: str = Field("development", alias="APP_ENV")
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    log_json: bool = Field(True, alias="LOG_JSON")
    sentry_dsn: str | None = Field(None, alias="SENTRY_DSN")
    sentry_traces_sample_rate: float = Field(0.1, alias="SENTRY_TRACES_SAMPLE_RATE")
    cors_allowed_origins: Annotated[List[str], NoDecode] = Field(
        default_factory=list, alias="CORS_ALLOWED_ORIGINS"
    )
    gzip_min_length: int = Field(1024, alias="GZIP_MIN_LENGTH")

    redis_url: str = Field("redis://cache:6379/0", alias="REDIS_URL")

    s3_endpoint: str | None = Field(default=None, alias="S3_ENDPOINT")
    s3_bucket: str | None = Field(default=None, alias="S3_BUCKET")
    s3_access_key: str | None = Field(default=None, alias="S3_ACCESS_KEY")
    s3_secret_key: str | None = Field(default=None, alias="S3_SECRET_KEY")
    s3_region: str | None = Field(default=None, alias="S3_REGION")
    s3_use_path_style: bool = Field(False, alias="S3_USE_PATH_STYLE")
    s3_public_base_url: str | None = Field(default=None, alias="S3_PUBLIC_BASE_URL")
    storage_timeout_seconds: float = Field(30.0, alias="STORAGE_TIMEOUT_SECONDS")

    swap_settle_timeout_seconds: float = Field(5.0, alias="SWAP_SETTLE_TIMEOUT_SECONDS")
    swap_settle_initial_delay_seconds: float = Field(
        0.25, alias="SWAP_SETTLE_INITIAL_DELAY_SECONDS"
    )
    swap_settle_max_delay_seconds: float = Field(
        2.0, alias="SWAP_SETTLE_MAX_DELAY_SECONDS"
    )

    admin_user: str | None = Field(default=None, alias="ADMIN_USER")
    admin_pass: str | None = Field(default=None, alias="ADMIN_PASS")

    mail_driver: Literal["console", "smtp", "sendgrid"] = Field(
        "console", alias="MAIL_DRIVER"
    )
    mail_from_name: str = Field("Pica Inn", alias="MAIL_FROM_NAME")
    mail_from_address: str = Field(
        "no-reply@picainn.local", alias="MAIL_FROM_ADDRESS"
    )
    smtp_host: str | None = Field(default=None, alias="SMTP_HOST")
    smtp_port: int = Field(587, alias="SMTP_PORT")
    smtp_username: str | None = Field(default=None, alias="SMTP_USERNAME")
    smtp_password: str | None = Field(default=None, alias="SMTP_PASSWORD")
    smtp_tls: bool = Field(True, alias="SMTP_TLS")
    sendgrid_api_key: str | None = Field(default=None, alias="SENDGRID_API_KEY")
    dev_mail_block_external: bool = Field(True, alias="DEV_MAIL_BLOCK_EXTERNAL")
    contact_email: str = Field("info@picainn.local", alias="CONTACT_EMAIL")
    inquiry_rate_limit: str = Field("5/minute", alias="INQUIRY_RATE_LIMIT")

    translation_api_url: str = Field(
        "https://api.mymemory.translated.net/get", alias="TRANSLATION_API_URL"
    )
    translation_source_language: str = Field("en", alias="TRANSLATION_SOURCE_LANGUAGE")
    translation_timeout_seconds: float = Field(15.0, alias="TRANSLATION_TIMEOUT_SECONDS")
    supported_languages: Annotated[List[str], NoDecode] = Field(
        default_factory=lambda: list(DEFAULT_SUPPORTED_LANGUAGES),
        alias="SUPPORTED_LANGUAGES",
    )

    legacy_rooms_dir: str = Field("public/images/rooms", alias="LEGACY_ROOMS_DIR")
    hero_fallback_url: str = Field(
        "/images/hero/hero-background.jpg", alias="HERO_FALLBACK_URL"
    )
    room_placeholder_url: str = Field(
        "/images/placeholder-room.jpg", alias="ROOM_PLACEHOLDER_URL"
    )

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
    }

    @field_validator("cors_allowed_origins", "supported_languages", mode="before")
    @classmethod
    def _split_list(cls, value: Sequence[str] | str | None) -> Sequence[str]:
        if value is None:
            return []
        if isinstance(value, str):
            cleaned = value.strip()
            if not cleaned:
                return []

            if cleaned.startswith("["):
                try:
                    parsed = json.loads(cleaned)
                except json.JSONDecodeError as exc:
                    raise ValueError("Value must be valid JSON or CSV") from exc

                if isinstance(parsed, list):
                    return [str(item).strip() for item in parsed if str(item).strip()]
                if isinstance(parsed, str):
                    parsed = parsed.strip()
                    return [parsed] if parsed else []
                raise ValueError("Value must decode to a list or string")

            return [item.strip() for item in cleaned.split(",") if item.strip()]

        return [str(item).strip() for item in value if str(item).strip()]

    @field_validator("sentry_traces_sample_rate")
    @classmethod
    def _clamp_sample_rate(cls, value: float) -> float:
        return max(0.0, min(1.0, value))

    @field_validator(
        "s3_endpoint",
        "s3_bucket",
        "s3_access_key",
        "s3_secret_key",
        "s3_region",
        "s3_public_base_url",
        "admin_user",
        "admin_pass",
        "smtp_host",
        "smtp_username",
        "smtp_password",
        "sendgrid_api_key",
        mode="before",
    )
    @classmethod
    def _empty_to_none(cls, value: str | None) -> str | None:
        if value is None:
            return None
        if isinstance(value, str):
            stripped = value.strip()
            return stripped or None
        return value

    @field_validator("s3_public_base_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return value.rstrip("/") or None

    @field_validator(
        "swap_settle_timeout_seconds",
        "swap_settle_initial_delay_seconds",
        "swap_settle_max_delay_seconds",
    )
    @classmethod
    def _non_negative(cls, value: float) -> float:
        return max(0.0, value)

    @field_validator("mail_driver", mode="before")
    @classmethod
    def _validate_mail_driver(cls, value: str | None) -> str:
        if value is None:
            return "console"
        normalized = value.strip().lower()
        allowed = {"console", "smtp", "sendgrid"}
        if normalized not in allowed:
            raise ValueError(
                "MAIL_DRIVER must be one of 'console', 'smtp' or 'sendgrid'"
            )
        return normalized

    @field_validator("mail_from_name", "mail_from_address", mode="before")
    @classmethod
    def _strip_mail_strings(cls, value: str | None) -> str | None:
        if value is None:
            return value
        stripped = value.strip()
        if not stripped:
            raise ValueError("Mail sender fields cannot be empty")
        return stripped

    @field_validator("smtp_port", mode="before")
    @classmethod
    def _coerce_smtp_port(cls, value: int | str | None) -> int | str:
        if value is None:
            return 587
        if isinstance(value, str):
            stripped = value.strip()
            if not stripped:
                return 587
            return stripped
        return value


@lru_cache
def get_settings() -> Settings:
    return Settings()  # type: ignore[call-arg]
