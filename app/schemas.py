"""Pydantic schemas for request/response validation in the URL shortener.

This module defines Pydantic models for API input validation and output serialization,
ensuring type safety and automatic OpenAPI documentation generation.

Schema Hierarchy
=================
::
    URLCreate (Input)
    ├─ url: str (validated absolute URL)
    ├─ custom_code: str | None (3-20 alphanumeric)
    └─ expires_at: datetime | None (UTC)

    URLResponse (Output)
    ├─ short_code: str
    ├─ original_url: str
    ├─ short_url: str (computed)
    ├─ created_at: datetime
    └─ expires_at: datetime | None

    URLStats (Output)
    ├─ short_code / original_url / short_url
    ├─ created_at / expires_at
    ├─ total_visits: int (full count)
    └─ visits: list[VisitRecord] (newest first, capped)

    HealthResponse (Output)
    ├─ status: str
    └─ database: str

How to Use
===========
**Step 1 — Input validation**::
    @router.post("/api/shorten")
    async def shorten_url(payload: URLCreate):
        # payload is already validated
        return await service.create_short_url(payload)

**Step 2 — Response serialization**::
    mapping = await service.create_short_url(payload)
    return URLResponse.from_mapping(mapping, settings.BASE_URL)

Key Behaviours
===============
- URL validation uses the validators library for RFC compliance.
- Custom codes must be alphanumeric and 3-20 characters long.
- Custom codes may not shadow built-in routes (health, metrics, docs, ...).
- Naive expiration timestamps are interpreted as UTC.
- Models are configured for ORM attribute mapping.

Classes:
    URLCreate:  Input schema for URL shortening requests.
    URLResponse:  Output schema for created URLs.
    VisitRecord:  One visit in a stats response.
    URLStats:  Output schema for URL statistics.
    HealthResponse:  Output schema for health checks.
"""

import datetime

import validators
from pydantic import BaseModel, Field, field_validator

from app.enums import HealthStatus
from app.models import UrlMapping, as_utc
from app.service import is_reserved_code

__all__ = [
    "URLCreate",
    "URLResponse",
    "URLStats",
    "VisitRecord",
    "HealthResponse",
]

CUSTOM_CODE_MIN_LENGTH = 3
CUSTOM_CODE_MAX_LENGTH = 20


class URLCreate(BaseModel):
    url: str = Field(..., description="Absolute target URL, e.g. 'https://example.com'")
    custom_code: str | None = Field(None, description="Optional alphanumeric code, 3-20 characters")
    expires_at: datetime.datetime | None = Field(None, description="Optional expiration instant")

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        if not validators.url(v):
            raise ValueError("Invalid URL provided")
        return v

    @field_validator("custom_code")
    @classmethod
    def validate_custom_code(cls, v: str | None) -> str | None:
        if v is not None:
            if len(v) < CUSTOM_CODE_MIN_LENGTH or len(v) > CUSTOM_CODE_MAX_LENGTH:
                raise ValueError("Custom code must be between 3 and 20 characters")
            if not (v.isascii() and v.isalnum()):
                raise ValueError("Custom code must be alphanumeric")
            if is_reserved_code(v):
                raise ValueError(f"Custom code '{v}' is reserved")
        return v

    @field_validator("expires_at")
    @classmethod
    def normalize_expires_at(cls, v: datetime.datetime | None) -> datetime.datetime | None:
        return as_utc(v)


class URLResponse(BaseModel):
    short_code: str
    original_url: str
    short_url: str
    created_at: datetime.datetime
    expires_at: datetime.datetime | None = None

    @classmethod
    def from_mapping(cls, mapping: UrlMapping, base_url: str) -> "URLResponse":
        return cls(
            short_code=mapping.code,
            original_url=mapping.original_url,
            short_url=f"{base_url}/{mapping.code}",
            created_at=as_utc(mapping.created_at),
            expires_at=as_utc(mapping.expires_at),
        )


class VisitRecord(BaseModel):
    ip_address: str | None = None
    user_agent: str | None = None
    visited_at: datetime.datetime

    model_config = {"from_attributes": True}

    @field_validator("visited_at")
    @classmethod
    def normalize_visited_at(cls, v: datetime.datetime) -> datetime.datetime:
        return as_utc(v)


class URLStats(BaseModel):
    short_code: str
    original_url: str
    short_url: str
    created_at: datetime.datetime
    expires_at: datetime.datetime | None = None
    total_visits: int
    visits: list[VisitRecord]


class HealthResponse(BaseModel):
    status: HealthStatus
    database: HealthStatus
