from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from app.models.enums import EmailSourceCategory


class EmailSourceCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=300)
    category: EmailSourceCategory = EmailSourceCategory.court
    domains: list[str] = Field(default_factory=list)
    emails: list[str] = Field(default_factory=list)
    classification_hint: str | None = Field(default=None, max_length=2000)


class EmailSourceUpdateRequest(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=300)
    category: EmailSourceCategory | None = None
    domains: list[str] | None = None
    emails: list[str] | None = None
    classification_hint: str | None = Field(default=None, max_length=2000)


class EmailSourceOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    category: EmailSourceCategory
    domains: list[str]
    emails: list[str]
    classification_hint: str | None
    created_at: datetime
    updated_at: datetime
