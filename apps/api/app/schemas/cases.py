from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from app.models.enums import CaseStatus, CaseTeamRole


class CaseCreateRequest(BaseModel):
    title: str = Field(min_length=1, max_length=500)
    client_id: UUID | None = None
    case_number: str | None = Field(default=None, max_length=64)
    description: str | None = Field(default=None, max_length=10_000)
    status: CaseStatus = CaseStatus.active
    reference_numbers: list[str] = Field(default_factory=list)
    keywords: list[str] = Field(default_factory=list)
    subject_patterns: list[str] = Field(default_factory=list)
    company_domain: str | None = Field(default=None, max_length=255)


class CaseUpdateRequest(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=500)
    client_id: UUID | None = None
    description: str | None = Field(default=None, max_length=10_000)
    status: CaseStatus | None = None
    reference_numbers: list[str] | None = None
    keywords: list[str] | None = None
    subject_patterns: list[str] | None = None
    company_domain: str | None = Field(default=None, max_length=255)


class CaseOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    client_id: UUID | None
    case_number: str
    title: str
    description: str | None
    status: CaseStatus
    reference_numbers: list[str]
    keywords: list[str]
    subject_patterns: list[str]
    company_domain: str | None
    last_activity_at: datetime | None
    created_at: datetime
    updated_at: datetime


class CaseTeamAssignRequest(BaseModel):
    user_id: UUID
    role: CaseTeamRole = CaseTeamRole.support


class CaseTeamMemberOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    case_id: UUID
    user_id: UUID
    role: CaseTeamRole
    assigned_at: datetime


class CaseActorCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    role: str | None = Field(default=None, max_length=200)
    organization: str | None = Field(default=None, max_length=300)
    email: str | None = Field(default=None, max_length=320)
    email_domains: list[str] = Field(default_factory=list)


class CaseActorOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    case_id: UUID
    name: str
    role: str | None
    organization: str | None
    email: str | None
    email_domains: list[str]


class CaseNoteCreateRequest(BaseModel):
    body: str = Field(min_length=1, max_length=20_000)
    is_private: bool = False


class CaseNoteOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    case_id: UUID
    author_user_id: UUID | None
    body: str
    body_html: str
    is_private: bool
    created_at: datetime
