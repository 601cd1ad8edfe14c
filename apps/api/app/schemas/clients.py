from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from app.models.enums import ClientType


class PersonIn(BaseModel):
    id: UUID | None = None
    name: str = Field(min_length=1, max_length=200)
    role: str | None = Field(default=None, max_length=200)
    email: str | None = Field(default=None, max_length=320)
    phone: str | None = Field(default=None, max_length=64)


class PersonOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    role: str | None
    email: str | None
    phone: str | None


class ContactInfo(BaseModel):
    email: str | None = None
    phone: str | None = None


class ClientCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=300)
    client_type: ClientType = ClientType.company
    contact_info: ContactInfo = Field(default_factory=ContactInfo)
    address: str | None = Field(default=None, max_length=1000)
    company_type: str | None = Field(default=None, max_length=64)
    cui: str | None = Field(default=None, max_length=64)
    registration_number: str | None = Field(default=None, max_length=64)
    administrators: list[PersonIn] = Field(default_factory=list)
    contacts: list[PersonIn] = Field(default_factory=list)


class ClientUpdateRequest(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=300)
    client_type: ClientType | None = None
    contact_info: ContactInfo | None = None
    address: str | None = Field(default=None, max_length=1000)
    company_type: str | None = Field(default=None, max_length=64)
    cui: str | None = Field(default=None, max_length=64)
    registration_number: str | None = Field(default=None, max_length=64)
    administrators: list[PersonIn] | None = None
    contacts: list[PersonIn] | None = None


class ClientSummaryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    client_type: ClientType
    email: str | None
    phone: str | None
    created_at: datetime


class ClientOut(BaseModel):
    id: UUID
    name: str
    client_type: ClientType
    contact_info: ContactInfo
    address: str | None
    company_type: str | None
    cui: str | None
    registration_number: str | None
    administrators: list[PersonOut]
    contacts: list[PersonOut]
    created_at: datetime
    updated_at: datetime


class TeamAssignRequest(BaseModel):
    user_id: UUID


class ClientTeamMemberOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    client_id: UUID
    user_id: UUID
    created_at: datetime
