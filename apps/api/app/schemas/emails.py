from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from app.models.enums import ClassificationMatchType, ClassificationState, MessageDirection


class RecipientIn(BaseModel):
    address: str = Field(min_length=3, max_length=320)
    name: str | None = Field(default=None, max_length=300)


class RecipientOut(BaseModel):
    address: str
    name: str | None = None


class EmailIngestRequest(BaseModel):
    from_address: str = Field(min_length=3, max_length=320)
    from_name: str | None = Field(default=None, max_length=300)
    subject: str = Field(default="", max_length=2000)
    body: str = Field(default="", max_length=500_000)
    body_is_html: bool = False
    to: list[RecipientIn] = Field(default_factory=list)
    cc: list[RecipientIn] = Field(default_factory=list)
    direction: MessageDirection = MessageDirection.inbound
    conversation_id: str | None = Field(default=None, max_length=255)
    external_id: str | None = Field(default=None, max_length=255)
    received_at: datetime | None = None


class EmailSummaryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    subject: str
    from_address: str
    from_name: str | None
    direction: MessageDirection
    received_at: datetime
    body_preview: str
    classification_state: ClassificationState
    classification_confidence: float | None
    match_type: ClassificationMatchType | None
    case_id: UUID | None
    client_id: UUID | None


class EmailOut(EmailSummaryOut):
    conversation_id: str | None
    external_id: str | None
    body_content: str
    to_recipients: list[RecipientOut]
    cc_recipients: list[RecipientOut]
    classification_reason: str | None
    classified_at: datetime | None
    classified_by: str | None


class CaseSuggestionOut(BaseModel):
    case_id: UUID
    case_number: str
    title: str
    score: int
    signals: list[str]


class ClassificationOut(BaseModel):
    state: ClassificationState
    confidence: float
    reason: str
    case_id: UUID | None
    client_id: UUID | None
    match_type: ClassificationMatchType | None
    suggestions: list[CaseSuggestionOut]


class EmailWithClassificationOut(BaseModel):
    email: EmailOut
    classification: ClassificationOut


class EmailAssignRequest(BaseModel):
    case_id: UUID


class EmailCaseLinkOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    email_id: UUID
    case_id: UUID
    confidence: float
    match_type: ClassificationMatchType
    is_primary: bool
    linked_by: str
    linked_at: datetime
