from __future__ import annotations

from uuid import UUID

from pydantic import BaseModel, Field


class ParseTaskRequest(BaseModel):
    text: str = Field(min_length=1, max_length=5000)
    case_id: UUID | None = None


class DraftDocumentRequest(BaseModel):
    document_type: str = Field(min_length=1, max_length=100)
    instructions: str = Field(min_length=1, max_length=20_000)
    case_id: UUID | None = None


class SuggestClausesRequest(BaseModel):
    document_text: str = Field(min_length=1, max_length=200_000)
    cursor_context: str | None = Field(default=None, max_length=5000)


class CompareVersionsRequest(BaseModel):
    previous_text: str = Field(max_length=200_000)
    current_text: str = Field(max_length=200_000)


class ResearchRequest(BaseModel):
    query: str = Field(min_length=1, max_length=2000)
    jurisdiction: str | None = Field(default=None, max_length=100)
    max_results: int = Field(default=10, ge=1, le=50)
