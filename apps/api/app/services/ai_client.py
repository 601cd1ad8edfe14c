"""Thin proxy to the external AI service.

Every operation is a JSON POST to a fixed path. Transport errors, non-2xx
responses and non-JSON bodies all surface to API callers as a single 503
"AI service unavailable"; the underlying cause is logged, not returned.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from uuid import UUID

import httpx
from fastapi import HTTPException, status

from app.core.logging import log_json
from app.core.metrics import observe_ai_request

logger = logging.getLogger("legal.api")

PARSE_TASK_PATH = "/api/tasks/parse"
DRAFT_DOCUMENT_PATH = "/api/documents/draft"
SUGGEST_CLAUSES_PATH = "/api/clauses/suggest"
COMPARE_VERSIONS_PATH = "/api/documents/semantic-diff"
RESEARCH_JURISPRUDENCE_PATH = "/api/research/jurisprudence"


def _unavailable() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="AI service unavailable"
    )


@dataclass(frozen=True)
class AIServiceClient:
    http: httpx.Client
    firm_id: UUID
    user_id: UUID

    def _post(self, operation: str, path: str, body: dict) -> dict:
        payload = {**body, "firm_id": str(self.firm_id), "user_id": str(self.user_id)}
        try:
            res = self.http.post(path, json=payload)
            res.raise_for_status()
            data = res.json()
        except (httpx.HTTPError, ValueError) as e:
            observe_ai_request(operation=operation, outcome="error")
            log_json(
                logger,
                logging.WARNING,
                "ai.request.failed",
                operation=operation,
                path=path,
                error=repr(e),
            )
            raise _unavailable() from e
        if not isinstance(data, dict):
            observe_ai_request(operation=operation, outcome="error")
            raise _unavailable()

        observe_ai_request(operation=operation, outcome="ok")
        return data

    def parse_task(self, *, text: str, case_id: UUID | None = None) -> dict:
        return self._post(
            "parse_task",
            PARSE_TASK_PATH,
            {"text": text, "case_id": str(case_id) if case_id else None},
        )

    def draft_document(
        self,
        *,
        document_type: str,
        instructions: str,
        case_context: dict | None = None,
    ) -> dict:
        return self._post(
            "draft_document",
            DRAFT_DOCUMENT_PATH,
            {
                "document_type": document_type,
                "instructions": instructions,
                "case_context": case_context or {},
            },
        )

    def suggest_clauses(self, *, document_text: str, cursor_context: str | None = None) -> dict:
        return self._post(
            "suggest_clauses",
            SUGGEST_CLAUSES_PATH,
            {"document_text": document_text, "cursor_context": cursor_context},
        )

    def compare_versions(self, *, previous_text: str, current_text: str) -> dict:
        return self._post(
            "compare_versions",
            COMPARE_VERSIONS_PATH,
            {"previous_text": previous_text, "current_text": current_text},
        )

    def research_jurisprudence(
        self, *, query: str, jurisdiction: str | None = None, max_results: int = 10
    ) -> dict:
        return self._post(
            "research_jurisprudence",
            RESEARCH_JURISPRUDENCE_PATH,
            {"query": query, "jurisdiction": jurisdiction, "max_results": max_results},
        )


def case_context(case) -> dict:
    """Fields of a case worth sending along with a drafting request."""
    return {
        "case_id": str(case.id),
        "case_number": case.case_number,
        "title": case.title,
        "status": case.status.value,
        "reference_numbers": list(case.reference_numbers or []),
    }
