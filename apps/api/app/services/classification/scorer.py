"""Email-to-case classification.

Signals are tried strongest first and the first decisive one wins:

1. thread continuity (another message in the conversation is already filed),
2. a reference number that belongs to exactly one open case,
3. an institutional sender (court, notary, bailiff) with no reference match,
4. a sender/recipient address known to exactly one open case, then a
   company domain known to exactly one open case,
5. weighted scoring across the remaining candidate cases.

Only Active and PendingApproval cases are candidates. Outbound mail is matched
on its recipients instead of the sender (the sender is the firm itself).
"""

from __future__ import annotations

import enum
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.config import Settings, get_settings
from app.models.base import as_utc
from app.models.enums import (
    CaseStatus,
    ClassificationMatchType,
    ClassificationState,
    MessageDirection,
)
from app.models.mail import Email, GlobalEmailSource
from app.models.practice import Case, CaseActor, Client, ClientContact
from app.services.classification.references import (
    FREE_MAIL_DOMAINS,
    address_domain,
    extract_reference_numbers,
    normalize_address,
    normalize_reference,
)

OPEN_CASE_STATUSES = (CaseStatus.active, CaseStatus.pending_approval)
MAX_SUGGESTIONS = 3


class Signal(enum.StrEnum):
    thread = "thread"
    reference = "reference"
    contact = "contact"
    domain = "domain"
    keyword = "keyword"
    recent_activity = "recent_activity"


# Domain, keyword and recency wins fold into Actor for storage.
_SIGNAL_MATCH_TYPES = {
    Signal.thread: ClassificationMatchType.thread_continuity,
    Signal.reference: ClassificationMatchType.reference_number,
    Signal.contact: ClassificationMatchType.actor,
    Signal.domain: ClassificationMatchType.actor,
    Signal.keyword: ClassificationMatchType.actor,
    Signal.recent_activity: ClassificationMatchType.actor,
}


@dataclass(frozen=True)
class ClassificationConfig:
    min_score: int = 70
    min_gap: int = 20
    confidence_threshold: float = 0.7
    single_case_confidence: float = 0.9
    domain_confidence: float = 0.8
    recent_activity_days: int = 7
    weight_reference: int = 50
    weight_keyword_subject: int = 30
    weight_keyword_body: int = 20
    weight_recent_activity: int = 20
    weight_contact: int = 10

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> ClassificationConfig:
        s = settings or get_settings()
        return cls(
            min_score=s.CLASSIFICATION_MIN_SCORE,
            min_gap=s.CLASSIFICATION_MIN_GAP,
            confidence_threshold=s.CLASSIFICATION_CONFIDENCE_THRESHOLD,
            single_case_confidence=s.CLASSIFICATION_SINGLE_CASE_CONFIDENCE,
            domain_confidence=s.CLASSIFICATION_DOMAIN_CONFIDENCE,
            recent_activity_days=s.CLASSIFICATION_RECENT_ACTIVITY_DAYS,
            weight_reference=s.WEIGHT_REFERENCE,
            weight_keyword_subject=s.WEIGHT_KEYWORD_SUBJECT,
            weight_keyword_body=s.WEIGHT_KEYWORD_BODY,
            weight_recent_activity=s.WEIGHT_RECENT_ACTIVITY,
            weight_contact=s.WEIGHT_CONTACT,
        )


@dataclass(frozen=True)
class CaseScore:
    case_id: UUID
    case_number: str
    title: str
    score: int
    signals: tuple[Signal, ...]

    @property
    def top_signal(self) -> Signal | None:
        return self.signals[0] if self.signals else None


@dataclass(frozen=True)
class ClassificationResult:
    state: ClassificationState
    confidence: float
    reason: str
    case_id: UUID | None = None
    client_id: UUID | None = None
    signal: Signal | None = None
    suggestions: tuple[CaseScore, ...] = ()
    failed: bool = False

    @property
    def match_type(self) -> ClassificationMatchType | None:
        if self.signal is None or self.case_id is None:
            return None
        return _SIGNAL_MATCH_TYPES[self.signal]


@dataclass
class FirmIndex:
    """Open cases of one firm plus the address lookups built from them."""

    firm_id: UUID
    cases: dict[UUID, Case] = field(default_factory=dict)
    case_refs: dict[UUID, set[str]] = field(default_factory=dict)
    address_cases: dict[str, set[UUID]] = field(default_factory=lambda: defaultdict(set))
    domain_cases: dict[str, set[UUID]] = field(default_factory=lambda: defaultdict(set))
    address_clients: dict[str, set[UUID]] = field(default_factory=lambda: defaultdict(set))
    source_addresses: set[str] = field(default_factory=set)
    source_domains: set[str] = field(default_factory=set)


def build_firm_index(*, session: Session, firm_id: UUID) -> FirmIndex:
    index = FirmIndex(firm_id=firm_id)

    cases = (
        session.execute(
            select(Case).where(Case.firm_id == firm_id, Case.status.in_(OPEN_CASE_STATUSES))
        )
        .scalars()
        .all()
    )
    cases_by_client: dict[UUID, list[UUID]] = defaultdict(list)
    for case in cases:
        index.cases[case.id] = case
        refs = {normalize_reference(r) for r in (case.reference_numbers or []) if r}
        refs.add(normalize_reference(case.case_number))
        index.case_refs[case.id] = {r for r in refs if r}
        if case.client_id is not None:
            cases_by_client[case.client_id].append(case.id)
        if case.company_domain:
            index.domain_cases[case.company_domain.strip().lower()].add(case.id)

    if index.cases:
        actors = (
            session.execute(select(CaseActor).where(CaseActor.case_id.in_(list(index.cases))))
            .scalars()
            .all()
        )
        for actor in actors:
            if actor.email:
                index.address_cases[normalize_address(actor.email)].add(actor.case_id)
            for domain in actor.email_domains or []:
                index.domain_cases[domain.strip().lower()].add(actor.case_id)

    client_rows = session.execute(
        select(Client.id, Client.email).where(Client.firm_id == firm_id, Client.email.is_not(None))
    ).all()
    contact_rows = session.execute(
        select(ClientContact.client_id, ClientContact.email).where(
            ClientContact.firm_id == firm_id, ClientContact.email.is_not(None)
        )
    ).all()
    for client_id, email in [*client_rows, *contact_rows]:
        addr = normalize_address(email)
        if not addr:
            continue
        index.address_clients[addr].add(client_id)
        for case_id in cases_by_client.get(client_id, []):
            index.address_cases[addr].add(case_id)

    sources = (
        session.execute(select(GlobalEmailSource).where(GlobalEmailSource.firm_id == firm_id))
        .scalars()
        .all()
    )
    for src in sources:
        index.source_addresses.update(normalize_address(e) for e in src.emails or [])
        index.source_domains.update(d.strip().lower() for d in src.domains or [])

    # Free-mail domains never identify a case.
    for domain in FREE_MAIL_DOMAINS:
        index.domain_cases.pop(domain, None)

    return index


def recipient_addresses(email: Email) -> list[str]:
    out: list[str] = []
    for entry in [*(email.to_recipients or []), *(email.cc_recipients or [])]:
        raw = entry.get("address") if isinstance(entry, dict) else entry
        addr = normalize_address(raw)
        if addr and addr not in out:
            out.append(addr)
    return out


def counterpart_addresses(email: Email) -> list[str]:
    if email.direction == MessageDirection.outbound:
        return recipient_addresses(email)
    addr = normalize_address(email.from_address)
    return [addr] if addr else []


def classify_email(
    *,
    session: Session,
    email: Email,
    config: ClassificationConfig | None = None,
    index: FirmIndex | None = None,
) -> ClassificationResult:
    cfg = config or ClassificationConfig.from_settings()
    idx = index or build_firm_index(session=session, firm_id=email.firm_id)

    thread = _match_thread(session=session, email=email)
    if thread is not None:
        return thread

    text = f"{email.subject or ''}\n{email.body_content or email.body_preview or ''}"
    refs = extract_reference_numbers(text)
    ref_hits = _cases_by_reference(idx, refs=refs, text=text)
    if len(ref_hits) == 1:
        case_id = next(iter(ref_hits))
        return ClassificationResult(
            state=ClassificationState.classified,
            confidence=1.0,
            reason="reference number matches a single case",
            case_id=case_id,
            signal=Signal.reference,
        )

    addresses = counterpart_addresses(email)
    if not ref_hits and _is_institutional(idx, addresses):
        return ClassificationResult(
            state=ClassificationState.court_unassigned,
            confidence=0.0,
            reason="institutional sender without a matching reference",
        )

    contact_hits: set[UUID] = set()
    for addr in addresses:
        contact_hits |= idx.address_cases.get(addr, set())

    if ref_hits:
        candidates = set(ref_hits)
    else:
        candidates = set(contact_hits)
        if len(candidates) == 1:
            return ClassificationResult(
                state=ClassificationState.classified,
                confidence=cfg.single_case_confidence,
                reason="address known to a single open case",
                case_id=next(iter(candidates)),
                signal=Signal.contact,
            )
        if not candidates:
            domain_hits: set[UUID] = set()
            for addr in addresses:
                domain = address_domain(addr)
                if domain:
                    domain_hits |= idx.domain_cases.get(domain, set())
            if len(domain_hits) == 1:
                return ClassificationResult(
                    state=ClassificationState.classified,
                    confidence=cfg.domain_confidence,
                    reason="sender domain known to a single open case",
                    case_id=next(iter(domain_hits)),
                    signal=Signal.domain,
                )
            candidates = domain_hits

    if not candidates:
        client_ids: set[UUID] = set()
        for addr in addresses:
            client_ids |= idx.address_clients.get(addr, set())
        if len(client_ids) == 1:
            return ClassificationResult(
                state=ClassificationState.client_inbox,
                confidence=0.5,
                reason="known client without an open matching case",
                client_id=next(iter(client_ids)),
            )
        return ClassificationResult(
            state=ClassificationState.uncertain, confidence=0.0, reason="no matching case"
        )

    scores = sorted(
        (
            _score_case(
                idx.cases[case_id],
                email=email,
                refs=refs,
                case_refs=idx.case_refs.get(case_id, set()),
                is_contact=case_id in contact_hits,
                config=cfg,
            )
            for case_id in candidates
        ),
        key=lambda s: (-s.score, s.case_number),
    )
    top = scores[0]
    runner_up = scores[1].score if len(scores) > 1 else 0
    confidence = min(top.score / 100.0, 1.0)
    suggestions = tuple(scores[:MAX_SUGGESTIONS])

    if (
        top.score >= cfg.min_score
        and top.score - runner_up >= cfg.min_gap
        and confidence >= cfg.confidence_threshold
    ):
        return ClassificationResult(
            state=ClassificationState.classified,
            confidence=confidence,
            reason=f"scored {top.score} ahead of {runner_up}",
            case_id=top.case_id,
            signal=top.top_signal or Signal.contact,
            suggestions=suggestions,
        )

    reason = "ambiguous between cases" if top.score >= cfg.min_score else "low confidence"
    client_ids = {idx.cases[s.case_id].client_id for s in scores}
    shared_client = next(iter(client_ids)) if len(client_ids) == 1 else None
    if shared_client is not None:
        return ClassificationResult(
            state=ClassificationState.client_inbox,
            confidence=confidence,
            reason=reason,
            client_id=shared_client,
            suggestions=suggestions,
        )
    return ClassificationResult(
        state=ClassificationState.uncertain,
        confidence=confidence,
        reason=reason,
        suggestions=suggestions,
    )


def _match_thread(*, session: Session, email: Email) -> ClassificationResult | None:
    if not email.conversation_id:
        return None

    stmt = select(Email).where(
        Email.firm_id == email.firm_id,
        Email.conversation_id == email.conversation_id,
        Email.classification_state.in_(
            [ClassificationState.classified, ClassificationState.client_inbox]
        ),
    )
    if email.id is not None:
        stmt = stmt.where(Email.id != email.id)
    siblings = session.execute(stmt.order_by(Email.received_at.desc())).scalars().all()

    for sibling in siblings:
        if sibling.case_id is not None:
            return ClassificationResult(
                state=ClassificationState.classified,
                confidence=1.0,
                reason="conversation already filed to this case",
                case_id=sibling.case_id,
                signal=Signal.thread,
            )
    for sibling in siblings:
        if sibling.client_id is not None:
            return ClassificationResult(
                state=ClassificationState.client_inbox,
                confidence=1.0,
                reason="conversation already in this client's inbox",
                client_id=sibling.client_id,
            )
    return None


def _cases_by_reference(index: FirmIndex, *, refs: list[str], text: str) -> set[UUID]:
    hits: set[UUID] = set()
    wanted = set(refs)
    lowered = text.lower()
    for case_id, case_refs in index.case_refs.items():
        if wanted & case_refs:
            hits.add(case_id)
            continue
        case_number = index.cases[case_id].case_number.strip().lower()
        if case_number and case_number in lowered:
            hits.add(case_id)
    return hits


def _is_institutional(index: FirmIndex, addresses: list[str]) -> bool:
    for addr in addresses:
        if addr in index.source_addresses:
            return True
        domain = address_domain(addr)
        if domain and domain in index.source_domains:
            return True
    return False


def _score_case(
    case: Case,
    *,
    email: Email,
    refs: list[str],
    case_refs: set[str],
    is_contact: bool,
    config: ClassificationConfig,
) -> CaseScore:
    contributions: list[tuple[int, Signal]] = []

    if is_contact:
        contributions.append((config.weight_contact, Signal.contact))

    matched_refs = [r for r in refs if r in case_refs]
    if matched_refs:
        contributions.append((config.weight_reference * len(matched_refs), Signal.reference))

    subject = (email.subject or "").lower()
    body = (email.body_content or email.body_preview or "").lower()
    terms = [t.strip().lower() for t in [*(case.keywords or []), *(case.subject_patterns or [])]]
    terms = [t for t in terms if t]
    if any(t in subject for t in terms):
        contributions.append((config.weight_keyword_subject, Signal.keyword))
    elif any(t in body for t in (k.strip().lower() for k in case.keywords or []) if t):
        contributions.append((config.weight_keyword_body, Signal.keyword))

    if _recently_active(case, received_at=email.received_at, days=config.recent_activity_days):
        contributions.append((config.weight_recent_activity, Signal.recent_activity))

    contributions.sort(key=lambda c: -c[0])
    return CaseScore(
        case_id=case.id,
        case_number=case.case_number,
        title=case.title,
        score=sum(points for points, _ in contributions),
        signals=tuple(signal for _, signal in contributions),
    )


def _recently_active(case: Case, *, received_at: datetime | None, days: int) -> bool:
    last = as_utc(case.last_activity_at)
    received = as_utc(received_at)
    if last is None or received is None:
        return False
    return timedelta(0) <= received - last <= timedelta(days=days)
