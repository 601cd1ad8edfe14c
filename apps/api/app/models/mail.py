from __future__ import annotations

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import (
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
    false,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base, JSONType, enum_type, utcnow
from app.models.enums import (
    ClassificationMatchType,
    ClassificationState,
    EmailSourceCategory,
    MessageDirection,
)


class Email(Base):
    __tablename__ = "emails"
    __table_args__ = (
        Index("ix_emails_firm_state", "firm_id", "classification_state"),
        Index("ix_emails_firm_conversation", "firm_id", "conversation_id"),
        Index("ix_emails_firm_from", "firm_id", "from_address"),
        Index("ix_emails_case", "case_id"),
    )

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    firm_id: Mapped[UUID] = mapped_column(ForeignKey("firms.id", ondelete="CASCADE"), nullable=False)
    owner_user_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    external_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    conversation_id: Mapped[str | None] = mapped_column(String(255), nullable=True)

    subject: Mapped[str] = mapped_column(Text, nullable=False, default="")
    body_preview: Mapped[str] = mapped_column(Text, nullable=False, default="")
    body_content: Mapped[str] = mapped_column(Text, nullable=False, default="")
    direction: Mapped[MessageDirection] = mapped_column(
        enum_type(MessageDirection, name="message_direction"),
        nullable=False,
        default=MessageDirection.inbound,
    )

    # Addresses are stored lower-cased; recipients are [{"name": ..., "address": ...}].
    from_address: Mapped[str] = mapped_column(String(320), nullable=False)
    from_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    to_recipients: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    cc_recipients: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    received_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now()
    )

    classification_state: Mapped[ClassificationState] = mapped_column(
        enum_type(ClassificationState, name="classification_state"),
        nullable=False,
        default=ClassificationState.pending,
    )
    classification_confidence: Mapped[float | None] = mapped_column(Float, nullable=True)
    match_type: Mapped[ClassificationMatchType | None] = mapped_column(
        enum_type(ClassificationMatchType, name="classification_match_type"), nullable=True
    )
    classification_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    case_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("cases.id", ondelete="SET NULL"), nullable=True
    )
    client_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("clients.id", ondelete="SET NULL"), nullable=True
    )
    classified_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    classified_by: Mapped[str | None] = mapped_column(String(255), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now()
    )


class EmailCaseLink(Base):
    __tablename__ = "email_case_links"
    __table_args__ = (UniqueConstraint("email_id", "case_id", name="uq_email_case_links_email_case"),)

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    firm_id: Mapped[UUID] = mapped_column(ForeignKey("firms.id", ondelete="CASCADE"), nullable=False)
    email_id: Mapped[UUID] = mapped_column(ForeignKey("emails.id", ondelete="CASCADE"), nullable=False)
    case_id: Mapped[UUID] = mapped_column(ForeignKey("cases.id", ondelete="CASCADE"), nullable=False)
    confidence: Mapped[float] = mapped_column(Float, nullable=False)
    match_type: Mapped[ClassificationMatchType] = mapped_column(
        enum_type(ClassificationMatchType, name="classification_match_type"), nullable=False
    )
    is_primary: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=false()
    )
    linked_by: Mapped[str] = mapped_column(String(255), nullable=False)
    linked_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now()
    )


class GlobalEmailSource(Base):
    """Institutional sender (court, notary, bailiff) registered by a firm."""

    __tablename__ = "global_email_sources"
    __table_args__ = (UniqueConstraint("firm_id", "name", name="uq_email_sources_firm_name"),)

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    firm_id: Mapped[UUID] = mapped_column(ForeignKey("firms.id", ondelete="CASCADE"), nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[EmailSourceCategory] = mapped_column(
        enum_type(EmailSourceCategory, name="email_source_category"),
        nullable=False,
        default=EmailSourceCategory.court,
    )
    domains: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    emails: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    classification_hint: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now()
    )
