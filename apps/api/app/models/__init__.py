from __future__ import annotations

from app.models.audit import AuditEvent  # noqa: F401
from app.models.auth import AuthSession  # noqa: F401
from app.models.base import Base as Base  # noqa: F401
from app.models.enums import (  # noqa: F401
    CaseStatus,
    CaseTeamRole,
    ClassificationMatchType,
    ClassificationState,
    ClientType,
    ContactKind,
    EmailSourceCategory,
    FirmRole,
    JobStatus,
    JobType,
    MessageDirection,
)
from app.models.identity import Firm, Membership, User  # noqa: F401
from app.models.jobs import BgJob  # noqa: F401
from app.models.mail import Email, EmailCaseLink, GlobalEmailSource  # noqa: F401
from app.models.practice import (  # noqa: F401
    Case,
    CaseActor,
    CaseNote,
    CaseTeamMember,
    Client,
    ClientContact,
    ClientTeamMember,
)
