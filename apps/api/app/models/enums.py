from __future__ import annotations

import enum


class FirmRole(enum.StrEnum):
    partner = "Partner"
    associate = "Associate"
    business_owner = "BusinessOwner"
    associate_jr = "AssociateJr"
    paralegal = "Paralegal"


class CaseStatus(enum.StrEnum):
    active = "Active"
    pending_approval = "PendingApproval"
    on_hold = "OnHold"
    closed = "Closed"
    archived = "Archived"


class CaseTeamRole(enum.StrEnum):
    lead = "Lead"
    support = "Support"
    observer = "Observer"


class ClientType(enum.StrEnum):
    individual = "Individual"
    company = "Company"


class MessageDirection(enum.StrEnum):
    inbound = "inbound"
    outbound = "outbound"


class ClassificationState(enum.StrEnum):
    pending = "Pending"
    uncertain = "Uncertain"
    classified = "Classified"
    client_inbox = "ClientInbox"
    court_unassigned = "CourtUnassigned"


class ClassificationMatchType(enum.StrEnum):
    thread_continuity = "ThreadContinuity"
    reference_number = "ReferenceNumber"
    actor = "Actor"
    manual = "Manual"


class EmailSourceCategory(enum.StrEnum):
    court = "Court"
    notary = "Notary"
    bailiff = "Bailiff"
    authority = "Authority"
    other = "Other"


class JobStatus(enum.StrEnum):
    queued = "queued"
    running = "running"
    succeeded = "succeeded"
    failed = "failed"
    cancelled = "cancelled"


class JobType(enum.StrEnum):
    reclassify_addresses = "reclassify_addresses"
    route_source_emails = "route_source_emails"
    apply_case_reference = "apply_case_reference"
    propagate_manual_assignment = "propagate_manual_assignment"


class ContactKind(enum.StrEnum):
    administrator = "administrator"
    contact = "contact"
