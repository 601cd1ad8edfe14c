from __future__ import annotations

from uuid import UUID

from sqlalchemy import func, select, text
from sqlalchemy.orm import Session

from app.models.enums import ClassificationState, JobStatus
from app.models.jobs import BgJob
from app.models.mail import Email, EmailCaseLink
from app.services.classification import scorer
from app.services.reclassification import (
    CLIENT_CONTACT_MATCH,
    reclassify_for_client_addresses,
    select_candidate_emails,
)
from app.worker.runner import WorkerConfig, run_until_idle

WORKER = WorkerConfig(worker_id="pytest-worker")


def _ingest(user, sender: str, subject: str = "Hello", **extra) -> dict:
    res = user.post("/emails", json={"from_address": sender, "subject": subject, **extra})
    assert res.status_code == 201, res.text
    return res.json()["email"]


def _links(db_session: Session, email_id: str) -> list[EmailCaseLink]:
    db_session.expire_all()
    return list(
        db_session.execute(select(EmailCaseLink).where(EmailCaseLink.email_id == UUID(email_id)))
        .scalars()
        .all()
    )


def test_single_active_case_files_prior_email_after_contact_change(login, db_session) -> None:
    partner = login("Partner")
    client_id = partner.post("/clients", json={"name": "Solo SRL"}).json()["id"]
    case_id = partner.post("/cases", json={"title": "Solo v. X", "client_id": client_id}).json()["id"]

    first = _ingest(partner, "ceo@solo.test")
    second = _ingest(partner, "CEO@solo.test", subject="Follow-up")
    assert first["classification_state"] == "Uncertain"
    assert second["classification_state"] == "Uncertain"

    res = partner.patch(f"/clients/{client_id}", json={"contact_info": {"email": "ceo@solo.test"}})
    assert res.status_code == 200
    run_until_idle(config=WORKER)

    for email_id in (first["id"], second["id"]):
        email = partner.get(f"/emails/{email_id}").json()
        assert email["classification_state"] == "Classified"
        assert email["classification_confidence"] == 0.95
        assert email["case_id"] == case_id
        assert email["client_id"] is None
        assert email["match_type"] == "Actor"
        assert email["classified_by"] == CLIENT_CONTACT_MATCH

        links = _links(db_session, email_id)
        assert [(str(link.case_id), link.is_primary) for link in links] == [(case_id, True)]


def test_multiple_active_cases_never_leave_email_pending(login, db_session) -> None:
    partner = login("Partner")
    client_id = partner.post("/clients", json={"name": "Multi SA"}).json()["id"]
    a = partner.post("/cases", json={"title": "Lease dispute", "client_id": client_id}).json()
    partner.post("/cases", json={"title": "Employment claim", "client_id": client_id})

    quoted, general = (
        _ingest(partner, "legal@multi.test", subject="Lease renewal", body="Dosar 77/4/2026"),
        _ingest(partner, "legal@multi.test", subject="General question"),
    )
    assert quoted["classification_state"] == "Uncertain"
    assert general["classification_state"] == "Uncertain"

    # The reference is only known to the case after the mail arrived.
    partner.patch(f"/cases/{a['id']}", json={"reference_numbers": ["77/4/2026"]})
    res = partner.patch(
        f"/clients/{client_id}",
        json={"contacts": [{"name": "Legal Dept", "email": "legal@multi.test"}]},
    )
    assert res.status_code == 200
    run_until_idle(config=WORKER)

    filed = partner.get(f"/emails/{quoted['id']}").json()
    assert filed["classification_state"] == "Classified"
    assert filed["case_id"] == a["id"]
    assert filed["classified_by"] == "auto"
    assert filed["match_type"] == "ReferenceNumber"
    links = _links(db_session, quoted["id"])
    assert [(str(link.case_id), link.is_primary) for link in links] == [(a["id"], True)]

    inbox = partner.get(f"/emails/{general['id']}").json()
    assert inbox["classification_state"] == "ClientInbox"
    assert inbox["client_id"] == client_id
    assert inbox["case_id"] is None


def test_replaced_contact_address_is_rescored_not_kept(login) -> None:
    partner = login("Partner")
    a = partner.post(
        "/clients", json={"name": "Alpha SRL", "contacts": [{"name": "Shared", "email": "shared@both.test"}]}
    ).json()
    b = partner.post(
        "/clients", json={"name": "Beta SRL", "contacts": [{"name": "Shared", "email": "shared@both.test"}]}
    ).json()
    case_a = partner.post("/cases", json={"title": "Alpha matter", "client_id": a["id"]}).json()["id"]
    case_b = partner.post("/cases", json={"title": "Beta matter", "client_id": b["id"]}).json()["id"]
    run_until_idle(config=WORKER)

    email = _ingest(partner, "shared@both.test")
    assert email["classification_state"] == "Uncertain"

    contact_id = a["contacts"][0]["id"]
    res = partner.patch(
        f"/clients/{a['id']}",
        json={"contacts": [{"id": contact_id, "name": "Shared", "email": "new@alpha.test"}]},
    )
    assert res.status_code == 200
    run_until_idle(config=WORKER)

    # Only Beta still lists the address, so the scorer files it there.
    after = partner.get(f"/emails/{email['id']}").json()
    assert after["case_id"] != case_a
    assert after["case_id"] == case_b
    assert after["classification_state"] == "Classified"
    assert after["classified_by"] == "auto"
    assert after["classification_confidence"] == 0.9


def test_removed_contact_releases_client_inbox_mail(login) -> None:
    partner = login("Partner")
    client = partner.post(
        "/clients", json={"name": "Gone SRL", "contacts": [{"name": "Ex", "email": "ex@gone.test"}]}
    ).json()

    email = _ingest(partner, "ex@gone.test")
    assert email["classification_state"] == "ClientInbox"
    assert email["client_id"] == client["id"]

    assert partner.patch(f"/clients/{client['id']}", json={"contacts": []}).status_code == 200
    run_until_idle(config=WORKER)

    after = partner.get(f"/emails/{email['id']}").json()
    assert after["classification_state"] == "Uncertain"
    assert after["client_id"] is None
    assert after["case_id"] is None


def test_zero_active_cases_leaves_state_unchanged(login) -> None:
    partner = login("Partner")
    client_id = partner.post("/clients", json={"name": "Dormant SRL"}).json()["id"]
    partner.post("/cases", json={"title": "Old matter", "client_id": client_id, "status": "Closed"})

    email = _ingest(partner, "someone@dormant.test")
    assert email["classification_state"] == "Uncertain"

    partner.patch(f"/clients/{client_id}", json={"contact_info": {"email": "someone@dormant.test"}})
    run_until_idle(config=WORKER)

    after = partner.get(f"/emails/{email['id']}").json()
    assert after["classification_state"] == "Uncertain"
    assert after["case_id"] is None
    assert after["classified_at"] == email["classified_at"]


def test_client_inbox_mail_is_filed_once_the_client_has_a_case(login) -> None:
    partner = login("Partner")
    client_id = partner.post(
        "/clients", json={"name": "Renamed SRL", "contact_info": {"email": "old@renamed.test"}}
    ).json()["id"]

    # No case yet: mail from the known address lands in the client inbox.
    email = _ingest(partner, "old@renamed.test")
    assert email["classification_state"] == "ClientInbox"
    assert email["client_id"] == client_id

    case_id = partner.post("/cases", json={"title": "Renamed", "client_id": client_id}).json()["id"]
    run_until_idle(config=WORKER)

    after = partner.get(f"/emails/{email['id']}").json()
    assert after["classification_state"] == "Classified"
    assert after["case_id"] == case_id


def test_running_trigger_twice_is_idempotent(login, db_session: Session) -> None:
    partner = login("Partner")
    client_id = partner.post(
        "/clients", json={"name": "Twice SRL", "contact_info": {"email": "x@twice.test"}}
    ).json()["id"]
    partner.post("/cases", json={"title": "Twice", "client_id": client_id})
    email_id = _ingest(partner, "y@twice.test")["id"]

    firm_id = UUID(partner.firm_id)
    for _ in range(2):
        reclassify_for_client_addresses(
            session=db_session, firm_id=firm_id, client_id=UUID(client_id), addresses=["y@twice.test"]
        )
        db_session.commit()
    snapshot = db_session.get(Email, UUID(email_id))
    state = (
        snapshot.classification_state,
        snapshot.classification_confidence,
        snapshot.classified_at,
        snapshot.classified_by,
    )

    reclassify_for_client_addresses(
        session=db_session, firm_id=firm_id, client_id=UUID(client_id), addresses=["y@twice.test"]
    )
    db_session.commit()
    db_session.expire_all()
    again = db_session.get(Email, UUID(email_id))
    assert (
        again.classification_state,
        again.classification_confidence,
        again.classified_at,
        again.classified_by,
    ) == state
    assert again.classification_state == ClassificationState.classified

    link_count = db_session.execute(
        select(func.count()).select_from(EmailCaseLink).where(EmailCaseLink.email_id == UUID(email_id))
    ).scalar_one()
    assert link_count == 1


def test_candidate_selection_matches_recipients_and_respects_client_inbox(
    login, db_session: Session
) -> None:
    partner = login("Partner")
    mine = partner.post("/clients", json={"name": "Mine SRL"}).json()["id"]
    other = partner.post(
        "/clients", json={"name": "Other SRL", "contact_info": {"email": "c@other.test"}}
    ).json()["id"]

    outbound = _ingest(
        partner,
        "partner@ourfirm.test",
        direction="outbound",
        to=[{"address": "Target@Mine.test"}],
    )
    elsewhere = _ingest(partner, "c@other.test", cc=[{"address": "target@mine.test"}])
    assert elsewhere["classification_state"] == "ClientInbox"
    assert elsewhere["client_id"] == other

    found = select_candidate_emails(
        session=db_session,
        firm_id=UUID(partner.firm_id),
        addresses=["target@mine.test"],
        client_id=UUID(mine),
    )
    ids = {str(e.id) for e in found}
    assert outbound["id"] in ids
    # Sitting in another client's inbox keeps it out.
    assert elsewhere["id"] not in ids


def test_jobs_are_deduplicated_while_queued(login, db_session: Session) -> None:
    partner = login("Partner")
    client_id = partner.post("/clients", json={"name": "Dedupe SRL"}).json()["id"]

    for _ in range(2):
        partner.patch(f"/clients/{client_id}", json={"contact_info": {"email": "a@dedupe.test"}})
        partner.patch(f"/clients/{client_id}", json={"contact_info": {"email": None}})

    jobs = (
        db_session.execute(
            select(BgJob).where(
                BgJob.firm_id == UUID(partner.firm_id), BgJob.status == JobStatus.queued
            )
        )
        .scalars()
        .all()
    )
    keys = [j.dedupe_key for j in jobs]
    assert len(keys) == len(set(keys))


def test_failed_scoring_query_still_routes_mail_to_client_inbox(
    login, db_session: Session, monkeypatch
) -> None:
    partner = login("Partner")
    client_id = partner.post("/clients", json={"name": "Fragile SA"}).json()["id"]
    partner.post("/cases", json={"title": "First", "client_id": client_id})
    partner.post("/cases", json={"title": "Second", "client_id": client_id})
    run_until_idle(config=WORKER)
    email = _ingest(partner, "ops@fragile.test")

    def failing_thread_lookup(*, session, email):
        session.execute(text("SELECT no_such_column FROM emails"))

    monkeypatch.setattr(scorer, "_match_thread", failing_thread_lookup)
    partner.patch(
        f"/clients/{client_id}",
        json={"contacts": [{"name": "Ops", "email": "ops@fragile.test"}]},
    )
    run_until_idle(config=WORKER)

    after = partner.get(f"/emails/{email['id']}").json()
    assert after["classification_state"] == "ClientInbox"
    assert after["client_id"] == client_id
    assert after["case_id"] is None

    failed = db_session.execute(
        select(func.count())
        .select_from(BgJob)
        .where(BgJob.firm_id == UUID(partner.firm_id), BgJob.status == JobStatus.failed)
    ).scalar_one()
    assert failed == 0
