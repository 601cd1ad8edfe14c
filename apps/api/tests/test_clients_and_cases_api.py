from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models.enums import JobStatus, JobType
from app.models.jobs import BgJob


def _queued_jobs(db_session: Session, firm_id: str, job_type: JobType) -> list[BgJob]:
    return list(
        db_session.execute(
            select(BgJob).where(
                BgJob.firm_id == UUID(firm_id),
                BgJob.type == job_type,
                BgJob.status == JobStatus.queued,
            )
        )
        .scalars()
        .all()
    )


def test_client_crud_with_structured_contacts(login) -> None:
    partner = login("Partner")

    created = partner.post(
        "/clients",
        json={
            "name": "Acme SRL",
            "contact_info": {"email": "Office@Acme.test", "phone": "+40 21 000 0000"},
            "cui": "RO123",
            "administrators": [{"name": "Ana Pop", "email": "ana@acme.test", "role": "CEO"}],
            "contacts": [{"name": "Dan Ionescu", "email": "dan@acme.test"}],
        },
    )
    assert created.status_code == 201, created.text
    body = created.json()
    assert body["contact_info"]["email"] == "office@acme.test"
    assert [a["name"] for a in body["administrators"]] == ["Ana Pop"]
    assert [c["email"] for c in body["contacts"]] == ["dan@acme.test"]

    client_id = body["id"]
    got = partner.get(f"/clients/{client_id}")
    assert got.status_code == 200
    assert got.json()["cui"] == "RO123"

    admin_id = body["administrators"][0]["id"]
    patched = partner.patch(
        f"/clients/{client_id}",
        json={
            "address": "Str. Exemplu 1",
            "administrators": [{"id": admin_id, "name": "Ana Pop", "email": "ana.pop@acme.test"}],
        },
    )
    assert patched.status_code == 200
    out = patched.json()
    assert out["address"] == "Str. Exemplu 1"
    assert out["administrators"][0]["id"] == admin_id
    assert out["administrators"][0]["email"] == "ana.pop@acme.test"
    # Contacts were not part of the patch and stay as they were.
    assert [c["email"] for c in out["contacts"]] == ["dan@acme.test"]

    listed = partner.get("/clients", params={"q": "acme"})
    assert [c["id"] for c in listed.json()] == [client_id]


def test_duplicate_client_name_conflicts(login) -> None:
    partner = login("Partner")
    assert partner.post("/clients", json={"name": "Same Name"}).status_code == 201
    res = partner.post("/clients", json={"name": "Same Name"})
    assert res.status_code == 409
    assert res.json()["code"] == "CONFLICT"


def test_client_email_change_queues_reclassification(login, db_session: Session) -> None:
    partner = login("Partner")
    client_id = partner.post(
        "/clients", json={"name": "Beta SA", "contact_info": {"email": "old@beta.test"}}
    ).json()["id"]

    res = partner.patch(f"/clients/{client_id}", json={"contact_info": {"email": "new@beta.test"}})
    assert res.status_code == 200

    jobs = _queued_jobs(db_session, partner.firm_id, JobType.reclassify_addresses)
    payloads = [j.payload for j in jobs if j.payload.get("reason") == "client_contact_changed"]
    assert len(payloads) == 1
    assert payloads[0]["addresses"] == ["new@beta.test"]
    assert payloads[0]["released_addresses"] == ["old@beta.test"]
    assert payloads[0]["client_id"] == client_id


def test_delete_client_requires_partner_and_unfiles_email(login) -> None:
    partner = login("Partner")
    associate = login("Associate")

    client_id = partner.post(
        "/clients", json={"name": "Gamma SRL", "contact_info": {"email": "boss@gamma.test"}}
    ).json()["id"]
    case = partner.post("/cases", json={"title": "Gamma v. Delta", "client_id": client_id}).json()

    filed = partner.post("/emails", json={"from_address": "boss@gamma.test", "subject": "Update"})
    assert filed.json()["email"]["case_id"] == case["id"]

    assert associate.delete(f"/clients/{client_id}").status_code == 403
    assert partner.delete(f"/clients/{client_id}").status_code == 204

    assert partner.get(f"/clients/{client_id}").status_code == 404
    assert partner.get(f"/cases/{case['id']}").status_code == 404
    email = partner.get(f"/emails/{filed.json()['email']['id']}").json()
    assert email["classification_state"] == "Uncertain"
    assert email["case_id"] is None


def test_case_lifecycle(login, db_session: Session) -> None:
    partner = login("Partner")
    client_id = partner.post("/clients", json={"name": "Epsilon SRL"}).json()["id"]

    created = partner.post(
        "/cases",
        json={
            "title": "Epsilon recovery",
            "client_id": client_id,
            "reference_numbers": ["1234/3/2026"],
            "keywords": ["recovery"],
        },
    )
    assert created.status_code == 201
    case = created.json()
    assert case["status"] == "Active"
    assert case["case_number"].endswith("-001")

    second = partner.post("/cases", json={"title": "Epsilon advisory", "client_id": client_id})
    assert second.json()["case_number"].endswith("-002")

    team = partner.get(f"/cases/{case['id']}/team").json()
    assert [(m["user_id"], m["role"]) for m in team] == [(partner.user_id, "Lead")]

    patched = partner.patch(
        f"/cases/{case['id']}",
        json={"status": "OnHold", "reference_numbers": ["1234/3/2026", "99/1/2026"]},
    )
    assert patched.status_code == 200
    assert patched.json()["status"] == "OnHold"

    jobs = _queued_jobs(db_session, partner.firm_id, JobType.apply_case_reference)
    refs = sorted(tuple(j.payload["references"]) for j in jobs)
    assert refs == [("1234/3/2026",), ("99/1/2026",)]

    filtered = partner.get("/cases", params={"status_filter": "OnHold"}).json()
    assert [c["id"] for c in filtered] == [case["id"]]


def test_case_team_and_actors(login) -> None:
    partner = login("Partner")
    paralegal = login("Paralegal")
    case_id = partner.post("/cases", json={"title": "Zeta"}).json()["id"]

    added = partner.post(f"/cases/{case_id}/team", json={"user_id": paralegal.user_id})
    assert added.status_code == 201
    assert added.json()["role"] == "Support"

    # Paralegals cannot manage teams, even on their own case.
    assert paralegal.post(
        f"/cases/{case_id}/team", json={"user_id": paralegal.user_id, "role": "Lead"}
    ).status_code == 403

    actor = paralegal.post(
        f"/cases/{case_id}/actors",
        json={"name": "Opposing Counsel", "email": "Counsel@Other.test", "email_domains": ["other.test"]},
    )
    assert actor.status_code == 201
    assert actor.json()["email"] == "counsel@other.test"
    assert [a["name"] for a in partner.get(f"/cases/{case_id}/actors").json()] == ["Opposing Counsel"]

    removed = partner.delete(f"/cases/{case_id}/team/{paralegal.user_id}")
    assert removed.status_code == 204
    assert paralegal.get(f"/cases/{case_id}").status_code == 403
    assert partner.delete(f"/cases/{case_id}/team/{paralegal.user_id}").status_code == 404


def test_team_assignment_requires_firm_member(login) -> None:
    partner = login("Partner")
    outsider = login("Partner", firm="Outside " + partner.firm_id)
    case_id = partner.post("/cases", json={"title": "Eta"}).json()["id"]

    res = partner.post(f"/cases/{case_id}/team", json={"user_id": outsider.user_id})
    assert res.status_code == 422


def test_notes_render_html_and_hide_private_ones(login) -> None:
    partner = login("Partner")
    associate = login("Associate")
    case_id = partner.post("/cases", json={"title": "Theta"}).json()["id"]

    public = partner.post(
        f"/cases/{case_id}/notes", json={"body": "See https://portal.just.ro <script>x</script>"}
    )
    assert public.status_code == 201
    html = public.json()["body_html"]
    assert "<script>" not in html
    assert 'href="https://portal.just.ro"' in html

    private = partner.post(f"/cases/{case_id}/notes", json={"body": "Fee idea", "is_private": True})
    assert private.status_code == 201

    assert len(partner.get(f"/cases/{case_id}/notes").json()) == 2
    seen = associate.get(f"/cases/{case_id}/notes").json()
    assert [n["is_private"] for n in seen] == [False]
