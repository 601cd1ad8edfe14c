from __future__ import annotations

from app.worker.runner import WorkerConfig, run_until_idle

WORKER = WorkerConfig(worker_id="pytest-worker")


def _ingest(user, sender: str, **extra) -> dict:
    res = user.post("/emails", json={"from_address": sender, "subject": "Notice", **extra})
    assert res.status_code == 201, res.text
    return res.json()["email"]


def test_registering_a_court_routes_waiting_mail(login) -> None:
    partner = login("Partner")
    waiting = _ingest(partner, "grefa@tribunal.test", body="Citatie pentru termenul urmator")
    assert waiting["classification_state"] == "Uncertain"

    res = partner.post(
        "/email-sources",
        json={"name": "Tribunalul Test", "category": "Court", "domains": ["@Tribunal.test"]},
    )
    assert res.status_code == 201, res.text
    source = res.json()
    assert source["domains"] == ["tribunal.test"]

    run_until_idle(config=WORKER)

    routed = partner.get(f"/emails/{waiting['id']}").json()
    assert routed["classification_state"] == "CourtUnassigned"
    assert routed["classified_by"] == f"source:{source['id']}"
    assert routed["case_id"] is None

    fresh = _ingest(partner, "registratura@tribunal.test")
    assert fresh["classification_state"] == "CourtUnassigned"


def test_new_case_reference_files_court_mail(login) -> None:
    partner = login("Partner")
    partner.post("/email-sources", json={"name": "Judecatoria", "emails": ["arhiva@jud.test"]})

    court_mail = _ingest(partner, "arhiva@jud.test", body="Dosar nr. 321/2/2026, termen 3 martie")
    assert court_mail["classification_state"] == "CourtUnassigned"

    case = partner.post(
        "/cases", json={"title": "Recovery", "reference_numbers": ["321/2/2026"]}
    ).json()
    run_until_idle(config=WORKER)

    filed = partner.get(f"/emails/{court_mail['id']}").json()
    assert filed["classification_state"] == "Classified"
    assert filed["case_id"] == case["id"]
    assert filed["classification_confidence"] == 1.0
    assert filed["match_type"] == "ReferenceNumber"
    assert filed["classified_by"] == "system:reference-match"


def test_email_source_admin_rules(login) -> None:
    partner = login("Partner")
    associate = login("Associate")
    body = {"name": "Notar Public", "category": "Notary", "emails": ["office@notar.test"]}

    assert associate.post("/email-sources", json=body).status_code == 403

    missing = partner.post("/email-sources", json={"name": "Nowhere"})
    assert missing.status_code == 422
    assert missing.json()["code"] == "BAD_USER_INPUT"

    bad_email = partner.post("/email-sources", json={"name": "Broken", "emails": ["not an email"]})
    assert bad_email.status_code == 422

    created = partner.post("/email-sources", json=body)
    assert created.status_code == 201
    source_id = created.json()["id"]
    assert partner.post("/email-sources", json=body).status_code == 409

    # Everyone in the firm can read the registry.
    assert [s["name"] for s in associate.get("/email-sources").json()] == ["Notar Public"]

    emptied = partner.patch(f"/email-sources/{source_id}", json={"emails": []})
    assert emptied.status_code == 422

    renamed = partner.patch(
        f"/email-sources/{source_id}", json={"name": "Notariat", "domains": ["notar.test"]}
    )
    assert renamed.status_code == 200
    assert renamed.json()["name"] == "Notariat"
    assert renamed.json()["domains"] == ["notar.test"]

    assert partner.delete(f"/email-sources/{source_id}").status_code == 204
    assert partner.get("/email-sources").json() == []
    assert partner.delete(f"/email-sources/{source_id}").status_code == 404


def test_manual_assignment_propagates_to_same_sender(login) -> None:
    partner = login("Partner")
    case_id = partner.post("/cases", json={"title": "Walk-in"}).json()["id"]

    first = _ingest(partner, "walkin@unknown.test", subject="Question")
    second = _ingest(partner, "Walkin@Unknown.test", subject="Another question")
    unrelated = _ingest(partner, "other@unknown.test")

    res = partner.post(f"/emails/{first['id']}/assign", json={"case_id": case_id})
    assert res.status_code == 200
    assigned = res.json()
    assert assigned["classification_state"] == "Classified"
    assert assigned["case_id"] == case_id
    assert assigned["classification_confidence"] == 1.0
    assert assigned["match_type"] == "Manual"
    assert assigned["classified_by"] == f"user:{partner.user_id}"

    links = partner.get(f"/emails/{first['id']}/links").json()
    assert [(link["case_id"], link["is_primary"], link["match_type"]) for link in links] == [
        (case_id, True, "Manual")
    ]

    run_until_idle(config=WORKER)

    follow = partner.get(f"/emails/{second['id']}").json()
    assert follow["classification_state"] == "Classified"
    assert follow["case_id"] == case_id
    assert follow["classification_confidence"] == 0.9
    assert follow["classified_by"] == f"system:pattern-from-{partner.user_id}"

    assert partner.get(f"/emails/{unrelated['id']}").json()["classification_state"] == "Uncertain"


def test_manual_reassignment_moves_primary_link(login) -> None:
    partner = login("Partner")
    a = partner.post("/cases", json={"title": "First home"}).json()["id"]
    b = partner.post("/cases", json={"title": "Second home"}).json()["id"]
    email = _ingest(partner, "mover@unknown.test")

    partner.post(f"/emails/{email['id']}/assign", json={"case_id": a})
    partner.post(f"/emails/{email['id']}/assign", json={"case_id": b})

    links = partner.get(f"/emails/{email['id']}/links").json()
    assert {(link["case_id"], link["is_primary"]) for link in links} == {(a, False), (b, True)}
    assert partner.get(f"/emails/{email['id']}").json()["case_id"] == b


def test_assignment_to_closed_case_is_rejected(login) -> None:
    partner = login("Partner")
    closed = partner.post("/cases", json={"title": "Done", "status": "Closed"}).json()["id"]
    email = _ingest(partner, "late@unknown.test")

    res = partner.post(f"/emails/{email['id']}/assign", json={"case_id": closed})
    assert res.status_code == 422
    assert partner.get(f"/emails/{email['id']}").json()["case_id"] is None


def test_paralegal_cannot_file_into_unassigned_case(login) -> None:
    partner = login("Partner")
    paralegal = login("Paralegal")
    case_id = partner.post("/cases", json={"title": "Private"}).json()["id"]
    email = _ingest(paralegal, "mine@unknown.test")

    res = paralegal.post(f"/emails/{email['id']}/assign", json={"case_id": case_id})
    assert res.status_code == 403


def test_manual_reclassify(login) -> None:
    partner = login("Partner")
    email = _ingest(partner, "expert@later.test")
    assert email["classification_state"] == "Uncertain"

    case_id = partner.post("/cases", json={"title": "Expert witness"}).json()["id"]
    partner.post(f"/cases/{case_id}/actors", json={"name": "Expert", "email": "expert@later.test"})

    res = partner.post(f"/emails/{email['id']}/classify")
    assert res.status_code == 200
    body = res.json()
    assert body["classification"]["state"] == "Classified"
    assert body["classification"]["case_id"] == case_id
    assert body["email"]["classification_confidence"] == 0.9

    again = partner.post(f"/emails/{email['id']}/classify")
    assert again.status_code == 409
    assert again.json()["code"] == "CONFLICT"


def test_preview_does_not_store_anything(login) -> None:
    partner = login("Partner")
    case_id = partner.post(
        "/cases", json={"title": "Previewed", "reference_numbers": ["808/1/2026"]}
    ).json()["id"]
    before = partner.get("/emails").json()

    res = partner.post(
        "/emails/classify/preview",
        json={"from_address": "anyone@x.test", "subject": "Dosar 808/1/2026"},
    )
    assert res.status_code == 200
    preview = res.json()
    assert preview["state"] == "Classified"
    assert preview["case_id"] == case_id
    assert preview["match_type"] == "ReferenceNumber"

    assert partner.get("/emails").json() == before
