from __future__ import annotations


def test_unassigned_paralegal_cannot_read_case_notes(login) -> None:
    partner = login("Partner")
    paralegal = login("Paralegal")
    case_id = partner.post("/cases", json={"title": "Confidential"}).json()["id"]
    partner.post(f"/cases/{case_id}/notes", json={"body": "Strategy"})

    res = paralegal.get(f"/cases/{case_id}/notes")
    assert res.status_code == 403
    assert res.json()["code"] == "FORBIDDEN"
    assert paralegal.post(f"/cases/{case_id}/notes", json={"body": "x"}).status_code == 403

    notes = partner.get(f"/cases/{case_id}/notes")
    assert notes.status_code == 200
    assert [n["body"] for n in notes.json()] == ["Strategy"]

    partner.post(f"/cases/{case_id}/team", json={"user_id": paralegal.user_id})
    assert paralegal.get(f"/cases/{case_id}/notes").status_code == 200


def test_other_firms_records_read_as_missing(login) -> None:
    mine = login("Partner")
    theirs = login("Partner", firm="Rival " + mine.firm_id)

    client_id = theirs.post("/clients", json={"name": "Their Client"}).json()["id"]
    case_id = theirs.post("/cases", json={"title": "Their Case", "client_id": client_id}).json()["id"]
    email_id = theirs.post("/emails", json={"from_address": "a@their.test"}).json()["email"]["id"]

    for path in (f"/clients/{client_id}", f"/cases/{case_id}", f"/emails/{email_id}"):
        res = mine.get(path)
        assert res.status_code == 404, path
        assert res.json()["code"] == "NOT_FOUND"

    assert mine.patch(f"/clients/{client_id}", json={"name": "Hijack"}).status_code == 404
    assert mine.get("/cases").json() == []


def test_case_and_email_lists_follow_assignment(login) -> None:
    partner = login("Partner")
    paralegal = login("Paralegal")

    client_id = partner.post(
        "/clients", json={"name": "Visible SRL", "contact_info": {"email": "gc@visible.test"}}
    ).json()["id"]
    mine = partner.post(
        "/cases", json={"title": "Assigned", "client_id": client_id, "reference_numbers": ["5/5/2026"]}
    ).json()["id"]
    hidden = partner.post(
        "/cases", json={"title": "Hidden", "reference_numbers": ["6/6/2026"]}
    ).json()["id"]
    partner.post(f"/cases/{mine}/team", json={"user_id": paralegal.user_id})

    on_mine = partner.post(
        "/emails", json={"from_address": "court@x.test", "body": "Dosar 5/5/2026"}
    ).json()["email"]
    on_hidden = partner.post(
        "/emails", json={"from_address": "court@x.test", "body": "Dosar 6/6/2026"}
    ).json()["email"]
    assert on_mine["case_id"] == mine
    assert on_hidden["case_id"] == hidden

    assert [c["id"] for c in paralegal.get("/cases").json()] == [mine]
    assert paralegal.get(f"/cases/{hidden}").status_code == 403

    visible_emails = {e["id"] for e in paralegal.get("/emails").json()}
    assert on_mine["id"] in visible_emails
    assert on_hidden["id"] not in visible_emails
    assert paralegal.get(f"/emails/{on_hidden['id']}").status_code == 404

    # The client comes into view through the assigned case.
    assert [c["id"] for c in paralegal.get("/clients").json()] == [client_id]
    assert paralegal.get(f"/clients/{client_id}").status_code == 200

    everything = {e["id"] for e in partner.get("/emails").json()}
    assert {on_mine["id"], on_hidden["id"]} <= everything


def test_direct_client_assignment_grants_client_inbox(login) -> None:
    partner = login("Partner")
    junior = login("AssociateJr")

    client_id = partner.post(
        "/clients", json={"name": "Inbox SRL", "contact_info": {"email": "boss@inbox.test"}}
    ).json()["id"]
    email = partner.post("/emails", json={"from_address": "boss@inbox.test"}).json()["email"]
    assert email["classification_state"] == "ClientInbox"

    assert junior.get(f"/clients/{client_id}").status_code == 404
    assert junior.get(f"/emails/{email['id']}").status_code == 404

    res = partner.post(f"/clients/{client_id}/team", json={"user_id": junior.user_id})
    assert res.status_code == 201

    assert junior.get(f"/clients/{client_id}").status_code == 200
    inbox = junior.get("/emails", params={"state": "ClientInbox"}).json()
    assert [e["id"] for e in inbox] == [email["id"]]


def test_assignment_based_roles_see_their_own_uncertain_mail(login) -> None:
    partner = login("Partner")
    paralegal = login("Paralegal")

    own = paralegal.post("/emails", json={"from_address": "random@nowhere.test"})
    assert own.status_code == 201
    other = partner.post("/emails", json={"from_address": "random@nowhere.test"}).json()["email"]

    ids = {e["id"] for e in paralegal.get("/emails").json()}
    assert own.json()["email"]["id"] in ids
    assert other["id"] not in ids
