from __future__ import annotations

from uuid import UUID

from fastapi.testclient import TestClient
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.main import create_app
from app.models.audit import AuditEvent
from app.models.enums import FirmRole
from app.models.identity import Membership


def test_dev_login_requires_csrf() -> None:
    client = TestClient(create_app())

    res = client.post("/auth/dev/login", json={"email": "a@example.com", "firm_name": "Firm A"})
    assert res.status_code == 403
    assert res.json()["code"] == "FORBIDDEN"


def test_me_requires_session() -> None:
    client = TestClient(create_app())
    res = client.get("/me")
    assert res.status_code == 401
    assert res.json()["code"] == "UNAUTHENTICATED"


def test_me_and_csrf_protected_mutation(login) -> None:
    partner = login("Partner")

    me = partner.get("/me")
    assert me.status_code == 200
    body = me.json()
    assert body["role"] == "Partner"
    assert body["full_access"] is True
    assert body["firm"]["id"] == partner.firm_id

    no_csrf = partner.client.post("/clients", json={"name": "Acme SRL"})
    assert no_csrf.status_code == 403

    created = partner.post("/clients", json={"name": "Acme SRL"})
    assert created.status_code == 201
    assert created.json()["name"] == "Acme SRL"


def test_login_with_role_sets_membership(login) -> None:
    paralegal = login("Paralegal")
    assert paralegal.data["role"] == "Paralegal"

    me = paralegal.get("/me").json()
    assert me["role"] == "Paralegal"
    assert me["full_access"] is False


def test_client_list_is_firm_scoped(login) -> None:
    a = login("Partner")
    assert a.post("/clients", json={"name": "Only In A"}).status_code == 201

    b = login("Partner", firm="Other Firm " + a.firm_id)
    assert b.get("/clients").json() == []


def test_role_check_is_enforced_via_dependency(login, db_session: Session) -> None:
    user = login("Partner")

    membership = (
        db_session.execute(
            select(Membership).where(
                Membership.firm_id == UUID(user.firm_id),
                Membership.user_id == UUID(user.user_id),
            )
        )
        .scalars()
        .one()
    )
    membership.role = FirmRole.associate_jr
    db_session.commit()

    res = user.post("/clients", json={"name": "Should Fail"})
    assert res.status_code == 403
    assert res.json()["code"] == "FORBIDDEN"


def test_switch_firm_requires_membership(login) -> None:
    a = login("Partner", email="switcher@lawfirm.test")
    b = login("Associate", email="switcher@lawfirm.test", firm="Second " + a.firm_id)

    # The second login's session is bound to firm B; it can switch back to A.
    res = b.post("/auth/switch-firm", json={"firm_id": a.firm_id})
    assert res.status_code == 200
    assert res.json()["role"] == "Partner"
    assert b.get("/me").json()["firm"]["id"] == a.firm_id

    stranger = login("Partner", firm="Stranger " + a.firm_id)
    res = b.post("/auth/switch-firm", json={"firm_id": stranger.firm_id})
    assert res.status_code == 403


def test_logout_revokes_session(login, db_session: Session) -> None:
    user = login("Partner")
    assert user.post("/auth/logout").status_code == 200
    assert user.get("/me").status_code == 401

    events = (
        db_session.execute(
            select(AuditEvent.event_type).where(AuditEvent.firm_id == UUID(user.firm_id))
        )
        .scalars()
        .all()
    )
    assert "auth.dev_login" in events
    assert "auth.logout" in events


def test_validation_errors_use_bad_user_input_code(login) -> None:
    partner = login("Partner")
    res = partner.post("/clients", json={"name": ""})
    assert res.status_code == 422
    assert res.json()["code"] == "BAD_USER_INPUT"
