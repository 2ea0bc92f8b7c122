import asyncio
import json
import uuid
from datetime import datetime, timezone

from sqlalchemy import select, update
from starlette.requests import Request

from app.core import observability
from app.models.company import Company
from app.models.product import Product
from app.models.stock import Stock
from app.models.user import User


def _register(client, *, email: str, company_name: str = "Owner Co"):
    return client.post(
        "/auth/register",
        json={
            "email": email,
            "password": "password123",
            "first_name": "Owner",
            "last_name": "Account",
            "company_name": company_name,
        },
    )


def _auth_headers(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def _owner_token(client, email: str = "owner@example.com") -> str:
    res = _register(client, email=email)
    assert res.status_code == 200, res.text
    return res.json()["access_token"]


def _create_user(client, token: str, *, email: str, role: str = "seller", activity_id: str | None = None):
    return client.post(
        "/users",
        json={
            "email": email,
            "password": "password123",
            "first_name": "Team",
            "last_name": "Member",
            "role": role,
            "activity_id": activity_id,
        },
        headers=_auth_headers(token),
    )


def _login(client, email: str) -> str:
    res = client.post("/auth/login", json={"email": email, "password": "password123"})
    assert res.status_code == 200, res.text
    return res.json()["access_token"]


def test_register_login_and_me(test_context):
    client, session_local = test_context

    register_res = _register(client, email="Owner@Example.com", company_name="Diallo Distribution")
    assert register_res.status_code == 200, register_res.text
    assert register_res.json()["token_type"] == "bearer"

    db = session_local()
    try:
        user = db.execute(select(User).where(User.email == "owner@example.com")).scalar_one()
    finally:
        db.close()
    assert user.role == "owner"
    assert len(user.id) == 22

    login_res = client.post("/auth/login", json={"email": "OWNER@example.com", "password": "password123"})
    assert login_res.status_code == 200, login_res.text

    form_res = client.post(
        "/auth/token",
        data={"username": "owner@example.com", "password": "password123"},
    )
    assert form_res.status_code == 200, form_res.text

    me_res = client.get("/auth/me", headers=_auth_headers(login_res.json()["access_token"]))
    assert me_res.status_code == 200, me_res.text
    me = me_res.json()
    assert me["company_name"] == "Diallo Distribution"
    assert me["role"] == "owner"
    assert me["permissions"] == ["*"]
    assert me["activity_id"] is None


def test_register_rejects_duplicate_email_and_bad_credentials(test_context):
    client, _ = test_context
    _owner_token(client)

    duplicate = _register(client, email="owner@example.com")
    assert duplicate.status_code == 409
    assert duplicate.json()["error"]["code"] == "conflict"

    wrong_password = client.post("/auth/login", json={"email": "owner@example.com", "password": "nope-nope"})
    assert wrong_password.status_code == 401

    short_password = client.post(
        "/auth/register",
        json={
            "email": "short@example.com",
            "password": "short",
            "first_name": "A",
            "last_name": "B",
            "company_name": "C",
        },
    )
    assert short_password.status_code == 422
    assert short_password.json()["error"]["details"][0]["field"] == "password"


def test_invalid_token_and_request_id_header(test_context):
    client, _ = test_context

    res = client.get("/auth/me", headers={**_auth_headers("not-a-token"), "X-Request-ID": "req-123"})
    assert res.status_code == 401
    assert res.headers["X-Request-ID"] == "req-123"
    body = res.json()["error"]
    assert body["request_id"] == "req-123"
    assert body["path"] == "/auth/me"


def test_disabled_user_and_inactive_company_are_rejected(test_context):
    client, session_local = test_context
    owner_token = _owner_token(client)
    assert _create_user(client, owner_token, email="seller@example.com").status_code == 200
    seller_token = _login(client, "seller@example.com")

    db = session_local()
    try:
        db.execute(update(User).where(User.email == "seller@example.com").values(is_active=False))
        db.commit()
    finally:
        db.close()

    assert client.get("/stock", headers=_auth_headers(seller_token)).status_code == 401
    disabled_login = client.post("/auth/login", json={"email": "seller@example.com", "password": "password123"})
    assert disabled_login.status_code == 403

    db = session_local()
    try:
        db.execute(update(Company).values(is_active=False))
        db.commit()
    finally:
        db.close()

    blocked = client.get("/stock", headers=_auth_headers(owner_token))
    assert blocked.status_code == 403
    assert blocked.json()["error"]["message"] == "Company account is not active"


def test_company_settings_owner_only(test_context):
    client, _ = test_context
    owner_token = _owner_token(client)
    assert _create_user(client, owner_token, email="admin@example.com", role="admin").status_code == 200
    admin_token = _login(client, "admin@example.com")

    get_res = client.get("/company", headers=_auth_headers(admin_token))
    assert get_res.status_code == 200
    assert get_res.json()["name"] == "Owner Co"

    admin_patch = client.patch("/company", json={"name": "Hijacked"}, headers=_auth_headers(admin_token))
    assert admin_patch.status_code == 403

    owner_patch = client.patch(
        "/company",
        json={"name": " Renamed Co ", "email": "Contact@Renamed.com", "tax_number": "  "},
        headers=_auth_headers(owner_token),
    )
    assert owner_patch.status_code == 200, owner_patch.text
    body = owner_patch.json()
    assert body["name"] == "Renamed Co"
    assert body["email"] == "contact@renamed.com"
    assert body["tax_number"] is None

    empty_patch = client.patch("/company", json={}, headers=_auth_headers(owner_token))
    assert empty_patch.status_code == 422


def test_activity_lifecycle(test_context):
    client, session_local = test_context
    owner_token = _owner_token(client)

    create_res = client.post(
        "/activities",
        json={"name": "  Plateau shop ", "manager_name": "Moussa", "phone": " "},
        headers=_auth_headers(owner_token),
    )
    assert create_res.status_code == 200, create_res.text
    activity = create_res.json()
    assert activity["name"] == "Plateau shop"
    assert activity["phone"] is None

    second = client.post("/activities", json={"name": "Annex"}, headers=_auth_headers(owner_token)).json()

    deactivate = client.patch(
        f"/activities/{second['id']}", json={"isActive": False}, headers=_auth_headers(owner_token)
    )
    assert deactivate.status_code == 200, deactivate.text
    assert deactivate.json()["is_active"] is False

    all_res = client.get("/activities", params={"order": "name"}, headers=_auth_headers(owner_token))
    assert [item["name"] for item in all_res.json()["items"]] == ["Annex", "Plateau shop"]
    assert all_res.json()["pagination"]["total"] == 2

    active_res = client.get(
        "/activities", params={"include_inactive": False}, headers=_auth_headers(owner_token)
    )
    assert [item["name"] for item in active_res.json()["items"]] == ["Plateau shop"]

    me = client.get("/auth/me", headers=_auth_headers(owner_token)).json()
    db = session_local()
    try:
        product = Product(id=str(uuid.uuid4()), company_id=me["company_id"], code="R1", name="Rice")
        db.add(product)
        db.flush()
        db.add(
            Stock(
                id=str(uuid.uuid4()),
                company_id=me["company_id"],
                activity_id=activity["id"],
                product_id=product.id,
                quantity=1,
                last_updated=datetime.now(timezone.utc),
            )
        )
        db.commit()
    finally:
        db.close()

    in_use = client.delete(f"/activities/{activity['id']}", headers=_auth_headers(owner_token))
    assert in_use.status_code == 409

    removed = client.delete(f"/activities/{second['id']}", headers=_auth_headers(owner_token))
    assert removed.status_code == 204
    missing = client.patch(
        f"/activities/{second['id']}", json={"name": "Gone"}, headers=_auth_headers(owner_token)
    )
    assert missing.status_code == 404


def test_activities_are_scoped_to_company(test_context):
    client, _ = test_context
    owner_a = _owner_token(client, "a@example.com")
    owner_b = _owner_token(client, "b@example.com")
    activity_a = client.post("/activities", json={"name": "A shop"}, headers=_auth_headers(owner_a)).json()

    assert client.get("/activities", headers=_auth_headers(owner_b)).json()["items"] == []
    assert client.delete(f"/activities/{activity_a['id']}", headers=_auth_headers(owner_b)).status_code == 404

    foreign_assignment = _create_user(client, owner_b, email="x@example.com", activity_id=activity_a["id"])
    assert foreign_assignment.status_code == 400


def test_seller_cannot_manage_activities_or_users(test_context):
    client, _ = test_context
    owner_token = _owner_token(client)
    assert _create_user(client, owner_token, email="seller@example.com").status_code == 200
    seller_token = _login(client, "seller@example.com")

    assert client.get("/activities", headers=_auth_headers(seller_token)).status_code == 200
    assert client.post("/activities", json={"name": "Mine"}, headers=_auth_headers(seller_token)).status_code == 403
    assert client.get("/users", headers=_auth_headers(seller_token)).status_code == 403
    assert client.get("/roles", headers=_auth_headers(seller_token)).status_code == 403


def test_user_management_guards(test_context):
    client, _ = test_context
    owner_token = _owner_token(client)
    me = client.get("/auth/me", headers=_auth_headers(owner_token)).json()

    duplicate = _create_user(client, owner_token, email="owner@example.com")
    assert duplicate.status_code == 409

    admin_res = _create_user(client, owner_token, email="admin@example.com", role="admin")
    assert admin_res.status_code == 200, admin_res.text
    admin_token = _login(client, "admin@example.com")
    admin_id = admin_res.json()["id"]

    assert _create_user(client, admin_token, email="admin2@example.com", role="admin").status_code == 403
    assert _create_user(client, admin_token, email="owner2@example.com", role="owner").status_code == 403

    seller_res = _create_user(client, admin_token, email="seller@example.com", role="seller")
    assert seller_res.status_code == 200, seller_res.text
    seller_id = seller_res.json()["id"]

    promote = client.patch(
        f"/users/{seller_id}", json={"role": "stock_manager", "phone": "+221 70"}, headers=_auth_headers(admin_token)
    )
    assert promote.status_code == 200, promote.text
    assert promote.json()["role"] == "stock_manager"
    assert promote.json()["phone"] == "+221 70"

    touch_owner = client.patch(
        f"/users/{me['id']}", json={"first_name": "Nope"}, headers=_auth_headers(admin_token)
    )
    assert touch_owner.status_code == 403

    self_deactivate = client.patch(
        f"/users/{admin_id}", json={"is_active": False}, headers=_auth_headers(admin_token)
    )
    assert self_deactivate.status_code == 400

    admin_delete = client.delete(f"/users/{seller_id}", headers=_auth_headers(admin_token))
    assert admin_delete.status_code == 403

    self_delete = client.delete(f"/users/{me['id']}", headers=_auth_headers(owner_token))
    assert self_delete.status_code == 400

    owner_delete = client.delete(f"/users/{seller_id}", headers=_auth_headers(owner_token))
    assert owner_delete.status_code == 204

    listing = client.get("/users", headers=_auth_headers(owner_token))
    assert listing.status_code == 200
    assert {item["email"] for item in listing.json()["items"]} == {"owner@example.com", "admin@example.com"}
    assert listing.json()["pagination"]["total"] == 2


def test_user_activity_can_be_cleared(test_context):
    client, _ = test_context
    owner_token = _owner_token(client)
    activity = client.post("/activities", json={"name": "Shop"}, headers=_auth_headers(owner_token)).json()
    created = _create_user(client, owner_token, email="seller@example.com", activity_id=activity["id"])
    assert created.json()["activity_id"] == activity["id"]

    cleared = client.patch(
        f"/users/{created.json()['id']}", json={"activity_id": None}, headers=_auth_headers(owner_token)
    )
    assert cleared.status_code == 200, cleared.text
    assert cleared.json()["activity_id"] is None


def test_roles_catalogue_counts_company_users(test_context):
    client, _ = test_context
    owner_token = _owner_token(client)
    _owner_token(client, "other@example.com")
    assert _create_user(client, owner_token, email="s1@example.com").status_code == 200
    assert _create_user(client, owner_token, email="s2@example.com").status_code == 200

    res = client.get("/roles", headers=_auth_headers(owner_token))
    assert res.status_code == 200, res.text
    roles = {item["key"]: item for item in res.json()["items"]}
    assert set(roles) == {"owner", "admin", "seller", "accountant", "stock_manager"}
    assert roles["owner"]["user_count"] == 1
    assert roles["seller"]["user_count"] == 2
    assert roles["owner"]["permissions"] == ["*"]
    assert "stock.adjust" in roles["admin"]["permissions"]
    assert "stock.adjust" not in roles["stock_manager"]["permissions"]
    assert all(item["is_system"] for item in roles.values())


def test_health_endpoints(test_context):
    client, _ = test_context

    assert client.get("/health").json() == {"ok": True}
    assert client.get("/").json()["docs"] == "/docs"


def test_activity_with_products_only_cannot_be_deleted(test_context):
    client, session_local = test_context
    owner_token = _owner_token(client)
    activity = client.post("/activities", json={"name": "Depot"}, headers=_auth_headers(owner_token)).json()
    me = client.get("/auth/me", headers=_auth_headers(owner_token)).json()

    db = session_local()
    try:
        db.add(
            Product(
                id=str(uuid.uuid4()),
                company_id=me["company_id"],
                activity_id=activity["id"],
                code="P-DEPOT",
                name="Cement",
            )
        )
        db.commit()
    finally:
        db.close()

    res = client.delete(f"/activities/{activity['id']}", headers=_auth_headers(owner_token))
    assert res.status_code == 409
    assert res.json()["error"]["code"] == "conflict"
    assert client.get("/activities", headers=_auth_headers(owner_token)).json()["pagination"]["total"] == 1


def test_user_with_recorded_movements_cannot_be_deleted(test_context):
    client, session_local = test_context
    owner_token = _owner_token(client)
    me = client.get("/auth/me", headers=_auth_headers(owner_token)).json()
    activity = client.post("/activities", json={"name": "Shop"}, headers=_auth_headers(owner_token)).json()

    admin_res = _create_user(client, owner_token, email="admin@example.com", role="admin")
    assert admin_res.status_code == 200, admin_res.text
    admin_id = admin_res.json()["id"]
    admin_token = _login(client, "admin@example.com")

    db = session_local()
    try:
        product = Product(
            id=str(uuid.uuid4()),
            company_id=me["company_id"],
            activity_id=activity["id"],
            code="R1",
            name="Rice",
        )
        db.add(product)
        db.flush()
        stock = Stock(
            id=str(uuid.uuid4()),
            company_id=me["company_id"],
            activity_id=activity["id"],
            product_id=product.id,
            quantity=10,
            last_updated=datetime.now(timezone.utc),
        )
        db.add(stock)
        db.commit()
        stock_id = stock.id
    finally:
        db.close()

    adjust_res = client.post(
        f"/stock/{stock_id}/adjust",
        json={"new_quantity": 4, "reason": "damaged_goods"},
        headers=_auth_headers(admin_token),
    )
    assert adjust_res.status_code == 200, adjust_res.text

    delete_res = client.delete(f"/users/{admin_id}", headers=_auth_headers(owner_token))
    assert delete_res.status_code == 409
    assert delete_res.json()["error"]["code"] == "conflict"

    deactivate_res = client.patch(
        f"/users/{admin_id}", json={"is_active": False}, headers=_auth_headers(owner_token)
    )
    assert deactivate_res.status_code == 200, deactivate_res.text
    assert deactivate_res.json()["is_active"] is False

    history = client.get(f"/stock/{stock_id}/history", headers=_auth_headers(owner_token)).json()
    assert [item["created_by"] for item in history["items"]] == [admin_id]


def test_unhandled_error_log_carries_request_id(monkeypatch):
    recorded: list[tuple[str, dict]] = []
    monkeypatch.setattr(observability, "log_event", lambda event, **fields: recorded.append((event, fields)))

    request = Request(
        {
            "type": "http",
            "method": "GET",
            "path": "/stock",
            "query_string": b"",
            "headers": [(b"x-request-id", b"req-500")],
        }
    )
    response = asyncio.run(observability.unhandled_exception_handler(request, RuntimeError("boom")))

    assert response.status_code == 500
    assert json.loads(response.body)["error"]["request_id"] == "req-500"
    event, fields = recorded[0]
    assert event == "unhandled_exception"
    assert fields["request_id"] == "req-500"
    assert fields["error"] == "boom"
