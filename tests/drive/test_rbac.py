"""角色与权限相关接口测试：Owner 保护、角色过期与权限校验。"""

import uuid
from datetime import timedelta

from fastapi.testclient import TestClient

from app.packages.drive.core.timezone import now
from app.packages.drive.crud.roles import role_crud
from app.packages.drive.crud.users import user_crud
from app.packages.drive.models.base import user_roles
from app.packages.drive.services.rbac_service import rbac_service


def _auth_headers(client: TestClient, username: str = "admin", password: str = "admin123") -> dict[str, str]:
    resp = client.post("/api/v1/auth/login", json={"username": username, "password": password})
    token = resp.json()["data"]["access_token"]
    return {"Authorization": f"Bearer {token}"}


def _register(client: TestClient) -> tuple[int, str]:
    username = "rbac_" + uuid.uuid4().hex[:8]
    resp = client.post("/api/v1/auth/register", json={"username": username, "password": "pass1234"})
    return resp.json()["data"]["user_id"], username


def _role_id(client: TestClient, headers: dict[str, str], name: str) -> int:
    roles = client.get("/api/v1/rbac/roles", headers=headers).json()["data"]
    return next(item["id"] for item in roles if item["name"] == name)


def test_list_roles_and_permissions(client: TestClient):
    headers = _auth_headers(client)

    roles = client.get("/api/v1/rbac/roles", headers=headers).json()["data"]
    assert [item["name"] for item in roles][:5] == ["owner", "admin", "editor", "viewer", "guest"]

    groups = client.get("/api/v1/rbac/permissions", headers=headers).json()["data"]
    resources = {group["resource"] for group in groups}
    assert {"files", "folders", "storage", "users", "shares"} <= resources


def test_viewer_cannot_manage_storage(client: TestClient):
    _, username = _register(client)
    headers = _auth_headers(client, username, "pass1234")

    response = client.post(
        "/api/v1/storage-sources",
        headers=headers,
        json={"name": "nope", "type": "local", "config": {}},
    )
    assert response.status_code == 403
    assert response.json()["msg"] == "权限不足"


def test_assigned_role_grants_permissions(client: TestClient):
    headers = _auth_headers(client)
    user_id, username = _register(client)
    editor_id = _role_id(client, headers, "editor")

    user_headers = _auth_headers(client, username, "pass1234")
    assert client.post("/api/v1/folders", headers=user_headers, json={"name": "x"}).status_code == 403

    resp = client.post("/api/v1/rbac/assign", headers=headers, json={"user_id": user_id, "role_id": editor_id})
    assert resp.status_code == 200

    perms = client.get(f"/api/v1/rbac/users/{user_id}/permissions", headers=headers).json()["data"]
    assert "editor" in perms["roles"]
    assert "folders.create" in perms["permissions"]

    created = client.post(
        "/api/v1/folders", headers=user_headers, json={"name": "editor_" + uuid.uuid4().hex[:6]}
    )
    assert created.status_code == 200


def test_expired_role_is_ignored(client: TestClient, db_session_fixture):
    user_id, _ = _register(client)
    editor = role_crud.get_by_name(db_session_fixture, "editor")
    db_session_fixture.execute(
        user_roles.insert().values(user_id=user_id, role_id=editor.id, expires_at=now() - timedelta(days=1))
    )
    db_session_fixture.commit()

    roles = [role.name for role in rbac_service.get_user_roles(db_session_fixture, user_id)]
    assert roles == ["viewer"]
    user = user_crud.get(db_session_fixture, user_id)
    assert not rbac_service.has_permissions(db_session_fixture, user, ["files.upload"])
    assert rbac_service.has_any_permission(db_session_fixture, user, ["files.upload", "files.view"])


def test_assign_with_past_expiry_rejected(client: TestClient):
    headers = _auth_headers(client)
    user_id, _ = _register(client)
    editor_id = _role_id(client, headers, "editor")

    resp = client.post(
        "/api/v1/rbac/assign",
        headers=headers,
        json={"user_id": user_id, "role_id": editor_id, "expires_at": (now() - timedelta(hours=1)).isoformat()},
    )
    assert resp.status_code == 400
    assert resp.json()["msg"] == "过期时间必须晚于当前时间"


def test_owner_roles_are_protected(client: TestClient, db_session_fixture):
    headers = _auth_headers(client)
    owner = user_crud.get_owner(db_session_fixture)
    viewer_id = _role_id(client, headers, "viewer")
    owner_role_id = _role_id(client, headers, "owner")

    resp = client.post("/api/v1/rbac/assign", headers=headers, json={"user_id": owner.id, "role_id": viewer_id})
    assert resp.status_code == 403
    assert resp.json()["msg"] == "不能修改Owner用户的角色"

    resp = client.post("/api/v1/rbac/revoke", headers=headers, json={"user_id": owner.id, "role_id": owner_role_id})
    assert resp.status_code == 403

    user_id, _ = _register(client)
    resp = client.post("/api/v1/rbac/assign", headers=headers, json={"user_id": user_id, "role_id": owner_role_id})
    assert resp.status_code == 403
    assert resp.json()["msg"] == "Owner角色不能分配给其他用户"


def test_revoke_role(client: TestClient):
    headers = _auth_headers(client)
    user_id, _ = _register(client)
    viewer_id = _role_id(client, headers, "viewer")

    resp = client.post("/api/v1/rbac/revoke", headers=headers, json={"user_id": user_id, "role_id": viewer_id})
    assert resp.status_code == 200

    resp = client.post("/api/v1/rbac/revoke", headers=headers, json={"user_id": user_id, "role_id": viewer_id})
    assert resp.status_code == 404
    assert resp.json()["msg"] == "用户未拥有该角色"
