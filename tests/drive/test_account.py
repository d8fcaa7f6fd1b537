"""个人设置、找回密码与单用户管理接口测试。"""

import uuid

import pytest
from fastapi.testclient import TestClient

from app.packages.drive.services.auth_service import FORGOT_PASSWORD_MESSAGE, auth_service

STRONG_PASSWORD = "Passw0rdX"


def _login(client: TestClient, username: str, password: str):
    return client.post("/api/v1/auth/login", json={"username": username, "password": password})


def _auth_headers(client: TestClient, username: str = "admin", password: str = "admin123") -> dict[str, str]:
    token = _login(client, username, password).json()["data"]["access_token"]
    return {"Authorization": f"Bearer {token}"}


def _register(client: TestClient, password: str = STRONG_PASSWORD) -> dict:
    suffix = uuid.uuid4().hex[:8]
    username = "acc_" + suffix
    email = f"{username}@example.org"
    data = client.post(
        "/api/v1/auth/register",
        json={"username": username, "password": password, "email": email},
    ).json()["data"]
    return {"id": data["user_id"], "username": username, "email": email, "password": password}


@pytest.fixture()
def sent_codes(monkeypatch):
    codes: dict[str, str] = {}
    monkeypatch.setattr(auth_service, "code_sender", lambda user, code: codes.__setitem__(user.email, code))
    return codes


# ----------------------------
# 找回密码
# ----------------------------
def test_forgot_password_answers_the_same_for_unknown_email(client: TestClient, sent_codes):
    account = _register(client)

    known = client.post("/api/v1/auth/forgot-password", json={"email": account["email"]})
    unknown = client.post("/api/v1/auth/forgot-password", json={"email": "nobody_" + uuid.uuid4().hex[:6] + "@example.org"})

    assert known.status_code == unknown.status_code == 200
    assert known.json()["msg"] == unknown.json()["msg"] == FORGOT_PASSWORD_MESSAGE
    assert known.json()["data"] is None and unknown.json()["data"] is None
    assert list(sent_codes) == [account["email"]]
    assert sent_codes[account["email"]].isdigit() and len(sent_codes[account["email"]]) == 6


def test_reset_password_with_code(client: TestClient, sent_codes):
    account = _register(client)
    old_headers = _auth_headers(client, account["username"], account["password"])
    client.post("/api/v1/auth/forgot-password", json={"email": account["email"]})
    code = sent_codes[account["email"]]
    wrong = "000000" if code != "000000" else "111111"

    bad = client.post(
        "/api/v1/auth/reset-password",
        json={"email": account["email"], "code": wrong, "newPassword": "N3wPassword"},
    )
    assert bad.status_code == 400
    assert bad.json()["msg"] == "验证码错误或已过期"

    weak = client.post(
        "/api/v1/auth/reset-password",
        json={"email": account["email"], "code": code, "newPassword": "weakpass"},
    )
    assert weak.status_code == 400
    assert weak.json()["msg"] == "密码必须包含至少一个大写字母"

    ok = client.post(
        "/api/v1/auth/reset-password",
        json={"email": account["email"], "code": code, "newPassword": "N3wPassword"},
    )
    assert ok.status_code == 200
    assert ok.json()["msg"] == "密码重置成功"

    reused = client.post(
        "/api/v1/auth/reset-password",
        json={"email": account["email"], "code": code, "newPassword": "An0therPass"},
    )
    assert reused.status_code == 400

    assert client.get("/api/v1/auth/me", headers=old_headers).status_code == 401
    assert _login(client, account["username"], account["password"]).status_code == 401
    assert _login(client, account["username"], "N3wPassword").status_code == 200


# ----------------------------
# 修改密码
# ----------------------------
@pytest.mark.parametrize(
    ("current", "new", "confirm", "msg"),
    [
        (STRONG_PASSWORD, "N3wPassword", "N3wPassw0rd", "两次输入的密码不匹配"),
        (STRONG_PASSWORD, "Sh0rt", "Sh0rt", "密码长度至少为8个字符"),
        (STRONG_PASSWORD, "NODIGITSHERE", "NODIGITSHERE", "密码必须包含至少一个小写字母"),
        (STRONG_PASSWORD, "NoDigitsHere", "NoDigitsHere", "密码必须包含至少一个数字"),
        ("Wr0ngPassword", "N3wPassword", "N3wPassword", "当前密码错误"),
        (STRONG_PASSWORD, STRONG_PASSWORD, STRONG_PASSWORD, "新密码不能与当前密码相同"),
    ],
)
def test_change_password_rejections(client: TestClient, current, new, confirm, msg):
    account = _register(client)
    headers = _auth_headers(client, account["username"], account["password"])

    resp = client.post(
        "/api/v1/settings/password",
        headers=headers,
        json={"currentPassword": current, "newPassword": new, "confirmPassword": confirm},
    )
    assert resp.status_code == 400
    assert resp.json()["msg"] == msg


def test_change_password_keeps_current_session(client: TestClient):
    account = _register(client)
    headers = _auth_headers(client, account["username"], account["password"])

    resp = client.post(
        "/api/v1/settings/password",
        headers=headers,
        json={"currentPassword": account["password"], "newPassword": "N3wPassword", "confirmPassword": "N3wPassword"},
    )
    assert resp.status_code == 200
    assert resp.json()["msg"] == "密码修改成功"

    assert client.get("/api/v1/settings/profile", headers=headers).status_code == 200
    assert _login(client, account["username"], account["password"]).status_code == 401
    assert _login(client, account["username"], "N3wPassword").status_code == 200


# ----------------------------
# 个人资料
# ----------------------------
def test_profile_read_and_update(client: TestClient):
    account = _register(client)
    headers = _auth_headers(client, account["username"], account["password"])

    profile = client.get("/api/v1/settings/profile", headers=headers).json()
    assert profile["msg"] == "获取个人资料成功"
    assert profile["data"]["id"] == account["id"]
    assert profile["data"]["email"] == account["email"]

    renamed = "ren_" + uuid.uuid4().hex[:8]
    resp = client.put(
        "/api/v1/settings/profile",
        headers=headers,
        json={"username": renamed, "nickname": " Nick ", "avatarUrl": "https://cdn.example.org/a.png"},
    )
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["username"] == renamed
    assert data["nickname"] == "Nick"
    assert data["avatar_url"] == "https://cdn.example.org/a.png"

    # 会话按用户 ID 绑定，改名后旧令牌仍然有效
    assert client.get("/api/v1/auth/me", headers=headers).json()["data"]["username"] == renamed
    assert _login(client, renamed, account["password"]).status_code == 200


def test_profile_update_rejects_taken_or_invalid_username(client: TestClient):
    account = _register(client)
    other = _register(client)
    headers = _auth_headers(client, account["username"], account["password"])

    taken = client.put("/api/v1/settings/profile", headers=headers, json={"username": other["username"]})
    assert taken.status_code == 400
    assert taken.json()["msg"] == "用户名已被使用"

    invalid = client.put("/api/v1/settings/profile", headers=headers, json={"username": "bad name!"})
    assert invalid.status_code == 400
    assert invalid.json()["msg"] == "用户名只能包含字母、数字和下划线，长度 3-20"

    unchanged = client.put("/api/v1/settings/profile", headers=headers, json={"username": account["username"]})
    assert unchanged.status_code == 200


def test_profile_requires_login(client: TestClient):
    assert client.get("/api/v1/settings/profile").status_code == 401


# ----------------------------
# 单用户管理
# ----------------------------
def test_get_user_detail_with_stats(client: TestClient):
    headers = _auth_headers(client)
    account = _register(client)

    resp = client.get(f"/api/v1/users/{account['id']}", headers=headers)
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["username"] == account["username"]
    assert data["roles"][0]["name"] == "viewer"
    assert data["stats"] == {"files_uploaded": 0, "folders_created": 0, "shares_created": 0}

    assert client.get("/api/v1/users/999999", headers=headers).status_code == 404


def test_get_user_detail_requires_permission(client: TestClient):
    account = _register(client)
    other = _register(client)
    headers = _auth_headers(client, account["username"], account["password"])

    assert client.get(f"/api/v1/users/{other['id']}", headers=headers).status_code == 403


def test_delete_single_user(client: TestClient):
    headers = _auth_headers(client)
    account = _register(client)
    user_headers = _auth_headers(client, account["username"], account["password"])

    resp = client.delete(f"/api/v1/users/{account['id']}", headers=headers)
    assert resp.status_code == 200
    assert resp.json()["data"]["deleted"] == [account["id"]]

    assert client.get("/api/v1/auth/me", headers=user_headers).status_code == 401
    assert _login(client, account["username"], account["password"]).status_code == 401
    assert client.get(f"/api/v1/users/{account['id']}", headers=headers).status_code == 404
    assert client.delete(f"/api/v1/users/{account['id']}", headers=headers).status_code == 404


def test_delete_user_refuses_self_and_owner(client: TestClient):
    headers = _auth_headers(client)
    me = client.get("/api/v1/auth/me", headers=headers).json()["data"]

    own = client.delete(f"/api/v1/users/{me['user_id']}", headers=headers)
    assert own.status_code == 403
    assert own.json()["msg"] == "不能删除自己的账号"

    account = _register(client)
    roles = client.get("/api/v1/rbac/roles", headers=headers).json()["data"]
    admin_role_id = next(item["id"] for item in roles if item["name"] == "admin")
    assigned = client.post(
        "/api/v1/rbac/assign",
        headers=headers,
        json={"user_id": account["id"], "role_id": admin_role_id},
    )
    assert assigned.status_code == 200

    admin_headers = _auth_headers(client, account["username"], account["password"])
    protected = client.delete(f"/api/v1/users/{me['user_id']}", headers=admin_headers)
    assert protected.status_code == 403
    assert protected.json()["msg"] == "不能删除Owner用户"
