"""分享接口测试：快照不可变、密码、下载次数、过期与停用。"""

import io
import uuid
import zipfile
from datetime import timedelta

from fastapi.testclient import TestClient

from app.packages.drive.core.timezone import now
from app.packages.drive.crud.shares import share_crud


def _auth_headers(client: TestClient, username: str = "admin", password: str = "admin123") -> dict[str, str]:
    resp = client.post("/api/v1/auth/login", json={"username": username, "password": password})
    return {"Authorization": f"Bearer {resp.json()['data']['access_token']}"}


def _folder(client: TestClient, headers: dict[str, str], name: str = None, parent_id=None) -> dict:
    resp = client.post(
        "/api/v1/folders",
        headers=headers,
        json={"name": name or "s_" + uuid.uuid4().hex[:8], "parent_id": parent_id},
    )
    return resp.json()["data"]


def _upload(client: TestClient, headers: dict[str, str], name: str, content: bytes, folder_id=None) -> dict:
    data = {"folder_id": str(folder_id)} if folder_id is not None else {}
    resp = client.post(
        "/api/v1/files/upload",
        headers=headers,
        files={"file": (name, io.BytesIO(content), "text/plain")},
        data=data,
    )
    assert resp.status_code == 200
    return resp.json()["data"]


def _share(client: TestClient, headers: dict[str, str], **body) -> dict:
    resp = client.post("/api/v1/shares", headers=headers, json=body)
    assert resp.status_code == 200, resp.json()
    return resp.json()["data"]


def test_file_share_keeps_snapshot_after_rename_and_delete(client: TestClient):
    headers = _auth_headers(client)
    folder = _folder(client, headers)
    uploaded = _upload(client, headers, "orig.txt", b"shared bytes", folder["id"])
    share = _share(client, headers, file_id=uploaded["id"])
    token = share["share_token"]
    assert len(token) >= 10
    assert share["share_path"].endswith(f"/public/shares/{token}")

    client.put(f"/api/v1/files/{uploaded['id']}/rename", headers=headers, json={"name": "renamed.txt"})

    info = client.get(f"/api/v1/public/shares/{token}")
    assert info.status_code == 200
    data = info.json()["data"]
    assert data["name"] == "orig.txt"
    assert data["item"]["original_name"] == "orig.txt"
    assert "storage_path" not in data["item"]

    link = client.get(f"/api/v1/public/shares/{token}/download").json()["data"]
    assert link["download_url"].endswith(f"/public/shares/{token}/files/{uploaded['id']}")
    body = client.get(f"/api/v1/public/shares/{token}/files/{uploaded['id']}")
    assert body.status_code == 200
    assert body.content == b"shared bytes"

    client.delete(f"/api/v1/files/{uploaded['id']}", headers=headers)
    assert client.get(f"/api/v1/public/shares/{token}").json()["data"]["name"] == "orig.txt"
    gone = client.get(f"/api/v1/public/shares/{token}/files/{uploaded['id']}")
    assert gone.status_code == 404
    assert gone.json()["msg"] == "文件已被删除"


def test_folder_share_only_exposes_snapshot_contents(client: TestClient):
    headers = _auth_headers(client)
    root = _folder(client, headers)
    sub = _folder(client, headers, "sub", root["id"])
    kept = _upload(client, headers, "kept.txt", b"kept", root["id"])
    _upload(client, headers, "nested.txt", b"nested", sub["id"])
    share = _share(client, headers, folder_id=root["id"])
    token = share["share_token"]

    late = _upload(client, headers, "late.txt", b"late", root["id"])

    info = client.get(f"/api/v1/public/shares/{token}").json()["data"]
    assert info["item"]["total_files"] == 2
    assert info["item"]["total_folders"] == 1
    assert info["item"]["total_size"] == 10

    contents = client.get(f"/api/v1/public/shares/{token}/contents").json()["data"]
    assert [item["original_name"] for item in contents["files"]] == ["kept.txt"]
    assert [item["name"] for item in contents["folders"]] == ["sub"]

    nested = client.get(f"/api/v1/public/shares/{token}/contents", params={"folderId": sub["id"]}).json()["data"]
    assert [item["original_name"] for item in nested["files"]] == ["nested.txt"]
    assert [crumb["name"] for crumb in nested["breadcrumbs"]] == [root["name"], "sub"]

    outside = client.get(f"/api/v1/public/shares/{token}/contents", params={"folderId": 99999999})
    assert outside.status_code == 404

    denied = client.get(f"/api/v1/public/shares/{token}/files/{late['id']}")
    assert denied.status_code == 403
    assert denied.json()["msg"] == "无权访问此文件"

    allowed = client.get(f"/api/v1/public/shares/{token}/files/{kept['id']}")
    assert allowed.content == b"kept"

    archive = client.get(f"/api/v1/public/shares/{token}/archive")
    assert archive.status_code == 200
    with zipfile.ZipFile(io.BytesIO(archive.content)) as zf:
        assert sorted(zf.namelist()) == sorted([f"{root['name']}/kept.txt", f"{root['name']}/sub/nested.txt"])


def test_password_protected_share(client: TestClient):
    headers = _auth_headers(client)
    uploaded = _upload(client, headers, "p_" + uuid.uuid4().hex[:6] + ".txt", b"secret")
    token = _share(client, headers, file_id=uploaded["id"], password="s3cret")["share_token"]

    gated = client.get(f"/api/v1/public/shares/{token}").json()["data"]
    assert gated["require_password"] is True
    assert "item" not in gated

    wrong = client.post(f"/api/v1/public/shares/{token}/verify", json={"password": "nope"})
    assert wrong.status_code == 401
    assert wrong.json()["msg"] == "密码错误"
    assert client.post(f"/api/v1/public/shares/{token}/verify", json={"password": "s3cret"}).status_code == 200

    missing = client.get(f"/api/v1/public/shares/{token}/files/{uploaded['id']}")
    assert missing.status_code == 401
    assert missing.json()["msg"] == "此分享需要密码"

    by_header = client.get(
        f"/api/v1/public/shares/{token}/files/{uploaded['id']}", headers={"X-Share-Password": "s3cret"}
    )
    assert by_header.content == b"secret"
    by_query = client.get(f"/api/v1/public/shares/{token}", params={"password": "s3cret"}).json()["data"]
    assert by_query["item"]["id"] == uploaded["id"]


def test_share_password_header_takes_precedence_over_query(client: TestClient):
    headers = _auth_headers(client)
    uploaded = _upload(client, headers, "h_" + uuid.uuid4().hex[:6] + ".txt", b"hdr")
    token = _share(client, headers, file_id=uploaded["id"], password="s3cret")["share_token"]
    url = f"/api/v1/public/shares/{token}/files/{uploaded['id']}"

    header_only = client.get(url, headers={"X-Share-Password": "s3cret"})
    assert header_only.status_code == 200
    assert header_only.content == b"hdr"

    # 请求头正确时忽略查询参数中的旧密码
    mixed = client.get(url, headers={"X-Share-Password": "s3cret"}, params={"password": "stale"})
    assert mixed.status_code == 200

    wrong_header = client.get(url, headers={"X-Share-Password": "stale"}, params={"password": "s3cret"})
    assert wrong_header.status_code == 401

    info = client.get(f"/api/v1/public/shares/{token}", headers={"X-Share-Password": "s3cret"}).json()["data"]
    assert info["item"]["id"] == uploaded["id"]


def test_download_limit_is_enforced(client: TestClient):
    headers = _auth_headers(client)
    uploaded = _upload(client, headers, "l_" + uuid.uuid4().hex[:6] + ".txt", b"limited")
    token = _share(client, headers, file_id=uploaded["id"], download_limit=1)["share_token"]

    link = client.get(f"/api/v1/public/shares/{token}/download").json()["data"]
    assert link["remaining"] == 1

    first = client.post(f"/api/v1/public/shares/{token}/download")
    assert first.status_code == 200
    assert first.json()["data"]["download_count"] == 1

    second = client.post(f"/api/v1/public/shares/{token}/download")
    assert second.status_code == 403
    assert second.json()["msg"] == "下载次数已达上限"
    assert client.get(f"/api/v1/public/shares/{token}/download").status_code == 403


def test_expired_share(client: TestClient, db_session_fixture):
    headers = _auth_headers(client)
    uploaded = _upload(client, headers, "e_" + uuid.uuid4().hex[:6] + ".txt", b"exp")

    past = client.post(
        "/api/v1/shares",
        headers=headers,
        json={"file_id": uploaded["id"], "expires_at": (now() - timedelta(minutes=5)).isoformat()},
    )
    assert past.status_code == 400

    token = _share(
        client, headers, file_id=uploaded["id"], expires_at=(now() + timedelta(days=1)).isoformat()
    )["share_token"]
    assert client.get(f"/api/v1/public/shares/{token}").status_code == 200

    share = share_crud.get_by_token(db_session_fixture, token)
    share.expires_at = now() - timedelta(seconds=1)
    db_session_fixture.commit()

    resp = client.get(f"/api/v1/public/shares/{token}")
    assert resp.status_code == 410
    assert resp.json()["msg"] == "分享已过期"


def test_deactivate_list_and_delete_share(client: TestClient):
    headers = _auth_headers(client)
    uploaded = _upload(client, headers, "x_" + uuid.uuid4().hex[:6] + ".txt", b"x")
    share = _share(client, headers, file_id=uploaded["id"])
    token = share["share_token"]

    listing = client.get("/api/v1/shares", headers=headers).json()["data"]
    assert share["id"] in [item["id"] for item in listing["items"]]

    resp = client.patch(f"/api/v1/shares/{share['id']}/status", headers=headers, json={"is_active": False})
    assert resp.status_code == 200
    assert resp.json()["data"]["is_active"] is False
    gone = client.get(f"/api/v1/public/shares/{token}")
    assert gone.status_code == 404
    assert gone.json()["msg"] == "分享不存在或已失效"

    client.patch(f"/api/v1/shares/{share['id']}/status", headers=headers, json={"is_active": True})
    assert client.get(f"/api/v1/public/shares/{token}").status_code == 200

    assert client.delete(f"/api/v1/shares/{share['id']}", headers=headers).status_code == 200
    assert client.get(f"/api/v1/public/shares/{token}").status_code == 404


def test_share_ownership_and_validation(client: TestClient):
    headers = _auth_headers(client)
    uploaded = _upload(client, headers, "o_" + uuid.uuid4().hex[:6] + ".txt", b"o")
    share = _share(client, headers, file_id=uploaded["id"])

    both = client.post("/api/v1/shares", headers=headers, json={"file_id": uploaded["id"], "folder_id": 1})
    assert both.status_code == 422

    username = "sh_" + uuid.uuid4().hex[:8]
    user_id = client.post(
        "/api/v1/auth/register", json={"username": username, "password": "pass1234"}
    ).json()["data"]["user_id"]
    roles = client.get("/api/v1/rbac/roles", headers=headers).json()["data"]
    editor = next(item["id"] for item in roles if item["name"] == "editor")
    client.post("/api/v1/rbac/assign", headers=headers, json={"user_id": user_id, "role_id": editor})
    editor_headers = _auth_headers(client, username, "pass1234")

    resp = client.patch(f"/api/v1/shares/{share['id']}/status", headers=editor_headers, json={"is_active": False})
    assert resp.status_code == 403
    assert resp.json()["msg"] == "无权操作此分享"

    assert client.get("/api/v1/shares", headers=editor_headers, params={"all": True}).status_code == 403
    own = client.get("/api/v1/shares", headers=editor_headers).json()["data"]
    assert own["items"] == []

    # editor 没有 files.share 权限
    resp = client.post("/api/v1/shares", headers=editor_headers, json={"file_id": uploaded["id"]})
    assert resp.status_code == 403


def test_view_counter(client: TestClient, db_session_fixture):
    headers = _auth_headers(client)
    uploaded = _upload(client, headers, "v_" + uuid.uuid4().hex[:6] + ".txt", b"v")
    token = _share(client, headers, file_id=uploaded["id"])["share_token"]

    client.get(f"/api/v1/public/shares/{token}")
    assert client.post(f"/api/v1/public/shares/{token}/view").status_code == 200
    assert client.post("/api/v1/public/shares/unknown-token/view").status_code == 200

    assert share_crud.get_by_token(db_session_fixture, token).view_count == 2
