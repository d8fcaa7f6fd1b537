"""存储源管理接口测试。"""

import io
import os
import uuid

from fastapi.testclient import TestClient

from app.packages.drive.models.storage import StorageSource


def _auth_headers(client: TestClient) -> dict[str, str]:
    resp = client.post("/api/v1/auth/login", json={"username": "admin", "password": "admin123"})
    return {"Authorization": f"Bearer {resp.json()['data']['access_token']}"}


def _local_payload(storage_root: str, **extra) -> dict:
    name = "local_" + uuid.uuid4().hex[:8]
    payload = {"name": name, "type": "local", "config": {"base_path": os.path.join(storage_root, name)}}
    payload.update(extra)
    return payload


def test_default_local_source_is_seeded(client: TestClient):
    headers = _auth_headers(client)

    items = client.get("/api/v1/storage-sources", headers=headers).json()["data"]
    default = next(item for item in items if item["name"] == "本地存储")
    assert default["type"] == "local"
    assert default["is_active"] is True

    detail = client.get(f"/api/v1/storage-sources/{default['id']}", headers=headers).json()["data"]
    assert detail["remaining"] == detail["quota_limit"] - detail["quota_used"]
    assert "file_count" in detail


def test_secrets_are_masked_and_preserved_on_update(client: TestClient, db_session_fixture):
    headers = _auth_headers(client)
    name = "custom_" + uuid.uuid4().hex[:8]
    resp = client.post(
        "/api/v1/storage-sources",
        headers=headers,
        json={
            "name": name,
            "type": "CUSTOM",
            "config": {
                "upload_url": "https://img.example.com/upload",
                "headers": {"Authorization": "Bearer real-token"},
                "api_key": "real-key",
                "response_path": "data.url",
            },
            "is_active": False,
        },
    )
    assert resp.status_code == 200
    created = resp.json()["data"]
    assert created["type"] == "custom"
    assert created["config"]["headers"] == {"Authorization": "******"}
    assert created["config"]["api_key"] == "******"
    assert created["config"]["upload_url"] == "https://img.example.com/upload"

    update = client.put(
        f"/api/v1/storage-sources/{created['id']}",
        headers=headers,
        json={"config": {**created["config"], "response_path": "url"}, "priority": -5},
    )
    assert update.status_code == 200
    assert update.json()["data"]["priority"] == -5

    stored = db_session_fixture.get(StorageSource, created["id"])
    assert stored.config["api_key"] == "real-key"
    assert stored.config["headers"] == {"Authorization": "Bearer real-token"}
    assert stored.config["response_path"] == "url"

    assert client.delete(f"/api/v1/storage-sources/{created['id']}", headers=headers).status_code == 200


def test_create_rejects_bad_input(client: TestClient, storage_root):
    headers = _auth_headers(client)
    payload = _local_payload(storage_root)
    assert client.post("/api/v1/storage-sources", headers=headers, json=payload).status_code == 200

    dup = client.post("/api/v1/storage-sources", headers=headers, json=payload)
    assert dup.status_code == 400
    assert dup.json()["msg"] == "存储源名称已存在"

    unknown = client.post(
        "/api/v1/storage-sources", headers=headers, json={"name": "ftp_" + uuid.uuid4().hex[:6], "type": "ftp"}
    )
    assert unknown.status_code == 400
    assert unknown.json()["msg"] == "不支持的存储类型: ftp"

    missing = client.post(
        "/api/v1/storage-sources",
        headers=headers,
        json={"name": "tg_" + uuid.uuid4().hex[:6], "type": "telegram", "config": {"chat_id": "1"}},
    )
    assert missing.status_code == 400
    assert missing.json()["msg"] == "Telegram 配置字段 bot_token 不能为空"


def test_connection_tests(client: TestClient, storage_root):
    headers = _auth_headers(client)

    ok = client.post(
        "/api/v1/storage-sources/test",
        headers=headers,
        json={"type": "local", "config": {"base_path": os.path.join(storage_root, "checked")}},
    )
    assert ok.status_code == 200
    assert ok.json()["data"] == {"success": True}

    bad = client.post("/api/v1/storage-sources/test", headers=headers, json={"type": "github", "config": {}})
    assert bad.status_code == 200
    assert bad.json()["data"] == {"success": False}

    source = client.post("/api/v1/storage-sources", headers=headers, json=_local_payload(storage_root)).json()["data"]
    tested = client.post(f"/api/v1/storage-sources/{source['id']}/test", headers=headers)
    assert tested.json()["data"] == {"success": True, "is_active": True}


def test_source_with_files_cannot_be_deleted_or_shrunk(client: TestClient, storage_root):
    headers = _auth_headers(client)
    source = client.post(
        "/api/v1/storage-sources", headers=headers, json=_local_payload(storage_root, quota_limit=1000)
    ).json()["data"]
    client.post(
        "/api/v1/files/upload",
        headers=headers,
        files={"file": ("keep_" + uuid.uuid4().hex[:6] + ".bin", io.BytesIO(b"z" * 50), "application/octet-stream")},
        data={"storage_source_id": str(source["id"])},
    )

    resp = client.delete(f"/api/v1/storage-sources/{source['id']}", headers=headers)
    assert resp.status_code == 400
    assert resp.json()["msg"] == "存储源中仍有文件，无法删除"

    resp = client.put(f"/api/v1/storage-sources/{source['id']}", headers=headers, json={"quota_limit": 10})
    assert resp.status_code == 400

    resp = client.put(
        f"/api/v1/storage-sources/{source['id']}",
        headers=headers,
        json={"type": "github", "config": {"token": "t", "repo": "me/files"}},
    )
    assert resp.status_code == 400
    assert resp.json()["msg"] == "存储源中仍有文件，不能修改类型"


def test_reconcile_repairs_drift(client: TestClient, storage_root, db_session_fixture):
    headers = _auth_headers(client)
    source = client.post(
        "/api/v1/storage-sources", headers=headers, json=_local_payload(storage_root, quota_limit=5000)
    ).json()["data"]
    client.post(
        "/api/v1/files/upload",
        headers=headers,
        files={"file": ("r.bin", io.BytesIO(b"r" * 64), "application/octet-stream")},
        data={"storage_source_id": str(source["id"])},
    )

    stored = db_session_fixture.get(StorageSource, source["id"])
    stored.quota_used = 999
    db_session_fixture.commit()

    resp = client.post(f"/api/v1/storage-sources/{source['id']}/reconcile", headers=headers)
    assert resp.status_code == 200
    assert resp.json()["data"] == {"id": source["id"], "quota_used_before": 999, "quota_used": 64}
