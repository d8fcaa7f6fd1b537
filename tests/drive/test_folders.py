"""文件夹接口测试：路径维护、移动防环、子树复制与删除。"""

import io
import os
import uuid
import zipfile

import pytest
from fastapi.testclient import TestClient

from app.packages.drive.core.config import get_settings
from app.packages.drive.core.exceptions import ValidationFailed
from app.packages.drive.crud.files import file_crud
from app.packages.drive.crud.folders import folder_crud
from app.packages.drive.services.file_service import file_service
from app.packages.drive.services.folder_service import FolderService, folder_service
from app.packages.drive.services.quota_ledger import quota_ledger


def _auth_headers(client: TestClient) -> dict[str, str]:
    resp = client.post("/api/v1/auth/login", json={"username": "admin", "password": "admin123"})
    return {"Authorization": f"Bearer {resp.json()['data']['access_token']}"}


def _create(client: TestClient, headers: dict[str, str], name: str = None, parent_id=None) -> dict:
    resp = client.post(
        "/api/v1/folders",
        headers=headers,
        json={"name": name or "d_" + uuid.uuid4().hex[:8], "parent_id": parent_id},
    )
    assert resp.status_code == 200, resp.json()
    return resp.json()["data"]


def _upload(client: TestClient, headers: dict[str, str], name: str, content: bytes, folder_id: int) -> dict:
    resp = client.post(
        "/api/v1/files/upload",
        headers=headers,
        files={"file": (name, io.BytesIO(content), "text/plain")},
        data={"folder_id": str(folder_id)},
    )
    assert resp.status_code == 200
    return resp.json()["data"]


def _default_quota(client: TestClient, headers: dict[str, str], source_id: int) -> int:
    return client.get(f"/api/v1/storage-sources/{source_id}", headers=headers).json()["data"]["quota_used"]


def test_create_nested_and_reject_duplicates(client: TestClient):
    headers = _auth_headers(client)
    top = _create(client, headers)
    child = _create(client, headers, "child", top["id"])

    assert child["path"] == f"/{top['name']}/child"
    assert child["parent_id"] == top["id"]

    resp = client.post("/api/v1/folders", headers=headers, json={"name": "child", "parent_id": top["id"]})
    assert resp.status_code == 400
    assert resp.json()["msg"] == "文件夹已存在"

    resp = client.post("/api/v1/folders", headers=headers, json={"name": "..", "parent_id": top["id"]})
    assert resp.status_code == 400


def test_rename_rewrites_descendant_paths(client: TestClient):
    headers = _auth_headers(client)
    a = _create(client, headers)
    b = _create(client, headers, "b", a["id"])
    c = _create(client, headers, "c", b["id"])

    new_name = "renamed_" + uuid.uuid4().hex[:6]
    resp = client.put(f"/api/v1/folders/{a['id']}/rename", headers=headers, json={"name": new_name})
    assert resp.status_code == 200
    assert resp.json()["data"]["path"] == f"/{new_name}"

    detail = client.get(f"/api/v1/folders/{c['id']}", headers=headers).json()["data"]
    assert detail["path"] == f"/{new_name}/b/c"
    assert [crumb["path"] for crumb in detail["breadcrumbs"]] == ["/", f"/{new_name}", f"/{new_name}/b", f"/{new_name}/b/c"]


def test_move_rejects_cycles(client: TestClient):
    headers = _auth_headers(client)
    a = _create(client, headers)
    b = _create(client, headers, "b", a["id"])
    c = _create(client, headers, "c", b["id"])

    for target in (a["id"], c["id"]):
        resp = client.post(f"/api/v1/folders/{a['id']}/move", headers=headers, json={"target_folder_id": target})
        assert resp.status_code == 400
        assert resp.json()["msg"] == "不能将文件夹移动到自己或子文件夹中"

    detail = client.get(f"/api/v1/folders/{c['id']}", headers=headers).json()["data"]
    assert detail["path"] == f"/{a['name']}/b/c"


def test_move_rewrites_paths_and_rejects_name_clash(client: TestClient):
    headers = _auth_headers(client)
    src = _create(client, headers)
    dst = _create(client, headers)
    moving = _create(client, headers, "m", src["id"])
    inner = _create(client, headers, "inner", moving["id"])

    resp = client.post(f"/api/v1/folders/{moving['id']}/move", headers=headers, json={"target_folder_id": dst["id"]})
    assert resp.status_code == 200
    assert resp.json()["data"]["path"] == f"/{dst['name']}/m"
    detail = client.get(f"/api/v1/folders/{inner['id']}", headers=headers).json()["data"]
    assert detail["path"] == f"/{dst['name']}/m/inner"

    _create(client, headers, "m", src["id"])
    clash = client.post(f"/api/v1/folders/{moving['id']}/move", headers=headers, json={"target_folder_id": src["id"]})
    assert clash.status_code == 400
    assert clash.json()["msg"] == "目标位置已存在同名文件夹"


def test_copy_skips_files_with_missing_bytes(client: TestClient, storage_root, db_session_fixture):
    headers = _auth_headers(client)
    root = _create(client, headers)
    sub = _create(client, headers, "sub", root["id"])
    first = _upload(client, headers, "one.txt", b"1111", root["id"])
    _upload(client, headers, "two.txt", b"22", root["id"])
    _upload(client, headers, "three.txt", b"333", sub["id"])
    source_id = first["storage_source_id"]

    record = file_crud.get(db_session_fixture, first["id"])
    os.remove(os.path.join(storage_root, record.storage_path))
    before = _default_quota(client, headers, source_id)

    resp = client.post(f"/api/v1/folders/{root['id']}/copy", headers=headers, json={"target_folder_id": None})
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["copied_folders"] == 2
    assert data["copied_files"] == 2
    assert [item["id"] for item in data["skipped"]] == [first["id"]]
    assert data["folder"]["name"] == f"{root['name']}(1)"
    assert _default_quota(client, headers, source_id) == before + 5

    listing = client.get("/api/v1/files", headers=headers, params={"folderId": data["folder"]["id"]}).json()["data"]
    assert [item["name"] for item in listing["folders"]] == ["sub"]
    assert [item["name"] for item in listing["files"]] == ["two.txt"]


def test_delete_removes_subtree_and_releases_quota(client: TestClient):
    headers = _auth_headers(client)
    root = _create(client, headers)
    sub = _create(client, headers, "sub", root["id"])
    f1 = _upload(client, headers, "a.txt", b"aaaa", root["id"])
    f2 = _upload(client, headers, "b.txt", b"bbbbbb", sub["id"])
    before = _default_quota(client, headers, f1["storage_source_id"])

    resp = client.delete(f"/api/v1/folders/{root['id']}", headers=headers)
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["deleted_folders"] == 2
    assert data["deleted_files"] == 2
    assert data["orphaned_objects"] == 0

    assert _default_quota(client, headers, f1["storage_source_id"]) == before - 10
    assert client.get(f"/api/v1/folders/{sub['id']}", headers=headers).status_code == 404
    assert client.get(f"/api/v1/files/{f2['id']}", headers=headers).status_code == 404


def test_download_folder_as_zip(client: TestClient):
    headers = _auth_headers(client)
    root = _create(client, headers)
    sub = _create(client, headers, "sub", root["id"])
    _upload(client, headers, "top.txt", b"top", root["id"])
    _upload(client, headers, "deep.txt", b"deep", sub["id"])

    resp = client.get(f"/api/v1/folders/{root['id']}/download", headers=headers)
    assert resp.status_code == 200
    assert resp.headers["content-type"] == "application/zip"
    with zipfile.ZipFile(io.BytesIO(resp.content)) as archive:
        assert sorted(archive.namelist()) == sorted([f"{root['name']}/top.txt", f"{root['name']}/sub/deep.txt"])
        assert archive.read(f"{root['name']}/sub/deep.txt") == b"deep"

    empty = _create(client, headers)
    resp = client.get(f"/api/v1/folders/{empty['id']}/download", headers=headers)
    assert resp.status_code == 400
    assert resp.json()["msg"] == "文件夹为空"


def test_walk_subtree_survives_parent_cycle(client: TestClient, db_session_fixture):
    headers = _auth_headers(client)
    p = _create(client, headers)
    q = _create(client, headers, "q", p["id"])

    folder_p = folder_crud.get(db_session_fixture, p["id"])
    folder_p.parent_id = q["id"]
    db_session_fixture.commit()
    try:
        walked = [item.id for item, _ in folder_service.walk_subtree(db_session_fixture, folder_p)]
        assert walked == [p["id"], q["id"]]
        chain = folder_service.ancestors(db_session_fixture, folder_crud.get(db_session_fixture, q["id"]))
        assert {item.id for item in chain} == {p["id"], q["id"]}
    finally:
        folder_p.parent_id = None
        db_session_fixture.commit()


def test_walk_subtree_depth_limit(client: TestClient, db_session_fixture):
    headers = _auth_headers(client)
    a = _create(client, headers)
    b = _create(client, headers, "b", a["id"])
    _create(client, headers, "c", b["id"])

    shallow = FolderService(get_settings().model_copy(update={"max_tree_depth": 1}), file_service, quota_ledger)
    with pytest.raises(ValidationFailed):
        shallow.walk_subtree(db_session_fixture, folder_crud.get(db_session_fixture, a["id"]))
