"""应用装配测试：业务包注册表与响应头中间件。"""

import dataclasses

import pytest
from fastapi.testclient import TestClient

from app.middleware.access_token import ACCESS_TOKEN_HEADER
from app.packages import PACKAGE_REGISTRY, get_active_package, register_package
from app.packages import drive


def test_active_package_defaults_to_drive(monkeypatch):
    monkeypatch.delenv("APP_ACTIVE_PACKAGE", raising=False)
    assert get_active_package() is drive.package

    monkeypatch.setenv("APP_ACTIVE_PACKAGE", " DRIVE ")
    assert get_active_package() is drive.package


def test_unknown_package_is_rejected(monkeypatch):
    monkeypatch.setenv("APP_ACTIVE_PACKAGE", "missing")
    with pytest.raises(RuntimeError, match="drive"):
        get_active_package()


def test_duplicate_registration_is_rejected():
    before = dict(PACKAGE_REGISTRY)
    with pytest.raises(RuntimeError):
        register_package(dataclasses.replace(drive.package, name="Drive"))
    assert PACKAGE_REGISTRY == before


def test_token_header_only_on_authenticated_requests(client: TestClient):
    login = client.post("/api/v1/auth/login", json={"username": "admin", "password": "admin123"})
    assert login.headers[ACCESS_TOKEN_HEADER] == login.json()["data"]["access_token"]

    failed = client.post("/api/v1/auth/login", json={"username": "admin", "password": "wrong"})
    assert failed.status_code == 401
    assert ACCESS_TOKEN_HEADER not in failed.headers

    anonymous = client.post("/api/v1/auth/forgot-password", json={"email": "nobody@example.org"})
    assert anonymous.status_code == 200
    assert ACCESS_TOKEN_HEADER not in anonymous.headers
