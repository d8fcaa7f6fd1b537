"""配额账本与路径工具的单元测试。"""

import os
import uuid

import pytest

from app.packages.drive.core.enums import StorageTypeEnum
from app.packages.drive.core.exceptions import QuotaExceeded, ValidationFailed
from app.packages.drive.crud.files import file_crud
from app.packages.drive.crud.storage_source import storage_source_crud
from app.packages.drive.crud.users import user_crud
from app.packages.drive.services.file_service import file_service
from app.packages.drive.services.quota_ledger import quota_ledger
from app.packages.drive.services.storage_service import storage_service
from app.packages.drive.utils.path_utils import (
    content_disposition,
    is_system_file,
    join_folder_path,
    rebase_path,
    split_relative_path,
    unique_name,
    validate_name,
)


@pytest.fixture()
def small_source(db_session_fixture):
    source = storage_source_crud.create(
        db_session_fixture,
        {
            "name": "ledger_" + uuid.uuid4().hex[:8],
            "type": "local",
            "config": {},
            "priority": -100,
            "quota_used": 0,
            "quota_limit": 100,
            "is_active": False,
        },
    )
    return source.id


def test_increment_is_guarded_by_limit(db_session_fixture, small_source):
    quota_ledger.increment(db_session_fixture, small_source, 90)
    db_session_fixture.commit()

    with pytest.raises(QuotaExceeded):
        quota_ledger.ensure_capacity(db_session_fixture, small_source, 20)
    with pytest.raises(QuotaExceeded):
        quota_ledger.increment(db_session_fixture, small_source, 20)
    db_session_fixture.rollback()

    quota_ledger.increment(db_session_fixture, small_source, 10)
    db_session_fixture.commit()
    assert quota_ledger.read(db_session_fixture, small_source) == (100, 100)


def test_decrement_never_goes_negative(db_session_fixture, small_source):
    quota_ledger.increment(db_session_fixture, small_source, 30)
    quota_ledger.decrement(db_session_fixture, small_source, 50)
    db_session_fixture.commit()

    assert quota_ledger.read(db_session_fixture, small_source) == (0, 100)


def test_reconcile_matches_file_sizes(db_session_fixture, small_source):
    quota_ledger.increment(db_session_fixture, small_source, 77)
    before, after = quota_ledger.reconcile(db_session_fixture, small_source)
    db_session_fixture.commit()

    assert (before, after) == (77, 0)
    assert quota_ledger.read(db_session_fixture, small_source)[0] == 0


def test_create_source_with_enum_type(db_session_fixture, storage_root):
    name = "enum_" + uuid.uuid4().hex[:8]
    created = storage_service.create_source(
        db_session_fixture,
        {
            "name": name,
            "type": StorageTypeEnum.LOCAL,
            "config": {"base_path": os.path.join(storage_root, name)},
            "quota_limit": 100,
            "priority": -100,
        },
    )["data"]

    assert created["type"] == "local"
    assert os.path.isdir(os.path.join(storage_root, name))

    updated = storage_service.update_source(
        db_session_fixture,
        source_id=created["id"],
        payload={"type": StorageTypeEnum.LOCAL, "config": {"base_path": os.path.join(storage_root, name + "_b")}},
    )["data"]
    assert updated["config"]["base_path"].endswith(name + "_b")


def test_upload_over_quota_leaves_ledger_and_disk_untouched(db_session_fixture, storage_root):
    db = db_session_fixture
    owner = user_crud.get_by_username(db, "admin")
    name = "full_" + uuid.uuid4().hex[:8]
    base_path = os.path.join(storage_root, name)
    source_id = storage_service.create_source(
        db,
        {
            "name": name,
            "type": StorageTypeEnum.LOCAL,
            "config": {"base_path": base_path},
            "quota_limit": 100,
            "priority": -100,
        },
    )["data"]["id"]

    file_service.upload(
        db,
        filename="ninety.bin",
        data=b"n" * 90,
        content_type=None,
        user=owner,
        storage_source_id=source_id,
    )
    assert quota_ledger.read(db, source_id) == (90, 100)

    with pytest.raises(QuotaExceeded):
        file_service.upload(
            db,
            filename="twenty.bin",
            data=b"t" * 20,
            content_type=None,
            user=owner,
            storage_source_id=source_id,
        )

    assert quota_ledger.read(db, source_id) == (90, 100)
    assert len(os.listdir(base_path)) == 1
    assert file_crud.sum_size_by_source(db, source_id) == 90


def test_validate_name():
    assert validate_name("  report.pdf ") == "report.pdf"
    for bad in ("", "   ", "a/b", "a\\b", ".", "..", "x" * 256):
        with pytest.raises(ValidationFailed):
            validate_name(bad)


def test_folder_path_helpers():
    assert join_folder_path(None, "docs") == "/docs"
    assert join_folder_path("/docs", "2024") == "/docs/2024"
    assert rebase_path("/docs/2024/q1", "/docs", "/archive/docs") == "/archive/docs/2024/q1"
    assert rebase_path("/docs", "/docs", "/d") == "/d"
    assert rebase_path("/docsx/a", "/docs", "/d") == "/docsx/a"


def test_unique_name():
    assert unique_name("a.txt", []) == "a.txt"
    assert unique_name("a.txt", ["a.txt", "a(1).txt"]) == "a(2).txt"
    assert unique_name("folder", ["folder"]) == "folder(1)"
    assert unique_name(".env", [".env"]) == ".env(1)"


def test_split_relative_path_and_system_files():
    assert split_relative_path("a/b/c.txt") == ["a", "b"]
    assert split_relative_path("c.txt") == []
    assert split_relative_path(None) == []
    with pytest.raises(ValidationFailed):
        split_relative_path("a/../c.txt")

    assert is_system_file(".DS_Store")
    assert is_system_file("dir/._resource")
    assert not is_system_file("notes.txt")


def test_content_disposition_encodes_unicode():
    header = content_disposition("报告 2024.pdf")
    assert header.startswith('attachment; filename=" 2024.pdf"')
    assert "filename*=UTF-8''%E6%8A%A5%E5%91%8A%202024.pdf" in header
