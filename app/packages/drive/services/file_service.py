"""文件服务：文件的上传、列表、重命名、移动、复制、删除与下载。

约定：
- 根目录以 ``folder_id=None`` 表示，``0`` 或负数视为非法参数；
- 写入前先做配额校验；元数据行与配额计数在同一个事务里提交；
- 物理删除在元数据提交之后尽力执行，失败只记日志。
"""

from __future__ import annotations

import hashlib
import math
import os
import time
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy.orm import Session

from app.packages.drive.core.config import Settings, get_settings
from app.packages.drive.core.constants import DEFAULT_PAGE_SIZE, HTTP_STATUS_OK, MAX_PAGE_SIZE
from app.packages.drive.core.enums import FileSortEnum, SortOrderEnum
from app.packages.drive.core.exceptions import DuplicateName, Forbidden, NotFound, ValidationFailed
from app.packages.drive.core.logger import logger
from app.packages.drive.core.responses import create_response
from app.packages.drive.core.security import random_id
from app.packages.drive.core.timezone import format_datetime
from app.packages.drive.crud.files import file_crud
from app.packages.drive.crud.folders import folder_crud
from app.packages.drive.models.file import File
from app.packages.drive.models.folder import Folder
from app.packages.drive.models.storage import StorageSource
from app.packages.drive.models.user import User
from app.packages.drive.services.quota_ledger import QuotaLedger, quota_ledger
from app.packages.drive.services.storage_backends import StorageBackend, guess_mime
from app.packages.drive.services.storage_service import StorageService, storage_service
from app.packages.drive.utils.path_utils import (
    is_system_file,
    join_folder_path,
    split_name,
    split_relative_path,
    unique_name,
    validate_name,
)


@dataclass(frozen=True)
class PendingDelete:
    """已从数据库移除、待物理删除的对象。"""

    source_id: int
    storage_path: str


def generate_storage_key(filename: str) -> str:
    _, ext = split_name(filename)
    return f"{random_id(21)}-{int(time.time() * 1000)}{ext.lower()}"


class FileService:
    def __init__(self, settings: Settings, storage: StorageService, ledger: QuotaLedger) -> None:
        self.settings = settings
        self.storage = storage
        self.ledger = ledger

    # ----------------------------
    # 查找
    # ----------------------------
    @staticmethod
    def validate_folder_id(folder_id: Optional[int]) -> None:
        if folder_id is not None and folder_id <= 0:
            raise ValidationFailed("文件夹ID无效，根目录请不传该参数")

    def get_folder(self, db: Session, folder_id: Optional[int]) -> Optional[Folder]:
        self.validate_folder_id(folder_id)
        if folder_id is None:
            return None
        folder = folder_crud.get(db, folder_id)
        if folder is None:
            raise NotFound("文件夹不存在")
        return folder

    def get_file_or_404(self, db: Session, file_id: int) -> File:
        record = file_crud.get(db, file_id)
        if record is None:
            raise NotFound("文件不存在")
        return record

    def adapter_cache(self, db: Session):
        """返回按存储源 ID 缓存适配器的取值函数，单次操作内每个存储源只构造一次。"""
        cache: Dict[int, StorageBackend] = {}

        def _get(source_id: int) -> StorageBackend:
            if source_id not in cache:
                cache[source_id] = self.storage.adapter_for(self.storage.get_source_or_404(db, source_id))
            return cache[source_id]

        return _get

    # ----------------------------
    # 上传
    # ----------------------------
    def upload(
        self,
        db: Session,
        *,
        filename: Optional[str],
        data: bytes,
        content_type: Optional[str],
        user: User,
        folder_id: Optional[int] = None,
        relative_path: Optional[str] = None,
        storage_source_id: Optional[int] = None,
    ) -> Dict[str, Any]:
        if is_system_file(filename):
            logger.info("Skipped system file %s", filename)
            return create_response("已跳过系统文件", {"skipped": True, "name": filename}, HTTP_STATUS_OK)

        original_name = validate_name(os.path.basename((filename or "").replace("\\", "/")), label="文件名")
        size = len(data)
        if size > self.settings.max_file_size:
            raise ValidationFailed(f"文件大小超过限制（最大 {self.settings.max_file_size} 字节）")

        self.get_folder(db, folder_id)
        source = self.storage.resolve_source(db, storage_source_id)
        self.ledger.ensure_capacity(db, source.id, size)

        try:
            target_folder_id = self._ensure_folder_chain(
                db, folder_id, split_relative_path(relative_path), created_by=user.id
            )
            display_name = unique_name(original_name, file_crud.list_names_in_folder(db, target_folder_id))
            key = generate_storage_key(display_name)
            mime_type = content_type or guess_mime(display_name)
            adapter = self.storage.adapter_for(source)
            stored = adapter.upload(data, key, content_type=mime_type)
        except Exception:
            db.rollback()
            raise

        try:
            record = file_crud.create(
                db,
                {
                    "name": key,
                    "original_name": display_name,
                    "size": size,
                    "mime_type": mime_type,
                    "md5_hash": hashlib.md5(data).hexdigest(),
                    "storage_path": stored.path,
                    "storage_source_id": source.id,
                    "folder_id": target_folder_id,
                    "uploaded_by": user.id,
                },
                auto_commit=False,
            )
            self.ledger.increment(db, source.id, size)
            db.commit()
            db.refresh(record)
        except Exception:
            db.rollback()
            if not adapter.delete(stored.path):
                logger.warning("Orphaned object %s left on storage source %s", stored.path, source.id)
            raise

        logger.info("File %s uploaded to storage source %s (%s bytes)", record.id, source.id, size)
        data_out = self.serialize(record)
        data_out["url"] = stored.url
        return create_response("上传成功", data_out, HTTP_STATUS_OK)

    def _ensure_folder_chain(
        self,
        db: Session,
        parent_id: Optional[int],
        segments: List[str],
        *,
        created_by: Optional[int],
    ) -> Optional[int]:
        """按相对路径逐级复用或创建文件夹，返回最末一级的 ID。"""
        current_id = parent_id
        parent_path = self.get_folder(db, parent_id).path if parent_id is not None else None
        for segment in segments:
            folder = folder_crud.get_child_by_name(db, parent_id=current_id, name=segment)
            if folder is None:
                folder = folder_crud.create(
                    db,
                    {
                        "name": segment,
                        "path": join_folder_path(parent_path, segment),
                        "parent_id": current_id,
                        "created_by": created_by,
                    },
                    auto_commit=False,
                )
            current_id = folder.id
            parent_path = folder.path
        return current_id

    # ----------------------------
    # 列表与详情
    # ----------------------------
    def list_items(
        self,
        db: Session,
        *,
        folder_id: Optional[int] = None,
        page: int = 1,
        limit: int = DEFAULT_PAGE_SIZE,
        sort_by: FileSortEnum = FileSortEnum.CREATED_AT,
        sort_order: SortOrderEnum = SortOrderEnum.DESC,
        keyword: Optional[str] = None,
    ) -> Dict[str, Any]:
        """文件夹全量返回，文件按页返回。"""
        folder = self.get_folder(db, folder_id)
        page = max(int(page), 1)
        limit = min(max(int(limit), 1), MAX_PAGE_SIZE)

        folders = folder_crud.list_children(db, folder_id)
        files, total = file_crud.list_page(
            db,
            folder_id=folder_id,
            sort_by=sort_by,
            sort_order=sort_order,
            skip=(page - 1) * limit,
            limit=limit,
            keyword=keyword,
        )
        total_pages = math.ceil(total / limit) if total else 0
        data = {
            "folder": serialize_folder(folder) if folder is not None else None,
            "folders": [serialize_folder(item) for item in folders],
            "files": [self.serialize(item) for item in files],
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "total_pages": total_pages,
                "has_more": page < total_pages,
            },
        }
        return create_response("获取文件列表成功", data, HTTP_STATUS_OK)

    def get_detail(self, db: Session, *, file_id: int) -> Dict[str, Any]:
        record = self.get_file_or_404(db, file_id)
        data = self.serialize(record)
        data["folder_path"] = record.folder.path if record.folder is not None else "/"
        data["storage_source_name"] = record.storage_source.name if record.storage_source is not None else None
        return create_response("获取文件详情成功", data, HTTP_STATUS_OK)

    # ----------------------------
    # 重命名 / 移动
    # ----------------------------
    def rename(self, db: Session, *, file_id: int, name: str) -> Dict[str, Any]:
        record = self.get_file_or_404(db, file_id)
        new_name = validate_name(name, label="文件名")
        if new_name != record.original_name:
            if new_name in file_crud.list_names_in_folder(db, record.folder_id):
                raise DuplicateName("该文件夹中已存在同名文件")
            record.original_name = new_name
            record = file_crud.save(db, record)
        return create_response("重命名成功", self.serialize(record), HTTP_STATUS_OK)

    def move(self, db: Session, *, file_id: int, target_folder_id: Optional[int]) -> Dict[str, Any]:
        """只改 ``folder_id``，文件仍留在原存储源，不影响配额。"""
        record = self.get_file_or_404(db, file_id)
        self.get_folder(db, target_folder_id)
        if record.folder_id != target_folder_id:
            if record.original_name in file_crud.list_names_in_folder(db, target_folder_id):
                raise DuplicateName("目标文件夹中已存在同名文件")
            record.folder_id = target_folder_id
            record = file_crud.save(db, record)
        return create_response("移动成功", self.serialize(record), HTTP_STATUS_OK)

    # ----------------------------
    # 复制
    # ----------------------------
    def copy(self, db: Session, *, file_id: int, target_folder_id: Optional[int], user: User) -> Dict[str, Any]:
        record = self.get_file_or_404(db, file_id)
        self.get_folder(db, target_folder_id)
        self.ledger.ensure_capacity(db, record.storage_source_id, record.size)

        adapter = self.storage.adapter_for(self.storage.get_source_or_404(db, record.storage_source_id))
        name = unique_name(record.original_name, file_crud.list_names_in_folder(db, target_folder_id))
        copied = self.copy_record(db, record, target_folder_id=target_folder_id, name=name, adapter=adapter, user_id=user.id)
        try:
            db.commit()
            db.refresh(copied)
        except Exception:
            db.rollback()
            adapter.delete(copied.storage_path)
            raise
        logger.info("File %s copied to %s as file %s", record.id, target_folder_id, copied.id)
        return create_response("复制成功", self.serialize(copied), HTTP_STATUS_OK)

    def copy_record(
        self,
        db: Session,
        record: File,
        *,
        target_folder_id: Optional[int],
        name: str,
        adapter: StorageBackend,
        user_id: Optional[int],
    ) -> File:
        """物理复制字节并登记新行与配额，不提交事务。

        计数增加失败（并发写满配额）时删除刚复制的对象后再抛出。
        """
        key = generate_storage_key(name)
        stored = adapter.copy(record.storage_path, key)
        try:
            self.ledger.increment(db, record.storage_source_id, record.size)
        except Exception:
            adapter.delete(stored.path)
            raise
        return file_crud.create(
            db,
            {
                "name": key,
                "original_name": name,
                "size": record.size,
                "mime_type": record.mime_type,
                "md5_hash": record.md5_hash,
                "storage_path": stored.path,
                "storage_source_id": record.storage_source_id,
                "folder_id": target_folder_id,
                "uploaded_by": user_id,
            },
            auto_commit=False,
        )

    # ----------------------------
    # 删除
    # ----------------------------
    def delete(self, db: Session, *, file_id: int) -> Dict[str, Any]:
        record = self.get_file_or_404(db, file_id)
        pending = self.remove_records(db, [record])
        self._commit_and_purge(db, pending)
        return create_response("删除成功", {"id": file_id}, HTTP_STATUS_OK)

    def batch_delete(self, db: Session, *, file_ids: Iterable[int]) -> Dict[str, Any]:
        ids = list(dict.fromkeys(int(item) for item in file_ids))
        if not ids:
            raise ValidationFailed("请选择要删除的文件")
        records = [item for item in (file_crud.get(db, file_id) for file_id in ids) if item is not None]
        found = {item.id for item in records}
        pending = self.remove_records(db, records)
        self._commit_and_purge(db, pending)
        data = {"deleted": sorted(found), "not_found": [item for item in ids if item not in found]}
        return create_response(f"成功删除 {len(found)} 个文件", data, HTTP_STATUS_OK)

    def remove_records(self, db: Session, records: Iterable[File]) -> List[PendingDelete]:
        """删除文件行并按存储源扣减配额，不提交事务。"""
        pending: List[PendingDelete] = []
        for record in records:
            pending.append(PendingDelete(record.storage_source_id, record.storage_path))
            self.ledger.decrement(db, record.storage_source_id, record.size)
            file_crud.hard_delete(db, record, auto_commit=False)
        return pending

    def _commit_and_purge(self, db: Session, pending: List[PendingDelete]) -> None:
        try:
            db.commit()
        except Exception:
            db.rollback()
            raise
        self.purge(db, pending)

    def purge(self, db: Session, pending: Iterable[PendingDelete]) -> int:
        """尽力删除物理对象，返回失败数量。"""
        get_adapter = self.adapter_cache(db)
        failures = 0
        for item in pending:
            try:
                ok = get_adapter(item.source_id).delete(item.storage_path)
            except Exception:
                logger.warning(
                    "Physical delete failed for %s on storage source %s", item.storage_path, item.source_id, exc_info=True
                )
                ok = False
            if not ok:
                failures += 1
        if failures:
            logger.warning("%s physical objects could not be deleted and were left orphaned", failures)
        return failures

    # ----------------------------
    # 下载与直链
    # ----------------------------
    def read_bytes(self, db: Session, record: File) -> bytes:
        adapter = self.storage.adapter_for(self.storage.get_source_or_404(db, record.storage_source_id))
        return adapter.download(record.storage_path)

    def download(self, db: Session, *, file_id: int) -> Tuple[File, bytes]:
        record = self.get_file_or_404(db, file_id)
        return record, self.read_bytes(db, record)

    def direct_url(self, db: Session, *, file_id: int) -> Dict[str, Any]:
        if not self.settings.enable_direct_url:
            raise Forbidden("直接URL访问已禁用")
        record = self.get_file_or_404(db, file_id)
        source: StorageSource = self.storage.get_source_or_404(db, record.storage_source_id)
        url = self.storage.adapter_for(source).get_direct_url(record.storage_path)
        if not url:
            raise ValidationFailed("此存储源不支持直接URL访问")
        return create_response("获取直接访问地址成功", {"id": record.id, "url": url}, HTTP_STATUS_OK)

    # ----------------------------
    # 序列化
    # ----------------------------
    @staticmethod
    def serialize(record: File) -> Dict[str, Any]:
        return {
            "id": record.id,
            "name": record.original_name,
            "storage_key": record.name,
            "size": int(record.size or 0),
            "mime_type": record.mime_type,
            "md5_hash": record.md5_hash,
            "folder_id": record.folder_id,
            "storage_source_id": record.storage_source_id,
            "uploaded_by": record.uploaded_by,
            "create_time": format_datetime(record.create_time),
            "update_time": format_datetime(record.update_time),
        }


def serialize_folder(folder: Folder) -> Dict[str, Any]:
    return {
        "id": folder.id,
        "name": folder.name,
        "path": folder.path,
        "parent_id": folder.parent_id,
        "created_by": folder.created_by,
        "create_time": format_datetime(folder.create_time),
        "update_time": format_datetime(folder.update_time),
    }


file_service = FileService(get_settings(), storage_service, quota_ledger)
