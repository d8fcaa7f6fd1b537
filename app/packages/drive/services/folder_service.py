"""文件夹服务：新建、详情、重命名、移动、复制、删除与打包下载。

所有对子树的遍历都用显式栈加访问集合，并受 ``MAX_TREE_DEPTH`` 限制，
即使数据库里存在环或异常深的层级也不会无限展开。
"""

from __future__ import annotations

import io
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from app.packages.drive.core.config import Settings, get_settings
from app.packages.drive.core.constants import HTTP_STATUS_OK
from app.packages.drive.core.exceptions import AppException, CyclicMove, DuplicateName, ValidationFailed
from app.packages.drive.core.logger import logger
from app.packages.drive.core.responses import create_response
from app.packages.drive.crud.files import file_crud
from app.packages.drive.crud.folders import folder_crud
from app.packages.drive.models.file import File
from app.packages.drive.models.folder import Folder
from app.packages.drive.models.user import User
from app.packages.drive.services.file_service import FileService, PendingDelete, file_service, serialize_folder
from app.packages.drive.services.quota_ledger import QuotaLedger, quota_ledger
from app.packages.drive.utils.archive import build_zip
from app.packages.drive.utils.path_utils import join_folder_path, rebase_path, unique_name, validate_name

ROOT_CRUMB = {"id": None, "name": "根目录", "path": "/"}


class FolderService:
    def __init__(self, settings: Settings, files: FileService, ledger: QuotaLedger) -> None:
        self.settings = settings
        self.files = files
        self.ledger = ledger

    # ----------------------------
    # 遍历
    # ----------------------------
    def walk_subtree(self, db: Session, root: Folder) -> List[Tuple[Folder, int]]:
        """先序遍历子树（父在子前），返回 ``(folder, depth)`` 列表，根的深度为 0。"""
        ordered: List[Tuple[Folder, int]] = []
        visited: set[int] = set()
        stack: List[Tuple[Folder, int]] = [(root, 0)]
        while stack:
            folder, depth = stack.pop()
            if folder.id in visited:
                logger.warning("Folder %s reached twice while walking subtree of %s, skipping", folder.id, root.id)
                continue
            if depth > self.settings.max_tree_depth:
                raise ValidationFailed("文件夹层级过深")
            visited.add(folder.id)
            ordered.append((folder, depth))
            for child in reversed(folder_crud.list_children(db, folder.id)):
                stack.append((child, depth + 1))
        return ordered

    def ancestors(self, db: Session, folder: Optional[Folder]) -> List[Folder]:
        """沿父指针向上，返回从最外层到 ``folder`` 自身的链。"""
        chain: List[Folder] = []
        visited: set[int] = set()
        current = folder
        while current is not None:
            if current.id in visited or len(chain) > self.settings.max_tree_depth:
                logger.warning("Broken parent chain detected at folder %s", current.id)
                break
            visited.add(current.id)
            chain.append(current)
            current = folder_crud.get(db, current.parent_id) if current.parent_id is not None else None
        chain.reverse()
        return chain

    def breadcrumbs(self, db: Session, folder: Optional[Folder]) -> List[Dict[str, Any]]:
        crumbs = [dict(ROOT_CRUMB)]
        crumbs.extend({"id": item.id, "name": item.name, "path": item.path} for item in self.ancestors(db, folder))
        return crumbs

    # ----------------------------
    # 新建 / 详情
    # ----------------------------
    def create(self, db: Session, *, name: str, parent_id: Optional[int], user: User) -> Dict[str, Any]:
        folder_name = validate_name(name, label="文件夹名称")
        parent = self.files.get_folder(db, parent_id)
        if folder_crud.get_child_by_name(db, parent_id=parent_id, name=folder_name) is not None:
            raise DuplicateName("文件夹已存在")
        folder = folder_crud.create(
            db,
            {
                "name": folder_name,
                "path": join_folder_path(parent.path if parent else None, folder_name),
                "parent_id": parent_id,
                "created_by": user.id,
            },
        )
        return create_response("创建文件夹成功", serialize_folder(folder), HTTP_STATUS_OK)

    def get_detail(self, db: Session, *, folder_id: int) -> Dict[str, Any]:
        folder = self.files.get_folder(db, folder_id)
        data = serialize_folder(folder)
        data["breadcrumbs"] = self.breadcrumbs(db, folder)
        data["folder_count"] = len(folder_crud.list_children(db, folder.id))
        data["file_count"] = len(file_crud.list_in_folder(db, folder.id))
        return create_response("获取文件夹详情成功", data, HTTP_STATUS_OK)

    # ----------------------------
    # 重命名 / 移动
    # ----------------------------
    def _rewrite_paths(self, db: Session, folder: Folder, new_path: str) -> int:
        """把 ``folder`` 及全部后代的 path 前缀换成 ``new_path``，返回改动的文件夹数。"""
        old_path = folder.path
        subtree = self.walk_subtree(db, folder)
        for item, _ in subtree:
            item.path = rebase_path(item.path, old_path, new_path)
            db.add(item)
        return len(subtree)

    def rename(self, db: Session, *, folder_id: int, name: str) -> Dict[str, Any]:
        folder = self.files.get_folder(db, folder_id)
        new_name = validate_name(name, label="文件夹名称")
        if new_name != folder.name:
            sibling = folder_crud.get_child_by_name(db, parent_id=folder.parent_id, name=new_name)
            if sibling is not None and sibling.id != folder.id:
                raise DuplicateName("文件夹已存在")
            parent = folder_crud.get(db, folder.parent_id) if folder.parent_id is not None else None
            try:
                self._rewrite_paths(db, folder, join_folder_path(parent.path if parent else None, new_name))
                folder.name = new_name
                db.commit()
            except Exception:
                db.rollback()
                raise
            db.refresh(folder)
        return create_response("重命名成功", serialize_folder(folder), HTTP_STATUS_OK)

    def move(self, db: Session, *, folder_id: int, target_folder_id: Optional[int]) -> Dict[str, Any]:
        folder = self.files.get_folder(db, folder_id)
        target = self.files.get_folder(db, target_folder_id)

        if target is not None and any(item.id == folder.id for item in self.ancestors(db, target)):
            raise CyclicMove("不能将文件夹移动到自己或子文件夹中")
        if folder.parent_id == target_folder_id:
            return create_response("移动成功", serialize_folder(folder), HTTP_STATUS_OK)
        if folder_crud.get_child_by_name(db, parent_id=target_folder_id, name=folder.name) is not None:
            raise DuplicateName("目标位置已存在同名文件夹")

        try:
            changed = self._rewrite_paths(db, folder, join_folder_path(target.path if target else None, folder.name))
            folder.parent_id = target_folder_id
            db.commit()
        except Exception:
            db.rollback()
            raise
        db.refresh(folder)
        logger.info("Folder %s moved under %s, %s paths rewritten", folder.id, target_folder_id, changed)
        return create_response("移动成功", serialize_folder(folder), HTTP_STATUS_OK)

    # ----------------------------
    # 复制
    # ----------------------------
    def copy(self, db: Session, *, folder_id: int, target_folder_id: Optional[int], user: User) -> Dict[str, Any]:
        """复制整棵子树；单个文件失败时记录并跳过，其余文件继续复制。"""
        source = self.files.get_folder(db, folder_id)
        target = self.files.get_folder(db, target_folder_id)
        plan = self.walk_subtree(db, source)
        top_name = unique_name(source.name, folder_crud.list_child_names(db, target_folder_id))

        get_adapter = self.files.adapter_cache(db)
        mirror: Dict[int, Folder] = {}
        written: List[PendingDelete] = []
        skipped: List[Dict[str, Any]] = []
        try:
            for original, depth in plan:
                if depth == 0:
                    parent_id, parent_path, name = target_folder_id, (target.path if target else None), top_name
                else:
                    parent = mirror[original.parent_id]
                    parent_id, parent_path, name = parent.id, parent.path, original.name
                created = folder_crud.create(
                    db,
                    {
                        "name": name,
                        "path": join_folder_path(parent_path, name),
                        "parent_id": parent_id,
                        "created_by": user.id,
                    },
                    auto_commit=False,
                )
                mirror[original.id] = created
                for record in file_crud.list_in_folder(db, original.id):
                    copied = self._copy_one(db, record, created, get_adapter, user, skipped)
                    if copied is not None:
                        written.append(PendingDelete(copied.storage_source_id, copied.storage_path))
            db.commit()
        except Exception:
            db.rollback()
            self.files.purge(db, written)
            raise

        root_copy = mirror[source.id]
        db.refresh(root_copy)
        if skipped:
            logger.warning("Folder copy %s -> %s skipped %s files", source.id, root_copy.id, len(skipped))
        data = {
            "folder": serialize_folder(root_copy),
            "copied_folders": len(mirror),
            "copied_files": len(written),
            "skipped": skipped,
        }
        return create_response("复制成功", data, HTTP_STATUS_OK)

    def _copy_one(
        self,
        db: Session,
        record: File,
        destination: Folder,
        get_adapter,
        user: User,
        skipped: List[Dict[str, Any]],
    ) -> Optional[File]:
        try:
            self.ledger.ensure_capacity(db, record.storage_source_id, record.size)
            return self.files.copy_record(
                db,
                record,
                target_folder_id=destination.id,
                name=record.original_name,
                adapter=get_adapter(record.storage_source_id),
                user_id=user.id,
            )
        except AppException as exc:
            logger.warning(
                "Skipped file %s (%s) while copying into folder %s: %s",
                record.id,
                record.original_name,
                destination.id,
                exc.msg,
                exc_info=True,
            )
            skipped.append({"id": record.id, "name": record.original_name, "reason": exc.msg})
            return None

    # ----------------------------
    # 删除
    # ----------------------------
    def delete(self, db: Session, *, folder_id: int) -> Dict[str, Any]:
        folder = self.files.get_folder(db, folder_id)
        plan = self.walk_subtree(db, folder)
        try:
            records: List[File] = []
            for item, _ in plan:
                records.extend(file_crud.list_in_folder(db, item.id))
            pending = self.files.remove_records(db, records)
            # 子文件夹先删
            for item, _ in reversed(plan):
                folder_crud.hard_delete(db, item, auto_commit=False)
            db.commit()
        except Exception:
            db.rollback()
            raise
        failures = self.files.purge(db, pending)
        data = {
            "id": folder_id,
            "deleted_folders": len(plan),
            "deleted_files": len(records),
            "orphaned_objects": failures,
        }
        return create_response("删除成功", data, HTTP_STATUS_OK)

    # ----------------------------
    # 打包下载
    # ----------------------------
    def build_archive(self, db: Session, *, folder_id: int) -> Tuple[str, io.BytesIO]:
        folder = self.files.get_folder(db, folder_id)
        get_adapter = self.files.adapter_cache(db)
        entries: List[Tuple[bytes, str]] = []
        for item, _ in self.walk_subtree(db, folder):
            relative_dir = folder.name + item.path[len(folder.path):]
            for record in file_crud.list_in_folder(db, item.id):
                try:
                    data = get_adapter(record.storage_source_id).download(record.storage_path)
                except AppException as exc:
                    logger.warning("Skipped file %s while archiving folder %s: %s", record.id, folder.id, exc.msg)
                    continue
                entries.append((data, f"{relative_dir}/{record.original_name}"))
        if not entries:
            raise ValidationFailed("文件夹为空")
        return folder.name, build_zip(entries)


folder_service = FolderService(get_settings(), file_service, quota_ledger)
