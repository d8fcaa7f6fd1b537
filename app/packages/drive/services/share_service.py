"""分享服务：创建分享快照，并仅依据快照对公开访问做授权。

快照在创建分享时一次性写入 ``share_snapshots``，之后不再修改：
源文件/文件夹被重命名、移动或删除后，分享仍按创建时的内容展示，
只有真正读取字节时才回查实时数据。
"""

from __future__ import annotations

import io
import math
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.packages.drive.core.config import Settings, get_settings
from app.packages.drive.core.constants import HTTP_STATUS_INTERNAL_SERVER_ERROR, HTTP_STATUS_OK
from app.packages.drive.core.enums import ShareTypeEnum
from app.packages.drive.core.exceptions import (
    AppException,
    Expired,
    Forbidden,
    InvalidPassword,
    LimitReached,
    NotFound,
    ValidationFailed,
)
from app.packages.drive.core.logger import logger
from app.packages.drive.core.responses import create_response
from app.packages.drive.core.security import get_password_hash, random_id, verify_password
from app.packages.drive.core.timezone import format_datetime, is_past, isoformat, to_local
from app.packages.drive.crud.files import file_crud
from app.packages.drive.crud.folders import folder_crud
from app.packages.drive.crud.shares import share_crud, snapshot_crud
from app.packages.drive.models.file import File
from app.packages.drive.models.folder import Folder
from app.packages.drive.models.share import Share
from app.packages.drive.models.user import User
from app.packages.drive.services.file_service import FileService, file_service
from app.packages.drive.utils.archive import build_zip

# 公开接口中不返回的内部字段
_PRIVATE_FILE_FIELDS = ("storage_path", "storage_source_id")
TOKEN_ATTEMPTS = 5


def file_snapshot(record: File) -> Dict[str, Any]:
    return {
        "id": record.id,
        "name": record.name,
        "original_name": record.original_name,
        "size": int(record.size or 0),
        "mime_type": record.mime_type,
        "md5_hash": record.md5_hash,
        "storage_path": record.storage_path,
        "storage_source_id": record.storage_source_id,
        "created_at": isoformat(record.create_time),
        "updated_at": isoformat(record.update_time),
    }


def _folder_node(folder: Folder) -> Dict[str, Any]:
    return {
        "id": folder.id,
        "name": folder.name,
        "path": folder.path,
        "created_at": isoformat(folder.create_time),
        "updated_at": isoformat(folder.update_time),
    }


def public_file(entry: Dict[str, Any]) -> Dict[str, Any]:
    return {key: value for key, value in entry.items() if key not in _PRIVATE_FILE_FIELDS}


def public_folder(node: Dict[str, Any]) -> Dict[str, Any]:
    return {key: node.get(key) for key in ("id", "name", "path", "created_at", "updated_at")}


def find_snapshot_file(share_type: str, snapshot: Dict[str, Any], file_id: int) -> Optional[Dict[str, Any]]:
    """在快照中查找文件条目，找不到返回 ``None``。

    文件夹快照按 ``contents`` / ``children`` 逐层线性扫描，耗时与快照大小成正比。
    """
    if share_type == ShareTypeEnum.FILE.value:
        return snapshot if snapshot.get("id") == file_id else None
    stack = [snapshot.get("contents") or {}]
    while stack:
        contents = stack.pop()
        for entry in contents.get("files") or []:
            if entry.get("id") == file_id:
                return entry
        for node in contents.get("folders") or []:
            stack.append(node.get("children") or {})
    return None


def find_snapshot_folder(snapshot: Dict[str, Any], folder_id: int) -> Optional[List[Dict[str, Any]]]:
    """返回从快照根到目标文件夹的节点链，找不到返回 ``None``。"""
    if snapshot.get("id") == folder_id:
        return [snapshot]
    stack: List[Tuple[Dict[str, Any], List[Dict[str, Any]]]] = [(snapshot, [snapshot])]
    while stack:
        node, trail = stack.pop()
        contents = node.get("contents") if node is snapshot else node.get("children")
        for child in (contents or {}).get("folders") or []:
            child_trail = trail + [child]
            if child.get("id") == folder_id:
                return child_trail
            stack.append((child, child_trail))
    return None


class ShareService:
    def __init__(self, settings: Settings, files: FileService) -> None:
        self.settings = settings
        self.files = files

    # ----------------------------
    # 创建
    # ----------------------------
    def create_share(
        self,
        db: Session,
        *,
        user: User,
        file_id: Optional[int] = None,
        folder_id: Optional[int] = None,
        password: Optional[str] = None,
        expires_at: Optional[datetime] = None,
        download_limit: Optional[int] = None,
    ) -> Dict[str, Any]:
        if (file_id is None) == (folder_id is None):
            raise ValidationFailed("必须且只能指定一个文件或文件夹")
        if expires_at is not None and is_past(expires_at):
            raise ValidationFailed("过期时间必须晚于当前时间")
        if download_limit is not None and download_limit < 1:
            raise ValidationFailed("下载次数限制必须大于 0")

        if file_id is not None:
            share_type = ShareTypeEnum.FILE.value
            snapshot_data = file_snapshot(self.files.get_file_or_404(db, file_id))
        else:
            if folder_id <= 0:
                raise ValidationFailed("文件夹ID无效")
            share_type = ShareTypeEnum.FOLDER.value
            snapshot_data = self.folder_snapshot(db, self.files.get_folder(db, folder_id))

        password = (password or "").strip() or None
        try:
            snapshot = snapshot_crud.create(db, {"type": share_type, "snapshot_data": snapshot_data}, auto_commit=False)
            share = share_crud.create(
                db,
                {
                    "share_token": self._generate_token(db),
                    "type": share_type,
                    "snapshot_id": snapshot.id,
                    "original_file_id": file_id,
                    "original_folder_id": folder_id,
                    "password_hash": get_password_hash(password) if password else None,
                    "expires_at": to_local(expires_at),
                    "download_limit": download_limit,
                    "download_count": 0,
                    "view_count": 0,
                    "is_active": True,
                    "created_by": user.id,
                },
                auto_commit=False,
            )
            db.commit()
        except Exception:
            db.rollback()
            raise
        db.refresh(share)
        logger.info("Share %s created for %s %s by user %s", share.id, share_type, file_id or folder_id, user.id)
        return create_response("创建分享成功", self.serialize(share), HTTP_STATUS_OK)

    def _generate_token(self, db: Session) -> str:
        for _ in range(TOKEN_ATTEMPTS):
            token = random_id(self.settings.share_token_length)
            if not share_crud.token_exists(db, token):
                return token
        raise AppException("生成分享链接失败，请重试", HTTP_STATUS_INTERNAL_SERVER_ERROR)

    def folder_snapshot(self, db: Session, folder: Folder) -> Dict[str, Any]:
        """把文件夹当前的整棵子树冻结成嵌套 JSON。"""
        root = _folder_node(folder)
        root["contents"] = {"folders": [], "files": []}
        total_files = total_folders = total_size = 0

        visited: set[int] = set()
        stack: List[Tuple[Folder, Dict[str, Any], int]] = [(folder, root["contents"], 0)]
        while stack:
            current, contents, depth = stack.pop()
            if current.id in visited:
                continue
            if depth > self.settings.max_tree_depth:
                raise ValidationFailed("文件夹层级过深")
            visited.add(current.id)

            for record in file_crud.list_in_folder(db, current.id):
                contents["files"].append(file_snapshot(record))
                total_files += 1
                total_size += int(record.size or 0)
            for child in folder_crud.list_children(db, current.id):
                node = _folder_node(child)
                node["children"] = {"folders": [], "files": []}
                contents["folders"].append(node)
                total_folders += 1
                stack.append((child, node["children"], depth + 1))

        root.update(total_files=total_files, total_folders=total_folders, total_size=total_size)
        return root

    # ----------------------------
    # 公开访问：校验
    # ----------------------------
    def load_share(self, db: Session, token: str) -> Share:
        share = share_crud.get_by_token(db, token)
        if share is None or not share.is_active:
            raise NotFound("分享不存在或已失效")
        if is_past(share.expires_at):
            raise Expired("分享已过期")
        return share

    @staticmethod
    def check_password(share: Share, password: Optional[str]) -> None:
        if not share.password_hash:
            return
        if not password:
            raise InvalidPassword("此分享需要密码")
        if not verify_password(password, share.password_hash):
            raise InvalidPassword("密码错误")

    @staticmethod
    def check_limit(share: Share) -> None:
        if share.download_limit is not None and share.download_count >= share.download_limit:
            raise LimitReached("下载次数已达上限")

    def _open(self, db: Session, token: str, password: Optional[str]) -> Share:
        share = self.load_share(db, token)
        self.check_password(share, password)
        return share

    def _bump_view(self, db: Session, share_id: int) -> None:
        """浏览计数只做尽力而为的原子自增，失败不影响访问。"""
        try:
            db.query(Share).filter(Share.id == share_id).update(
                {Share.view_count: Share.view_count + 1}, synchronize_session=False
            )
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            logger.warning("Failed to record view for share %s", share_id, exc_info=True)

    # ----------------------------
    # 公开访问：信息与导航
    # ----------------------------
    def get_info(self, db: Session, *, token: str, password: Optional[str] = None) -> Dict[str, Any]:
        share = self.load_share(db, token)
        share_id, share_type = share.id, share.type
        name = self._display_name(share)
        if share.password_hash and not (password and verify_password(password, share.password_hash)):
            self._bump_view(db, share_id)
            return create_response(
                "此分享需要密码",
                {"require_password": True, "name": name, "type": share_type},
                HTTP_STATUS_OK,
            )

        data = self.serialize_public(share)
        self._bump_view(db, share_id)
        return create_response("获取分享信息成功", data, HTTP_STATUS_OK)

    def verify(self, db: Session, *, token: str, password: Optional[str]) -> Dict[str, Any]:
        share = self.load_share(db, token)
        if not share.password_hash:
            raise ValidationFailed("此分享无需密码")
        if not password:
            raise ValidationFailed("请输入密码")
        if not verify_password(password, share.password_hash):
            raise InvalidPassword("密码错误")
        return create_response("密码验证成功", {"verified": True}, HTTP_STATUS_OK)

    def browse(
        self,
        db: Session,
        *,
        token: str,
        folder_id: Optional[int] = None,
        password: Optional[str] = None,
    ) -> Dict[str, Any]:
        share = self._open(db, token, password)
        if share.type != ShareTypeEnum.FOLDER.value:
            raise ValidationFailed("此分享不是文件夹")
        root = share.snapshot.snapshot_data
        trail = [root] if folder_id is None else find_snapshot_folder(root, folder_id)
        if trail is None:
            raise NotFound("文件夹不在此分享中")

        node = trail[-1]
        contents = (node.get("contents") if node is root else node.get("children")) or {}
        data = {
            "folder": public_folder(node),
            "breadcrumbs": [{"id": item.get("id"), "name": item.get("name")} for item in trail],
            "folders": [public_folder(item) for item in contents.get("folders") or []],
            "files": [public_file(item) for item in contents.get("files") or []],
        }
        return create_response("获取分享内容成功", data, HTTP_STATUS_OK)

    # ----------------------------
    # 公开访问：下载
    # ----------------------------
    def download_link(
        self,
        db: Session,
        *,
        token: str,
        password: Optional[str] = None,
        file_id: Optional[int] = None,
    ) -> Dict[str, Any]:
        share = self._open(db, token, password)
        self.check_limit(share)
        base = f"{self.settings.api_v1_str}/public/shares/{token}"
        snapshot = share.snapshot.snapshot_data
        if share.type == ShareTypeEnum.FILE.value:
            url = f"{base}/files/{snapshot.get('id')}"
        elif file_id is None:
            url = f"{base}/archive"
        else:
            if find_snapshot_file(share.type, snapshot, file_id) is None:
                raise NotFound("文件不在此分享中")
            url = f"{base}/files/{file_id}"
        remaining = None
        if share.download_limit is not None:
            remaining = max(share.download_limit - share.download_count, 0)
        return create_response("获取下载链接成功", {"download_url": url, "remaining": remaining}, HTTP_STATUS_OK)

    def record_download(self, db: Session, *, token: str, password: Optional[str] = None) -> Dict[str, Any]:
        share = self._open(db, token, password)
        self.check_limit(share)
        share_id = share.id
        try:
            updated = (
                db.query(Share)
                .filter(
                    Share.id == share_id,
                    or_(Share.download_limit.is_(None), Share.download_count < Share.download_limit),
                )
                .update({Share.download_count: Share.download_count + 1}, synchronize_session=False)
            )
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            logger.warning("Failed to record download for share %s", share_id, exc_info=True)
            return create_response("下载记录失败", None, HTTP_STATUS_OK)
        if not updated:
            raise LimitReached("下载次数已达上限")
        count = db.query(Share.download_count).filter(Share.id == share_id).scalar()
        return create_response("记录下载成功", {"download_count": int(count or 0)}, HTTP_STATUS_OK)

    def record_view(self, db: Session, *, token: str) -> Dict[str, Any]:
        share = share_crud.get_by_token(db, token)
        if share is not None:
            self._bump_view(db, share.id)
        return create_response("记录浏览成功", None, HTTP_STATUS_OK)

    def serve_file(
        self,
        db: Session,
        *,
        token: str,
        file_id: int,
        password: Optional[str] = None,
    ) -> Tuple[str, str, bytes]:
        """按快照授权后读取实时文件，返回 ``(文件名, mime, bytes)``。不增加下载计数。"""
        share = self._open(db, token, password)
        self.check_limit(share)
        entry = find_snapshot_file(share.type, share.snapshot.snapshot_data, file_id)
        if entry is None:
            raise Forbidden("无权访问此文件")

        record = file_crud.get(db, file_id)
        if record is None:
            raise NotFound("文件已被删除")
        try:
            data = self.files.read_bytes(db, record)
        except NotFound as exc:
            raise NotFound("文件已被删除") from exc
        return record.original_name, record.mime_type, data

    def build_archive(self, db: Session, *, token: str, password: Optional[str] = None) -> Tuple[str, io.BytesIO]:
        """按快照条目打包仍然存在的文件。"""
        share = self._open(db, token, password)
        self.check_limit(share)
        if share.type != ShareTypeEnum.FOLDER.value:
            raise ValidationFailed("此分享不是文件夹")

        root = share.snapshot.snapshot_data
        root_name = root.get("name") or "share"
        entries: List[Tuple[bytes, str]] = []
        stack: List[Tuple[Dict[str, Any], str]] = [(root.get("contents") or {}, root_name)]
        while stack:
            contents, prefix = stack.pop()
            for entry in contents.get("files") or []:
                record = file_crud.get(db, entry.get("id"))
                if record is None:
                    continue
                try:
                    data = self.files.read_bytes(db, record)
                except AppException as exc:
                    logger.warning("Skipped file %s while archiving share %s: %s", record.id, share.id, exc.msg)
                    continue
                entries.append((data, f"{prefix}/{entry.get('original_name') or record.original_name}"))
            for node in contents.get("folders") or []:
                stack.append((node.get("children") or {}, f"{prefix}/{node.get('name')}"))
        if not entries:
            raise ValidationFailed("文件夹为空")
        return root_name, build_zip(entries)

    # ----------------------------
    # 分享管理
    # ----------------------------
    def list_shares(
        self,
        db: Session,
        *,
        user: User,
        include_all: bool = False,
        page: int = 1,
        limit: int = 20,
    ) -> Dict[str, Any]:
        page = max(int(page), 1)
        limit = max(int(limit), 1)
        items, total = share_crud.list_paginated(
            db,
            created_by=None if include_all else user.id,
            skip=(page - 1) * limit,
            limit=limit,
        )
        data = {
            "items": [self.serialize(item) for item in items],
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "total_pages": math.ceil(total / limit) if total else 0,
            },
        }
        return create_response("获取分享列表成功", data, HTTP_STATUS_OK)

    def _get_owned(self, db: Session, share_id: int, user: User, can_manage: bool) -> Share:
        share = share_crud.get(db, share_id)
        if share is None:
            raise NotFound("分享不存在")
        if share.created_by != user.id and not can_manage:
            raise Forbidden("无权操作此分享")
        return share

    def set_active(
        self,
        db: Session,
        *,
        share_id: int,
        is_active: bool,
        user: User,
        can_manage: bool = False,
    ) -> Dict[str, Any]:
        share = self._get_owned(db, share_id, user, can_manage)
        share.is_active = is_active
        share = share_crud.save(db, share)
        msg = "分享已启用" if is_active else "分享已停用"
        return create_response(msg, self.serialize(share), HTTP_STATUS_OK)

    def delete_share(self, db: Session, *, share_id: int, user: User, can_manage: bool = False) -> Dict[str, Any]:
        share = self._get_owned(db, share_id, user, can_manage)
        snapshot = share.snapshot
        try:
            share_crud.hard_delete(db, share, auto_commit=False)
            if snapshot is not None:
                snapshot_crud.hard_delete(db, snapshot, auto_commit=False)
            db.commit()
        except Exception:
            db.rollback()
            raise
        return create_response("删除分享成功", {"id": share_id}, HTTP_STATUS_OK)

    # ----------------------------
    # 序列化
    # ----------------------------
    @staticmethod
    def _display_name(share: Share) -> Optional[str]:
        snapshot = share.snapshot.snapshot_data if share.snapshot is not None else {}
        if share.type == ShareTypeEnum.FILE.value:
            return snapshot.get("original_name")
        return snapshot.get("name")

    def serialize(self, share: Share) -> Dict[str, Any]:
        return {
            "id": share.id,
            "share_token": share.share_token,
            "type": share.type,
            "name": self._display_name(share),
            "original_file_id": share.original_file_id,
            "original_folder_id": share.original_folder_id,
            "require_password": bool(share.password_hash),
            "expires_at": format_datetime(share.expires_at),
            "is_expired": is_past(share.expires_at),
            "download_limit": share.download_limit,
            "download_count": share.download_count,
            "view_count": share.view_count,
            "is_active": share.is_active,
            "created_by": share.created_by,
            "create_time": format_datetime(share.create_time),
            "share_path": f"{self.settings.api_v1_str}/public/shares/{share.share_token}",
        }

    def serialize_public(self, share: Share) -> Dict[str, Any]:
        snapshot = share.snapshot.snapshot_data
        if share.type == ShareTypeEnum.FILE.value:
            item = public_file(snapshot)
        else:
            item = public_folder(snapshot)
            item.update(
                total_files=snapshot.get("total_files", 0),
                total_folders=snapshot.get("total_folders", 0),
                total_size=snapshot.get("total_size", 0),
            )
        return {
            "share_token": share.share_token,
            "type": share.type,
            "name": self._display_name(share),
            "require_password": bool(share.password_hash),
            "expires_at": format_datetime(share.expires_at),
            "download_limit": share.download_limit,
            "download_count": share.download_count,
            "view_count": share.view_count,
            "create_time": format_datetime(share.create_time),
            "item": item,
        }


share_service = ShareService(get_settings(), file_service)
