"""存储源服务：存储源的增删改查、连接测试、配额核对，以及为其他服务挑选并构造适配器。"""

from __future__ import annotations

from typing import Any, Dict, Mapping, Optional

from sqlalchemy.orm import Session

from app.packages.drive.core.config import Settings, get_settings
from app.packages.drive.core.constants import HTTP_STATUS_OK
from app.packages.drive.core.enums import StorageTypeEnum
from app.packages.drive.core.exceptions import AppException, DuplicateName, NotFound, ValidationFailed
from app.packages.drive.core.logger import logger
from app.packages.drive.core.responses import create_response
from app.packages.drive.core.timezone import format_datetime
from app.packages.drive.crud.storage_source import storage_source_crud
from app.packages.drive.models.storage import StorageSource
from app.packages.drive.services.quota_ledger import QuotaLedger, quota_ledger
from app.packages.drive.services.storage_backends import (
    StorageAdapterFactory,
    StorageBackend,
    adapter_factory,
    resolve_storage_type,
)
from app.packages.drive.utils.path_utils import validate_name

MASK = "******"
_SECRET_MARKERS = ("secret", "token", "password", "authorization", "api_key")


def _is_secret(key: str) -> bool:
    lowered = key.lower()
    return any(marker in lowered for marker in _SECRET_MARKERS)


def mask_config(config: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """隐藏密钥类字段，``headers`` 中的值一律隐藏。"""
    masked: Dict[str, Any] = {}
    for key, value in (config or {}).items():
        if key == "headers" and isinstance(value, Mapping):
            masked[key] = {name: MASK for name in value}
        elif _is_secret(key) and value:
            masked[key] = MASK
        else:
            masked[key] = value
    return masked


class StorageService:
    def __init__(self, settings: Settings, factory: StorageAdapterFactory, ledger: QuotaLedger) -> None:
        self.settings = settings
        self.factory = factory
        self.ledger = ledger

    # ----------------------------
    # 供其他服务使用
    # ----------------------------
    def adapter_for(self, source: StorageSource) -> StorageBackend:
        adapter = self.factory.create(source.type, source.config)
        adapter.initialize()
        return adapter

    def resolve_source(self, db: Session, source_id: Optional[int] = None) -> StorageSource:
        """显式指定时使用该存储源，否则取优先级最高的可用存储源。"""
        if source_id is not None:
            source = storage_source_crud.get(db, source_id)
            if source is None:
                raise NotFound("存储源不存在")
            if not source.is_active:
                raise ValidationFailed("存储源未启用")
            return source
        source = storage_source_crud.get_best_active(db)
        if source is None:
            raise ValidationFailed("没有可用的存储源")
        return source

    def get_source_or_404(self, db: Session, source_id: int) -> StorageSource:
        source = storage_source_crud.get(db, source_id)
        if source is None:
            raise NotFound("存储源不存在")
        return source

    # ----------------------------
    # 列表与详情
    # ----------------------------
    def list_sources(self, db: Session) -> Dict[str, Any]:
        items = storage_source_crud.list_all(db)
        return create_response("获取存储源列表成功", [self._serialize(item) for item in items], HTTP_STATUS_OK)

    def get_source(self, db: Session, *, source_id: int) -> Dict[str, Any]:
        source = self.get_source_or_404(db, source_id)
        return create_response("获取存储源详情成功", self._serialize_detail(db, source), HTTP_STATUS_OK)

    # ----------------------------
    # 新增 / 更新 / 删除
    # ----------------------------
    def create_source(self, db: Session, payload: Mapping[str, Any], *, created_by: Optional[int] = None) -> Dict[str, Any]:
        name = validate_name(payload.get("name"), label="存储源名称")
        if storage_source_crud.get_by_name(db, name) is not None:
            raise DuplicateName("存储源名称已存在")

        storage_type, _ = resolve_storage_type(payload.get("type"))
        config = dict(payload.get("config") or {})
        self._prepare_backend(storage_type, config)

        quota_limit = payload.get("quota_limit")
        quota_limit = self.settings.default_quota_limit if quota_limit is None else int(quota_limit)
        if quota_limit <= 0:
            raise ValidationFailed("配额上限必须大于 0")

        created = storage_source_crud.create(
            db,
            {
                "name": name,
                "type": storage_type.value,
                "config": config,
                "priority": int(payload.get("priority") or 0),
                "quota_limit": quota_limit,
                "quota_used": 0,
                "is_active": bool(payload.get("is_active", True)),
                "created_by": created_by,
            },
        )
        logger.info("Storage source %s (%s) created", created.name, created.type)
        return create_response("创建存储源成功", self._serialize(created), HTTP_STATUS_OK)

    def update_source(self, db: Session, *, source_id: int, payload: Mapping[str, Any]) -> Dict[str, Any]:
        source = self.get_source_or_404(db, source_id)

        if "name" in payload and payload["name"] is not None:
            name = validate_name(payload["name"], label="存储源名称")
            if name != source.name and storage_source_crud.get_by_name(db, name) is not None:
                raise DuplicateName("存储源名称已存在")
            source.name = name

        if payload.get("type") is not None or payload.get("config") is not None:
            storage_type, _ = resolve_storage_type(payload.get("type") or source.type)
            if storage_type.value != source.type and storage_source_crud.count_files(db, source.id):
                raise ValidationFailed("存储源中仍有文件，不能修改类型")
            config = self._merge_masked(source.config or {}, payload.get("config"))
            self._prepare_backend(storage_type, config)
            source.type = storage_type.value
            source.config = config

        if payload.get("priority") is not None:
            source.priority = int(payload["priority"])

        if payload.get("quota_limit") is not None:
            quota_limit = int(payload["quota_limit"])
            used, _ = self.ledger.read(db, source.id)
            if quota_limit <= 0 or quota_limit < used:
                raise ValidationFailed("配额上限必须大于 0 且不小于已用空间")
            source.quota_limit = quota_limit

        if payload.get("is_active") is not None:
            source.is_active = bool(payload["is_active"])

        saved = storage_source_crud.save(db, source)
        return create_response("更新存储源成功", self._serialize(saved), HTTP_STATUS_OK)

    def delete_source(self, db: Session, *, source_id: int) -> Dict[str, Any]:
        source = self.get_source_or_404(db, source_id)
        if storage_source_crud.count_files(db, source.id):
            raise ValidationFailed("存储源中仍有文件，无法删除")
        if source.type == StorageTypeEnum.LOCAL.value and not storage_source_crud.count_active_except(db, source.id):
            raise ValidationFailed("至少需要保留一个可用的存储源，无法删除本地存储")
        storage_source_crud.hard_delete(db, source)
        logger.info("Storage source %s deleted", source_id)
        return create_response("删除存储源成功", None, HTTP_STATUS_OK)

    # ----------------------------
    # 连接测试与配额核对
    # ----------------------------
    def test_config(self, payload: Mapping[str, Any]) -> Dict[str, Any]:
        """测试未保存的配置，失败时返回 ``success=False`` 而不抛异常。"""
        try:
            adapter = self.factory.create(payload.get("type"), payload.get("config") or {})
            adapter.initialize()
            ok = adapter.test_connection()
        except AppException as exc:
            return create_response("连接失败：" + exc.msg, {"success": False}, HTTP_STATUS_OK)
        if not ok:
            return create_response("连接失败", {"success": False}, HTTP_STATUS_OK)
        return create_response("连接测试成功", {"success": True}, HTTP_STATUS_OK)

    def test_source(self, db: Session, *, source_id: int) -> Dict[str, Any]:
        """测试已保存的存储源，并按结果更新 ``is_active``。"""
        source = self.get_source_or_404(db, source_id)
        try:
            ok = self.adapter_for(source).test_connection()
        except AppException as exc:
            logger.warning("Storage source %s test failed: %s", source.id, exc.msg)
            ok = False
        if source.is_active != ok:
            logger.info("Storage source %s is_active %s -> %s", source.id, source.is_active, ok)
            source.is_active = ok
            storage_source_crud.save(db, source)
        msg = "连接测试成功" if ok else "连接失败，存储源已停用"
        return create_response(msg, {"success": ok, "is_active": source.is_active}, HTTP_STATUS_OK)

    def reconcile_source(self, db: Session, *, source_id: int) -> Dict[str, Any]:
        source = self.get_source_or_404(db, source_id)
        try:
            before, after = self.ledger.reconcile(db, source.id)
            db.commit()
        except Exception:
            db.rollback()
            raise
        return create_response(
            "配额核对完成",
            {"id": source.id, "quota_used_before": before, "quota_used": after},
            HTTP_STATUS_OK,
        )

    # ----------------------------
    # 工具方法
    # ----------------------------
    def _prepare_backend(self, storage_type: StorageTypeEnum, config: Mapping[str, Any]) -> None:
        """按变体解析配置（缺字段立即失败），并执行适配器的初始化步骤。"""
        adapter = self.factory.create(storage_type, config)
        adapter.initialize()

    @staticmethod
    def _merge_masked(existing: Mapping[str, Any], incoming: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
        if incoming is None:
            return dict(existing)
        merged = dict(incoming)
        for key, value in incoming.items():
            if value == MASK and key in existing:
                merged[key] = existing[key]
            elif key == "headers" and isinstance(value, Mapping) and isinstance(existing.get(key), Mapping):
                merged[key] = {
                    name: existing[key].get(name, header) if header == MASK else header
                    for name, header in value.items()
                }
        return merged

    def _serialize(self, source: StorageSource) -> Dict[str, Any]:
        return {
            "id": source.id,
            "name": source.name,
            "type": source.type,
            "config": mask_config(source.config),
            "priority": source.priority,
            "quota_used": int(source.quota_used or 0),
            "quota_limit": int(source.quota_limit or 0),
            "is_active": source.is_active,
            "created_by": source.created_by,
            "create_time": format_datetime(source.create_time),
            "update_time": format_datetime(source.update_time),
        }

    def _serialize_detail(self, db: Session, source: StorageSource) -> Dict[str, Any]:
        data = self._serialize(source)
        used, limit = self.ledger.read(db, source.id)
        data["quota_used"] = used
        data["file_count"] = storage_source_crud.count_files(db, source.id)
        data["usage_percent"] = round(used / limit * 100, 2) if limit else 0
        data["remaining"] = max(limit - used, 0)
        return data


storage_service = StorageService(get_settings(), adapter_factory, quota_ledger)
