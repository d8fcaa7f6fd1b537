"""存储源管理路由。"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.packages.drive.api.v1.schemas.storage import (
    StorageSourceCreate,
    StorageSourceDetailResponse,
    StorageSourceListResponse,
    StorageSourceResponse,
    StorageSourceUpdate,
    StorageTestRequest,
    StorageTestResponse,
)
from app.packages.drive.core.dependencies import get_db, require_permissions
from app.packages.drive.models.user import User
from app.packages.drive.services.storage_service import storage_service

router = APIRouter(prefix="/storage-sources", tags=["storage-sources"])


@router.get("", response_model=StorageSourceListResponse)
def list_storage_sources(
    db: Session = Depends(get_db),
    _: User = Depends(require_permissions("storage.view")),
):
    """列出全部存储源，敏感配置项以掩码返回。"""
    return storage_service.list_sources(db)


@router.post("", response_model=StorageSourceResponse)
def create_storage_source(
    payload: StorageSourceCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permissions("storage.manage")),
):
    return storage_service.create_source(db, payload.model_dump(), created_by=current_user.id)


@router.post("/test", response_model=StorageTestResponse)
def test_storage_config(
    payload: StorageTestRequest,
    _: User = Depends(require_permissions("storage.test")),
):
    """在保存前测试一份配置能否连通。"""
    return storage_service.test_config(payload.model_dump())


@router.get("/{source_id}", response_model=StorageSourceDetailResponse)
def get_storage_source(
    source_id: int,
    db: Session = Depends(get_db),
    _: User = Depends(require_permissions("storage.view")),
):
    return storage_service.get_source(db, source_id=source_id)


@router.put("/{source_id}", response_model=StorageSourceResponse)
def update_storage_source(
    source_id: int,
    payload: StorageSourceUpdate,
    db: Session = Depends(get_db),
    _: User = Depends(require_permissions("storage.manage")),
):
    return storage_service.update_source(db, source_id=source_id, payload=payload.model_dump(exclude_unset=True))


@router.delete("/{source_id}", response_model=StorageTestResponse)
def delete_storage_source(
    source_id: int,
    db: Session = Depends(get_db),
    _: User = Depends(require_permissions("storage.manage")),
):
    return storage_service.delete_source(db, source_id=source_id)


@router.post("/{source_id}/test", response_model=StorageTestResponse)
def test_storage_source(
    source_id: int,
    db: Session = Depends(get_db),
    _: User = Depends(require_permissions("storage.test")),
):
    return storage_service.test_source(db, source_id=source_id)


@router.post("/{source_id}/reconcile", response_model=StorageTestResponse)
def reconcile_storage_source(
    source_id: int,
    db: Session = Depends(get_db),
    _: User = Depends(require_permissions("storage.manage")),
):
    """按文件表重新计算已用空间。"""
    return storage_service.reconcile_source(db, source_id=source_id)
