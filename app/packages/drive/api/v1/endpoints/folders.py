"""文件夹操作路由。"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from app.packages.drive.api.v1.schemas.files import (
    FolderCreateBody,
    FolderResponse,
    MutationResponse,
    RenameBody,
    TargetBody,
)
from app.packages.drive.core.dependencies import get_db, require_permissions
from app.packages.drive.models.user import User
from app.packages.drive.services.folder_service import folder_service
from app.packages.drive.utils.archive import iter_buffer
from app.packages.drive.utils.path_utils import content_disposition

router = APIRouter(prefix="/folders", tags=["folders"])


@router.post("", response_model=FolderResponse)
def create_folder(
    payload: FolderCreateBody,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permissions("folders.create")),
):
    return folder_service.create(db, name=payload.name, parent_id=payload.parent_id, user=current_user)


@router.get("/{folder_id}", response_model=MutationResponse)
def get_folder(
    folder_id: int,
    db: Session = Depends(get_db),
    _: User = Depends(require_permissions("files.view")),
):
    """文件夹详情，附带从根目录开始的面包屑。"""
    return folder_service.get_detail(db, folder_id=folder_id)


@router.put("/{folder_id}/rename", response_model=FolderResponse)
def rename_folder(
    folder_id: int,
    payload: RenameBody,
    db: Session = Depends(get_db),
    _: User = Depends(require_permissions("folders.rename")),
):
    return folder_service.rename(db, folder_id=folder_id, name=payload.name)


@router.post("/{folder_id}/move", response_model=FolderResponse)
def move_folder(
    folder_id: int,
    payload: TargetBody,
    db: Session = Depends(get_db),
    _: User = Depends(require_permissions("folders.move")),
):
    return folder_service.move(db, folder_id=folder_id, target_folder_id=payload.target_folder_id)


@router.post("/{folder_id}/copy", response_model=MutationResponse)
def copy_folder(
    folder_id: int,
    payload: TargetBody,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permissions("folders.create", "files.upload")),
):
    return folder_service.copy(db, folder_id=folder_id, target_folder_id=payload.target_folder_id, user=current_user)


@router.delete("/{folder_id}", response_model=MutationResponse)
def delete_folder(
    folder_id: int,
    db: Session = Depends(get_db),
    _: User = Depends(require_permissions("folders.delete")),
):
    return folder_service.delete(db, folder_id=folder_id)


@router.get("/{folder_id}/download")
def download_folder(
    folder_id: int,
    db: Session = Depends(get_db),
    _: User = Depends(require_permissions("files.download")),
):
    name, buf = folder_service.build_archive(db, folder_id=folder_id)
    return StreamingResponse(
        iter_buffer(buf),
        media_type="application/zip",
        headers={"Content-Disposition": content_disposition(f"{name}.zip")},
    )
