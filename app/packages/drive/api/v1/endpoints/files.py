"""文件操作路由。"""

from __future__ import annotations

import io
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from app.packages.drive.api.v1.schemas.files import (
    BatchDeleteBody,
    FileListResponse,
    FileResponse,
    MutationResponse,
    RenameBody,
    TargetBody,
)
from app.packages.drive.core.constants import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from app.packages.drive.core.dependencies import get_db, require_permissions
from app.packages.drive.core.enums import FileSortEnum, SortOrderEnum
from app.packages.drive.models.user import User
from app.packages.drive.services.file_service import file_service
from app.packages.drive.utils.archive import iter_buffer
from app.packages.drive.utils.path_utils import content_disposition

router = APIRouter(prefix="/files", tags=["files"])


@router.get("", response_model=FileListResponse)
def list_files(
    folder_id: Optional[int] = Query(None, alias="folderId"),
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    sort_by: FileSortEnum = Query(FileSortEnum.CREATED_AT, alias="sortBy"),
    sort_order: SortOrderEnum = Query(SortOrderEnum.DESC, alias="sortOrder"),
    keyword: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    _: User = Depends(require_permissions("files.view")),
):
    """列出某个文件夹下的子文件夹（全量）与文件（分页），不传 folderId 表示根目录。"""
    return file_service.list_items(
        db,
        folder_id=folder_id,
        page=page,
        limit=limit,
        sort_by=sort_by,
        sort_order=sort_order,
        keyword=keyword,
    )


@router.post("/upload", response_model=MutationResponse)
def upload_file(
    file: UploadFile = File(...),
    folder_id: Optional[int] = Form(None),
    relative_path: Optional[str] = Form(None),
    storage_source_id: Optional[int] = Form(None),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permissions("files.upload")),
):
    """上传单个文件；``relative_path`` 形如 ``a/b/c.txt`` 时会逐级创建文件夹。"""
    data = file.file.read()
    return file_service.upload(
        db,
        filename=file.filename,
        data=data,
        content_type=file.content_type,
        user=current_user,
        folder_id=folder_id,
        relative_path=relative_path,
        storage_source_id=storage_source_id,
    )


@router.post("/batch-delete", response_model=MutationResponse)
def batch_delete_files(
    payload: BatchDeleteBody,
    db: Session = Depends(get_db),
    _: User = Depends(require_permissions("files.delete")),
):
    return file_service.batch_delete(db, file_ids=payload.file_ids)


@router.get("/{file_id}", response_model=MutationResponse)
def get_file(
    file_id: int,
    db: Session = Depends(get_db),
    _: User = Depends(require_permissions("files.view")),
):
    return file_service.get_detail(db, file_id=file_id)


@router.put("/{file_id}/rename", response_model=FileResponse)
def rename_file(
    file_id: int,
    payload: RenameBody,
    db: Session = Depends(get_db),
    _: User = Depends(require_permissions("files.rename")),
):
    return file_service.rename(db, file_id=file_id, name=payload.name)


@router.post("/{file_id}/move", response_model=FileResponse)
def move_file(
    file_id: int,
    payload: TargetBody,
    db: Session = Depends(get_db),
    _: User = Depends(require_permissions("files.move")),
):
    return file_service.move(db, file_id=file_id, target_folder_id=payload.target_folder_id)


@router.post("/{file_id}/copy", response_model=FileResponse)
def copy_file(
    file_id: int,
    payload: TargetBody,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permissions("files.upload")),
):
    return file_service.copy(db, file_id=file_id, target_folder_id=payload.target_folder_id, user=current_user)


@router.delete("/{file_id}", response_model=MutationResponse)
def delete_file(
    file_id: int,
    db: Session = Depends(get_db),
    _: User = Depends(require_permissions("files.delete")),
):
    return file_service.delete(db, file_id=file_id)


@router.get("/{file_id}/download")
def download_file(
    file_id: int,
    db: Session = Depends(get_db),
    _: User = Depends(require_permissions("files.download")),
):
    record, data = file_service.download(db, file_id=file_id)
    return StreamingResponse(
        iter_buffer(io.BytesIO(data)),
        media_type=record.mime_type or "application/octet-stream",
        headers={
            "Content-Disposition": content_disposition(record.original_name),
            "Content-Length": str(len(data)),
        },
    )


@router.get("/{file_id}/direct-url", response_model=MutationResponse)
def get_direct_url(
    file_id: int,
    db: Session = Depends(get_db),
    _: User = Depends(require_permissions("files.download")),
):
    return file_service.direct_url(db, file_id=file_id)
