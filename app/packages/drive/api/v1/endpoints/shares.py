"""分享路由：登录用户的分享管理，以及无需登录的公开访问接口。"""

from __future__ import annotations

import io
from typing import Optional

from fastapi import APIRouter, Depends, Header, Query
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from app.packages.drive.api.v1.schemas.shares import (
    PublicShareResponse,
    ShareCreateRequest,
    ShareListResponse,
    SharePasswordRequest,
    ShareResponse,
    ShareStatusRequest,
)
from app.packages.drive.core.dependencies import get_db, require_any_permission, require_permissions
from app.packages.drive.core.exceptions import Forbidden
from app.packages.drive.core.logger import logger
from app.packages.drive.models.user import User
from app.packages.drive.services.rbac_service import rbac_service
from app.packages.drive.services.share_service import share_service
from app.packages.drive.utils.archive import iter_buffer
from app.packages.drive.utils.path_utils import content_disposition

MANAGE_PERMISSION = "shares.manage"

router = APIRouter(prefix="/shares", tags=["shares"])
public_router = APIRouter(prefix="/public/shares", tags=["public-shares"])


def share_password(
    x_share_password: Optional[str] = Header(None),
    password: Optional[str] = Query(None, deprecated=True),
) -> Optional[str]:
    """分享密码通过请求头 ``X-Share-Password`` 传递。

    查询参数 ``password`` 仅为兼容旧客户端保留，会出现在访问日志中，同时提供时以请求头为准。
    """
    if x_share_password:
        return x_share_password
    if password:
        logger.debug("Share password supplied via deprecated query parameter")
    return password


# ----------------------------
# 分享管理
# ----------------------------
@router.post("", response_model=ShareResponse)
def create_share(
    payload: ShareCreateRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permissions("files.share")),
):
    """为文件或文件夹创建分享，内容在此刻被冻结为快照。"""
    return share_service.create_share(
        db,
        user=current_user,
        file_id=payload.file_id,
        folder_id=payload.folder_id,
        password=payload.password,
        expires_at=payload.expires_at,
        download_limit=payload.download_limit,
    )


@router.get("", response_model=ShareListResponse)
def list_shares(
    include_all: bool = Query(False, alias="all"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_any_permission("shares.view", "files.share")),
):
    if include_all and not rbac_service.has_permissions(db, current_user, [MANAGE_PERMISSION]):
        raise Forbidden("权限不足")
    return share_service.list_shares(db, user=current_user, include_all=include_all, page=page, limit=limit)


@router.patch("/{share_id}/status", response_model=ShareResponse)
def update_share_status(
    share_id: int,
    payload: ShareStatusRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_any_permission("shares.view", "files.share")),
):
    return share_service.set_active(
        db,
        share_id=share_id,
        is_active=payload.is_active,
        user=current_user,
        can_manage=rbac_service.has_permissions(db, current_user, [MANAGE_PERMISSION]),
    )


@router.delete("/{share_id}", response_model=PublicShareResponse)
def delete_share(
    share_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_any_permission("shares.view", "files.share")),
):
    return share_service.delete_share(
        db,
        share_id=share_id,
        user=current_user,
        can_manage=rbac_service.has_permissions(db, current_user, [MANAGE_PERMISSION]),
    )


# ----------------------------
# 公开访问
# ----------------------------
@public_router.get("/{token}", response_model=PublicShareResponse)
def get_share_info(
    token: str,
    password: Optional[str] = Depends(share_password),
    db: Session = Depends(get_db),
):
    """分享基本信息；设置了密码而未提供正确密码时只返回名称与类型。"""
    return share_service.get_info(db, token=token, password=password)


@public_router.post("/{token}/verify", response_model=PublicShareResponse)
def verify_share_password(token: str, payload: SharePasswordRequest, db: Session = Depends(get_db)):
    return share_service.verify(db, token=token, password=payload.password)


@public_router.get("/{token}/contents", response_model=PublicShareResponse)
def browse_share(
    token: str,
    folder_id: Optional[int] = Query(None, alias="folderId"),
    password: Optional[str] = Depends(share_password),
    db: Session = Depends(get_db),
):
    return share_service.browse(db, token=token, folder_id=folder_id, password=password)


@public_router.get("/{token}/download", response_model=PublicShareResponse)
def get_download_link(
    token: str,
    file_id: Optional[int] = Query(None, alias="fileId"),
    password: Optional[str] = Depends(share_password),
    db: Session = Depends(get_db),
):
    return share_service.download_link(db, token=token, password=password, file_id=file_id)


@public_router.post("/{token}/download", response_model=PublicShareResponse)
def record_download(
    token: str,
    password: Optional[str] = Depends(share_password),
    db: Session = Depends(get_db),
):
    """下载完成后由客户端调用，计数受 ``download_limit`` 约束。"""
    return share_service.record_download(db, token=token, password=password)


@public_router.post("/{token}/view", response_model=PublicShareResponse)
def record_view(token: str, db: Session = Depends(get_db)):
    return share_service.record_view(db, token=token)


@public_router.get("/{token}/files/{file_id}")
def download_shared_file(
    token: str,
    file_id: int,
    password: Optional[str] = Depends(share_password),
    db: Session = Depends(get_db),
):
    name, mime_type, data = share_service.serve_file(db, token=token, file_id=file_id, password=password)
    return StreamingResponse(
        iter_buffer(io.BytesIO(data)),
        media_type=mime_type or "application/octet-stream",
        headers={"Content-Disposition": content_disposition(name), "Content-Length": str(len(data))},
    )


@public_router.get("/{token}/archive")
def download_shared_archive(
    token: str,
    password: Optional[str] = Depends(share_password),
    db: Session = Depends(get_db),
):
    name, buf = share_service.build_archive(db, token=token, password=password)
    return StreamingResponse(
        iter_buffer(buf),
        media_type="application/zip",
        headers={"Content-Disposition": content_disposition(f"{name}.zip")},
    )
