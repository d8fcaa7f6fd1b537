"""依赖注入模块：封装 FastAPI 中复用度高的依赖函数。"""

from collections.abc import Callable, Generator
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from app.packages.drive.core.config import get_settings
from app.packages.drive.core.constants import ACCESS_TOKEN_TYPE
from app.packages.drive.core.exceptions import Forbidden, Unauthorized
from app.packages.drive.core.security import (
    create_access_token,
    decode_token,
    store_refreshed_token,
)
from app.packages.drive.core.session import touch_session
from app.packages.drive.crud.users import user_crud
from app.packages.drive.db import session as db_session
from app.packages.drive.models.user import User
from app.packages.drive.services.rbac_service import rbac_service

security_scheme = HTTPBearer(auto_error=False)
settings = get_settings()


def get_db() -> Generator[Session, None, None]:
    """生成一个数据库会话，并在请求结束后自动关闭。"""
    db = db_session.SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security_scheme),
    db: Session = Depends(get_db),
) -> User:
    """解析 ``Authorization`` 头部并返回当前认证用户，不存在或非法时抛出 401。"""
    if not credentials:
        raise Unauthorized("缺少认证信息")

    if credentials.scheme.lower() != ACCESS_TOKEN_TYPE:
        raise Unauthorized("认证类型无效")

    payload = decode_token(credentials.credentials)
    if payload is None:
        raise Unauthorized("Token 无效或已过期")

    user_id = payload.get("user_id")
    session_id = payload.get("sid")
    if user_id is None or session_id is None:
        raise Unauthorized("Token 无效")

    user = user_crud.get(db, user_id)
    if user is None:
        raise Unauthorized("用户不存在")

    ttl_seconds = max(settings.access_token_expire_minutes, 1) * 60
    if not touch_session(session_id, user.id, ttl_seconds):
        raise Unauthorized("Token 无效或已过期")

    request.state.session_id = session_id

    # 滑动会话：签发新令牌，响应阶段放入 meta 与 X-Access-Token 头
    store_refreshed_token(create_access_token({"user_id": user.id, "username": user.username, "sid": session_id}))
    return user


def get_current_active_user(current_user: User = Depends(get_current_user)) -> User:
    """确保已认证用户仍处于激活状态，否则拒绝访问。"""
    if not current_user.is_active:
        raise Forbidden("用户未激活")
    return current_user


def get_current_session_id(
    request: Request,
    _: User = Depends(get_current_active_user),
) -> str:
    """返回当前令牌对应的会话 ID，由 ``get_current_user`` 解析后挂在 ``request.state`` 上。"""
    return request.state.session_id


def require_permissions(*keys: str) -> Callable[..., User]:
    """生成权限校验依赖：要求当前用户同时拥有全部 ``keys``，通过时返回该用户。"""

    def _dependency(
        current_user: User = Depends(get_current_active_user),
        db: Session = Depends(get_db),
    ) -> User:
        rbac_service.ensure_permissions(db, current_user, keys)
        return current_user

    return _dependency


def require_any_permission(*keys: str) -> Callable[..., User]:
    def _dependency(
        current_user: User = Depends(get_current_active_user),
        db: Session = Depends(get_db),
    ) -> User:
        if not rbac_service.has_any_permission(db, current_user, keys):
            raise Forbidden("权限不足")
        return current_user

    return _dependency
