"""Owner 账号与 Owner 角色的保护封装。

集中维护“Owner 用户不可被改角色、不可被删除，Owner 角色不可转授”的判定，避免到处散落硬编码。
"""

from __future__ import annotations

from typing import Optional

from app.packages.drive.core.constants import HTTP_STATUS_FORBIDDEN, OWNER_ROLE
from app.packages.drive.core.exceptions import OwnerProtected


def is_owner_role_name(name: Optional[str]) -> bool:
    return (name or "").strip().lower() == OWNER_ROLE


def is_owner_role(role: object) -> bool:
    return is_owner_role_name(getattr(role, "name", None))


def is_owner_user(user: object) -> bool:
    return bool(getattr(user, "is_owner", False))


def forbid_if_owner_user(user: object, *, message: str, code: int = HTTP_STATUS_FORBIDDEN) -> None:
    if is_owner_user(user):
        raise OwnerProtected(message, code=code)


def forbid_if_owner_role(role: object, *, message: str) -> None:
    if is_owner_role(role):
        raise OwnerProtected(message)
