"""用户模型：描述系统账号及其角色。"""

from typing import List, Optional

from sqlalchemy import Boolean, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import expression

from app.packages.drive.models.base import Base, SoftDeleteMixin, TimestampMixin, user_roles


class User(TimestampMixin, SoftDeleteMixin, Base):
    """用户实体，与角色存在多对多关系。

    ``is_owner`` 标记系统唯一的所有者账号，它持有 owner 角色并跳过细粒度权限校验。
    """

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    username: Mapped[str] = mapped_column(String(50), unique=True, index=True)
    email: Mapped[Optional[str]] = mapped_column(String(255), unique=True, nullable=True)
    hashed_password: Mapped[str] = mapped_column(String(255))
    nickname: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    avatar_url: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    is_owner: Mapped[bool] = mapped_column(Boolean, server_default=expression.false(), default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    roles: Mapped[List["Role"]] = relationship(
        "Role",
        secondary=user_roles,
        primaryjoin="User.id == user_roles.c.user_id",
        secondaryjoin="Role.id == user_roles.c.role_id",
        back_populates="users",
    )
