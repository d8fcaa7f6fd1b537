"""权限模型：以 ``resource.action`` 命名的单项能力。"""

from typing import List, Optional

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.packages.drive.models.base import Base, TimestampMixin, role_permissions


class Permission(TimestampMixin, Base):
    __tablename__ = "permissions"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String(100), unique=True, index=True)
    display_name: Mapped[str] = mapped_column(String(100))
    description: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    resource: Mapped[str] = mapped_column(String(50), index=True)
    action: Mapped[str] = mapped_column(String(50))

    roles: Mapped[List["Role"]] = relationship(
        "Role",
        secondary=role_permissions,
        primaryjoin="Permission.id == role_permissions.c.permission_id",
        secondaryjoin="Role.id == role_permissions.c.role_id",
        back_populates="permissions",
    )
