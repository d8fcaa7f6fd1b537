"""文件夹模型：父指针树，``path`` 为物化的完整路径。

存储规则：
- 根目录不入库，``parent_id`` 为空表示位于根目录；
- ``path`` 以 '/' 开头，由祖先名称依次拼接，例如 "/docs/2024"；
- 同一父目录下名称唯一。
"""

from typing import List, Optional

from sqlalchemy import ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.packages.drive.models.base import Base, TimestampMixin


class Folder(TimestampMixin, Base):
    __tablename__ = "folders"
    __table_args__ = (
        UniqueConstraint("name", "parent_id", name="uq_folders_name_parent"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String(255), index=True)
    path: Mapped[str] = mapped_column(String(2048), index=True)
    parent_id: Mapped[Optional[int]] = mapped_column(ForeignKey("folders.id"), nullable=True, index=True)
    created_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    files: Mapped[List["File"]] = relationship("File", back_populates="folder")
