"""文件模型：元数据行，字节内容保存在所属存储源中。"""

from typing import Optional

from sqlalchemy import BigInteger, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.packages.drive.models.base import Base, TimestampMixin


class File(TimestampMixin, Base):
    """文件实体。

    ``name`` 为生成的存储键，``original_name`` 为用户可见的文件名；
    ``storage_path`` 是适配器上传后返回、用于下载与删除的定位串。
    """

    __tablename__ = "files"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String(255), index=True)
    original_name: Mapped[str] = mapped_column(String(255), index=True)
    size: Mapped[int] = mapped_column(BigInteger, default=0)
    mime_type: Mapped[str] = mapped_column(String(255), default="application/octet-stream")
    md5_hash: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    storage_path: Mapped[str] = mapped_column(String(1024))
    storage_source_id: Mapped[int] = mapped_column(ForeignKey("storage_sources.id"), index=True)
    folder_id: Mapped[Optional[int]] = mapped_column(ForeignKey("folders.id"), nullable=True, index=True)
    uploaded_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    folder: Mapped[Optional["Folder"]] = relationship("Folder", back_populates="files")
    storage_source: Mapped["StorageSource"] = relationship("StorageSource")
