"""分享与快照模型。

快照在创建分享时一次性写入，此后不再修改；分享的可见内容与授权都只依据快照。
``original_file_id`` / ``original_folder_id`` 仅作记录，不设外键，源对象删除后分享行仍保留。
"""

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.packages.drive.core.timezone import now as tz_now
from app.packages.drive.models.base import Base, TimestampMixin


class ShareSnapshot(Base):
    __tablename__ = "share_snapshots"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    type: Mapped[str] = mapped_column(String(16))
    snapshot_data: Mapped[dict[str, Any]] = mapped_column(JSON)
    create_time: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=tz_now,
        server_default=func.now(),
        nullable=False,
    )


class Share(TimestampMixin, Base):
    __tablename__ = "shares"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    share_token: Mapped[str] = mapped_column(String(64), unique=True, index=True)
    type: Mapped[str] = mapped_column(String(16))
    snapshot_id: Mapped[int] = mapped_column(ForeignKey("share_snapshots.id"), index=True)
    original_file_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, index=True)
    original_folder_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, index=True)
    password_hash: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    download_limit: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    download_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    view_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)
    created_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, index=True)

    snapshot: Mapped["ShareSnapshot"] = relationship("ShareSnapshot")
