"""存储源模型：一个已配置的物理存储后端及其配额计数。"""

from typing import Any, Optional

from sqlalchemy import JSON, BigInteger, Boolean, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from app.packages.drive.models.base import Base, TimestampMixin


class StorageSource(TimestampMixin, Base):
    """存储源配置。

    说明：
    - ``type`` 取值见 ``StorageTypeEnum``，决定使用哪一种适配器变体；
    - ``config`` 为对应变体的连接参数，写入前已按变体做过必填校验；
    - ``quota_used`` 只通过配额账本做原子增减，不直接赋值。
    """

    __tablename__ = "storage_sources"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String(100), unique=True, index=True)
    type: Mapped[str] = mapped_column(String(32), index=True)
    config: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)
    priority: Mapped[int] = mapped_column(Integer, default=0, index=True)
    quota_used: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    quota_limit: Mapped[int] = mapped_column(BigInteger, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)
    created_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
