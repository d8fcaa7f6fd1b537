"""配额账本：维护每个存储源的已用空间计数。

计数只通过单条 ``UPDATE ... SET quota_used = quota_used ± n`` 修改，不做先读后写；
调用方负责在同一个事务里提交元数据变更与计数变更。
"""

from __future__ import annotations

from typing import Tuple

from sqlalchemy import case
from sqlalchemy.orm import Session

from app.packages.drive.core.config import Settings, get_settings
from app.packages.drive.core.exceptions import NotFound, QuotaExceeded
from app.packages.drive.core.logger import logger
from app.packages.drive.crud.files import file_crud
from app.packages.drive.models.storage import StorageSource


class QuotaLedger:
    def __init__(self, settings: Settings) -> None:
        self.settings = settings

    def read(self, db: Session, source_id: int) -> Tuple[int, int]:
        """直接查询列值返回 ``(quota_used, quota_limit)``，不受会话中已加载对象的缓存影响。"""
        row = (
            db.query(StorageSource.quota_used, StorageSource.quota_limit)
            .filter(StorageSource.id == source_id)
            .first()
        )
        if row is None:
            raise NotFound("存储源不存在")
        return int(row[0] or 0), int(row[1] or 0)

    def ensure_capacity(self, db: Session, source_id: int, size: int) -> None:
        """写入前校验 ``used + size <= limit``，不满足时抛出 ``QuotaExceeded``。"""
        used, limit = self.read(db, source_id)
        if used + max(int(size), 0) > limit:
            raise QuotaExceeded("存储空间不足", data={"quota_used": used, "quota_limit": limit, "required": int(size)})

    def increment(self, db: Session, source_id: int, size: int) -> None:
        """原子增加已用空间。

        更新语句自带 ``quota_used + size <= quota_limit`` 条件：并发写入抢先占满配额时
        影响行数为 0，此时抛出 ``QuotaExceeded``，由调用方回滚并清理已写入的字节。
        """
        amount = max(int(size), 0)
        updated = (
            db.query(StorageSource)
            .filter(
                StorageSource.id == source_id,
                StorageSource.quota_used + amount <= StorageSource.quota_limit,
            )
            .update({StorageSource.quota_used: StorageSource.quota_used + amount}, synchronize_session=False)
        )
        if not updated:
            raise QuotaExceeded("存储空间不足")

    def decrement(self, db: Session, source_id: int, size: int) -> None:
        """原子减少已用空间，结果不低于 0。"""
        amount = max(int(size), 0)
        if not amount:
            return
        db.query(StorageSource).filter(StorageSource.id == source_id).update(
            {
                StorageSource.quota_used: case(
                    (StorageSource.quota_used >= amount, StorageSource.quota_used - amount),
                    else_=0,
                )
            },
            synchronize_session=False,
        )

    def reconcile(self, db: Session, source_id: int) -> Tuple[int, int]:
        """按文件实际大小重算计数，返回 ``(修正前, 修正后)``。不提交事务。"""
        before, _ = self.read(db, source_id)
        actual = file_crud.sum_size_by_source(db, source_id)
        db.query(StorageSource).filter(StorageSource.id == source_id).update(
            {StorageSource.quota_used: actual}, synchronize_session=False
        )
        if before != actual:
            logger.warning("Quota drift on storage source %s: recorded=%s actual=%s", source_id, before, actual)
        return before, actual


quota_ledger = QuotaLedger(get_settings())
