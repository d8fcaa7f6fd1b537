"""存储源 CRUD 封装。"""

from __future__ import annotations

from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.packages.drive.crud.base import CRUDBase
from app.packages.drive.models.file import File
from app.packages.drive.models.storage import StorageSource


class CRUDStorageSource(CRUDBase[StorageSource]):
    def get_by_name(self, db: Session, name: str) -> Optional[StorageSource]:
        return self.query(db).filter(self.model.name == name).first()

    def list_all(self, db: Session) -> List[StorageSource]:
        # 优先级高的在前
        return self.query(db).order_by(self.model.priority.desc(), self.model.id.asc()).all()

    def get_best_active(self, db: Session) -> Optional[StorageSource]:
        """返回优先级最高的可用存储源，优先级相同时取最早创建的。"""
        return (
            self.query(db)
            .filter(self.model.is_active.is_(True))
            .order_by(self.model.priority.desc(), self.model.id.asc())
            .first()
        )

    def count_active_except(self, db: Session, source_id: int) -> int:
        query = self.query(db).filter(self.model.is_active.is_(True), self.model.id != source_id)
        return int(query.with_entities(func.count(self.model.id)).scalar() or 0)

    def count(self, db: Session) -> int:
        return int(self.query(db).with_entities(func.count(self.model.id)).scalar() or 0)

    def count_files(self, db: Session, source_id: int) -> int:
        return int(
            db.query(func.count(File.id)).filter(File.storage_source_id == source_id).scalar() or 0
        )


storage_source_crud = CRUDStorageSource(StorageSource)
