"""文件夹 CRUD。"""

from __future__ import annotations

from typing import List, Optional

from sqlalchemy.orm import Session

from app.packages.drive.crud.base import CRUDBase
from app.packages.drive.models.folder import Folder


class CRUDFolder(CRUDBase[Folder]):
    def get_child_by_name(self, db: Session, *, parent_id: Optional[int], name: str) -> Optional[Folder]:
        """查找同一父目录下的同名文件夹，``parent_id`` 为空表示根目录。"""
        query = self.query(db).filter(Folder.name == name)
        if parent_id is None:
            query = query.filter(Folder.parent_id.is_(None))
        else:
            query = query.filter(Folder.parent_id == parent_id)
        return query.first()

    def list_children(self, db: Session, parent_id: Optional[int]) -> List[Folder]:
        query = self.query(db)
        if parent_id is None:
            query = query.filter(Folder.parent_id.is_(None))
        else:
            query = query.filter(Folder.parent_id == parent_id)
        return query.order_by(Folder.name.asc(), Folder.id.asc()).all()

    def list_child_names(self, db: Session, parent_id: Optional[int]) -> set[str]:
        return {item.name for item in self.list_children(db, parent_id)}


folder_crud = CRUDFolder(Folder)
