"""文件 CRUD：列表、排序与分页查询。"""

from __future__ import annotations

from typing import List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.packages.drive.core.enums import FileSortEnum, SortOrderEnum
from app.packages.drive.crud.base import CRUDBase
from app.packages.drive.models.file import File

_SORT_COLUMNS = {
    FileSortEnum.NAME: File.original_name,
    FileSortEnum.SIZE: File.size,
    FileSortEnum.CREATED_AT: File.create_time,
}


class CRUDFile(CRUDBase[File]):
    def _in_folder(self, db: Session, folder_id: Optional[int]):
        query = self.query(db)
        if folder_id is None:
            return query.filter(File.folder_id.is_(None))
        return query.filter(File.folder_id == folder_id)

    def list_in_folder(self, db: Session, folder_id: Optional[int]) -> List[File]:
        return self._in_folder(db, folder_id).order_by(File.id.asc()).all()

    def list_page(
        self,
        db: Session,
        *,
        folder_id: Optional[int],
        sort_by: FileSortEnum = FileSortEnum.CREATED_AT,
        sort_order: SortOrderEnum = SortOrderEnum.DESC,
        skip: int = 0,
        limit: int = 50,
        keyword: Optional[str] = None,
    ) -> Tuple[List[File], int]:
        query = self._in_folder(db, folder_id)
        if keyword:
            query = query.filter(File.original_name.ilike(f"%{keyword.strip()}%"))
        total = query.count()
        column = _SORT_COLUMNS[sort_by]
        ordering = column.asc() if sort_order == SortOrderEnum.ASC else column.desc()
        items = query.order_by(ordering, File.id.asc()).offset(max(skip, 0)).limit(max(limit, 1)).all()
        return items, total

    def list_names_in_folder(self, db: Session, folder_id: Optional[int]) -> set[str]:
        return {row[0] for row in self._in_folder(db, folder_id).with_entities(File.original_name).all()}

    def sum_size_by_source(self, db: Session, source_id: int) -> int:
        total = db.query(func.coalesce(func.sum(File.size), 0)).filter(File.storage_source_id == source_id).scalar()
        return int(total or 0)


file_crud = CRUDFile(File)
