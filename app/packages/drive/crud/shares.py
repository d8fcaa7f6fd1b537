"""分享 CRUD。"""

from __future__ import annotations

from typing import List, Optional, Tuple

from sqlalchemy.orm import Session, selectinload

from app.packages.drive.crud.base import CRUDBase
from app.packages.drive.models.share import Share, ShareSnapshot


class CRUDShare(CRUDBase[Share]):
    def get_by_token(self, db: Session, token: str) -> Optional[Share]:
        return (
            self.query(db)
            .options(selectinload(Share.snapshot))
            .filter(Share.share_token == token)
            .first()
        )

    def token_exists(self, db: Session, token: str) -> bool:
        return self.query(db).filter(Share.share_token == token).first() is not None

    def list_paginated(
        self,
        db: Session,
        *,
        created_by: Optional[int] = None,
        skip: int = 0,
        limit: int = 20,
    ) -> Tuple[List[Share], int]:
        query = self.query(db)
        if created_by is not None:
            query = query.filter(Share.created_by == created_by)
        total = query.count()
        items = (
            query.options(selectinload(Share.snapshot))
            .order_by(Share.id.desc())
            .offset(max(skip, 0))
            .limit(max(limit, 1))
            .all()
        )
        return items, total


share_crud = CRUDShare(Share)
snapshot_crud = CRUDBase(ShareSnapshot)
