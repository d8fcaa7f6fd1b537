"""用户 CRUD：集中管理用户相关的数据操作。"""

from typing import Iterable, List, Optional, Tuple

from sqlalchemy.orm import Session, selectinload

from app.packages.drive.crud.base import CRUDBase
from app.packages.drive.models.user import User


class CRUDUser(CRUDBase[User]):
    def get_by_username(self, db: Session, username: str) -> Optional[User]:
        """根据唯一用户名获取用户实例。"""
        return self.query(db).filter(User.username == username).first()

    def get_by_email(self, db: Session, email: str) -> Optional[User]:
        return self.query(db, include_deleted=True).filter(User.email == email).first()

    def username_taken(self, db: Session, username: str, *, exclude_id: Optional[int] = None) -> bool:
        """用户名唯一约束包含已软删除的账号。"""
        query = self.query(db, include_deleted=True).filter(User.username == username)
        if exclude_id is not None:
            query = query.filter(User.id != exclude_id)
        return query.first() is not None

    def get_owner(self, db: Session) -> Optional[User]:
        return self.query(db).filter(User.is_owner.is_(True)).order_by(User.id.asc()).first()

    def list_paginated(
        self,
        db: Session,
        *,
        keyword: Optional[str] = None,
        skip: int = 0,
        limit: int = 20,
    ) -> Tuple[List[User], int]:
        """按用户名/邮箱模糊匹配并分页。"""
        query = self.query(db)
        if keyword:
            pattern = f"%{keyword.strip()}%"
            query = query.filter((User.username.ilike(pattern)) | (User.email.ilike(pattern)))
        total = query.count()
        items = (
            query.options(selectinload(User.roles))
            .order_by(User.id.asc())
            .offset(max(skip, 0))
            .limit(max(limit, 1))
            .all()
        )
        return items, total

    def get_many(self, db: Session, ids: Iterable[int]) -> List[User]:
        id_set = {int(item) for item in ids}
        if not id_set:
            return []
        return self.query(db).filter(User.id.in_(id_set)).all()


user_crud = CRUDUser(User)
