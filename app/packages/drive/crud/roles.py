"""角色与权限 CRUD。"""

from __future__ import annotations

from typing import Iterable, List, Optional

from sqlalchemy.orm import Session, selectinload

from app.packages.drive.crud.base import CRUDBase
from app.packages.drive.models.permission import Permission
from app.packages.drive.models.role import Role


class CRUDRole(CRUDBase[Role]):
    def get_by_name(self, db: Session, name: str) -> Optional[Role]:
        return self.query(db).filter(Role.name == name).first()

    def list_with_permissions(self, db: Session) -> List[Role]:
        """按优先级从高到低列出角色，并预加载权限。"""
        return (
            self.query(db)
            .options(selectinload(Role.permissions))
            .order_by(Role.priority.desc(), Role.id.asc())
            .all()
        )


class CRUDPermission(CRUDBase[Permission]):
    def get_by_name(self, db: Session, name: str) -> Optional[Permission]:
        return self.query(db).filter(Permission.name == name).first()

    def list_by_names(self, db: Session, names: Iterable[str]) -> List[Permission]:
        tokens = {item for item in names if item}
        if not tokens:
            return []
        return self.query(db).filter(Permission.name.in_(tokens)).all()

    def list_all(self, db: Session) -> List[Permission]:
        return self.query(db).order_by(Permission.resource.asc(), Permission.id.asc()).all()


role_crud = CRUDRole(Role)
permission_crud = CRUDPermission(Permission)
