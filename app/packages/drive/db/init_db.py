"""Database bootstrapping utilities."""

from __future__ import annotations

from sqlalchemy.orm import Session

from app.packages.drive.core.config import get_settings
from app.packages.drive.core.constants import (
    DEFAULT_LOCAL_SOURCE_NAME,
    OWNER_ROLE,
    SYSTEM_PERMISSIONS,
    SYSTEM_ROLES,
)
from app.packages.drive.core.enums import StorageTypeEnum
from app.packages.drive.core.logger import logger
from app.packages.drive.core.security import get_password_hash
from app.packages.drive.db import session as db_session
from app.packages.drive.models import Permission, Role, StorageSource, User
from app.packages.drive.models.base import Base


def init_db() -> None:
    """Create all database tables if they do not exist and seed baseline data."""
    Base.metadata.create_all(bind=db_session.engine)

    session = db_session.SessionLocal()
    try:
        permissions = _seed_permissions(session)
        roles = _seed_roles(session, permissions)
        _seed_owner(session, roles[OWNER_ROLE])
        _seed_default_storage(session)
        session.commit()
    except Exception:  # pragma: no cover - initialization failures should surface
        session.rollback()
        logger.exception("Failed to seed default data during database initialization")
        raise
    finally:
        session.close()


def _seed_permissions(db: Session) -> dict[str, Permission]:
    existing = {item.name: item for item in db.query(Permission).all()}
    for name, display_name, resource, action in SYSTEM_PERMISSIONS:
        if name in existing:
            continue
        permission = Permission(name=name, display_name=display_name, resource=resource, action=action)
        db.add(permission)
        existing[name] = permission
    db.flush()
    return existing


def _seed_roles(db: Session, permissions: dict[str, Permission]) -> dict[str, Role]:
    """Ensure the five system roles exist; permissions are only filled for newly created roles."""
    roles: dict[str, Role] = {}
    for name, display_name, priority, permission_names in SYSTEM_ROLES:
        role = db.query(Role).filter(Role.name == name).first()
        if role is None:
            role = Role(name=name, display_name=display_name, priority=priority, is_system=True)
            role.permissions = [permissions[item] for item in permission_names if item in permissions]
            db.add(role)
        elif name == OWNER_ROLE:
            # owner always holds every permission, including ones added in later releases
            held = {item.name for item in role.permissions}
            role.permissions.extend(item for key, item in permissions.items() if key not in held)
        roles[name] = role
    db.flush()
    return roles


def _seed_owner(db: Session, owner_role: Role) -> None:
    if db.query(User).filter(User.is_owner.is_(True)).first() is not None:
        return
    settings = get_settings()
    owner = db.query(User).filter(User.username == settings.owner_username).first()
    if owner is None:
        owner = User(
            username=settings.owner_username,
            email=settings.owner_email,
            nickname="Owner",
            hashed_password=get_password_hash(settings.owner_password),
            is_active=True,
        )
        db.add(owner)
    owner.is_owner = True
    owner.is_deleted = False
    if owner_role not in owner.roles:
        owner.roles.append(owner_role)
    db.flush()
    logger.info("Owner account %s initialised", owner.username)


def _seed_default_storage(db: Session) -> None:
    if db.query(StorageSource).first() is not None:
        return
    settings = get_settings()
    base_path = settings.local_storage_directory
    base_path.mkdir(parents=True, exist_ok=True)
    db.add(
        StorageSource(
            name=DEFAULT_LOCAL_SOURCE_NAME,
            type=StorageTypeEnum.LOCAL.value,
            config={"base_path": str(base_path), "max_file_size": settings.local_max_file_size},
            priority=0,
            quota_used=0,
            quota_limit=settings.default_quota_limit,
            is_active=True,
        )
    )
    db.flush()
    logger.info("Default local storage source created at %s", base_path)
