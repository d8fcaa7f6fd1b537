"""模型包初始化，便于统一导入 ORM 实体并触发模型注册。"""

from app.packages.drive.models.file import File
from app.packages.drive.models.folder import Folder
from app.packages.drive.models.permission import Permission
from app.packages.drive.models.role import Role
from app.packages.drive.models.share import Share, ShareSnapshot
from app.packages.drive.models.storage import StorageSource
from app.packages.drive.models.user import User

__all__ = [
    "File",
    "Folder",
    "Permission",
    "Role",
    "Share",
    "ShareSnapshot",
    "StorageSource",
    "User",
]
