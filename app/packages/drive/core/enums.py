"""枚举定义：约束存储类型、后端变体以及列表排序等取值。"""

from enum import Enum


class StorageTypeEnum(str, Enum):
    """存储源在数据库中记录的类型标签。"""

    LOCAL = "local"
    R2 = "r2"
    QINIU = "qiniu"
    MINIO = "minio"
    UPYUN = "upyun"
    TELEGRAM = "telegram"
    CLOUDINARY = "cloudinary"
    GITHUB = "github"
    CUSTOM = "custom"


class BackendVariant(str, Enum):
    """存储适配器的封闭变体集合，每种存储类型都映射到其中之一。"""

    LOCAL = "local"
    OBJECT_STORE = "object_store"
    BOT_CHANNEL = "bot_channel"
    GIT_REPO = "git_repo"
    CUSTOM = "custom"


STORAGE_TYPE_VARIANTS = {
    StorageTypeEnum.LOCAL: BackendVariant.LOCAL,
    StorageTypeEnum.R2: BackendVariant.OBJECT_STORE,
    StorageTypeEnum.QINIU: BackendVariant.OBJECT_STORE,
    StorageTypeEnum.MINIO: BackendVariant.OBJECT_STORE,
    StorageTypeEnum.UPYUN: BackendVariant.OBJECT_STORE,
    StorageTypeEnum.TELEGRAM: BackendVariant.BOT_CHANNEL,
    StorageTypeEnum.GITHUB: BackendVariant.GIT_REPO,
    StorageTypeEnum.CUSTOM: BackendVariant.CUSTOM,
    StorageTypeEnum.CLOUDINARY: BackendVariant.CUSTOM,
}


class ShareTypeEnum(str, Enum):
    FILE = "file"
    FOLDER = "folder"


class FileSortEnum(str, Enum):
    NAME = "name"
    SIZE = "size"
    CREATED_AT = "createdAt"


class SortOrderEnum(str, Enum):
    ASC = "asc"
    DESC = "desc"
