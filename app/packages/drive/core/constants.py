"""全局常量：HTTP 状态码、内置角色/权限标识以及存储相关的固定取值。"""

HTTP_STATUS_OK = 200
HTTP_STATUS_BAD_REQUEST = 400
HTTP_STATUS_UNAUTHORIZED = 401
HTTP_STATUS_FORBIDDEN = 403
HTTP_STATUS_NOT_FOUND = 404
HTTP_STATUS_CONFLICT = 409
HTTP_STATUS_GONE = 410
HTTP_STATUS_TOO_MANY_REQUESTS = 429
HTTP_STATUS_INTERNAL_SERVER_ERROR = 500

ACCESS_TOKEN_TYPE = "bearer"

# 内置角色
OWNER_ROLE = "owner"
ADMIN_ROLE = "admin"
EDITOR_ROLE = "editor"
VIEWER_ROLE = "viewer"
GUEST_ROLE = "guest"
DEFAULT_USER_ROLE = VIEWER_ROLE

# 内置权限：(name, display_name, resource, action)
SYSTEM_PERMISSIONS = [
    ("files.upload", "上传文件", "files", "upload"),
    ("files.download", "下载文件", "files", "download"),
    ("files.delete", "删除文件", "files", "delete"),
    ("files.rename", "重命名文件", "files", "rename"),
    ("files.move", "移动文件", "files", "move"),
    ("files.share", "分享文件", "files", "share"),
    ("files.view", "查看文件", "files", "view"),
    ("folders.create", "创建文件夹", "folders", "create"),
    ("folders.delete", "删除文件夹", "folders", "delete"),
    ("folders.rename", "重命名文件夹", "folders", "rename"),
    ("folders.move", "移动文件夹", "folders", "move"),
    ("storage.view", "查看存储源", "storage", "view"),
    ("storage.manage", "管理存储源", "storage", "manage"),
    ("storage.test", "测试存储源", "storage", "test"),
    ("users.view", "查看用户", "users", "view"),
    ("users.manage", "管理用户", "users", "manage"),
    ("users.assign_roles", "分配角色", "users", "assign_roles"),
    ("settings.view", "查看设置", "settings", "view"),
    ("settings.manage", "管理设置", "settings", "manage"),
    ("shares.view", "查看分享", "shares", "view"),
    ("shares.manage", "管理分享", "shares", "manage"),
]

ALL_PERMISSION_NAMES = [item[0] for item in SYSTEM_PERMISSIONS]

# 内置角色：(name, display_name, priority, permissions)
SYSTEM_ROLES = [
    (OWNER_ROLE, "所有者", 100, ALL_PERMISSION_NAMES),
    (ADMIN_ROLE, "管理员", 80, [name for name in ALL_PERMISSION_NAMES if name != "settings.manage"]),
    (
        EDITOR_ROLE,
        "编辑者",
        60,
        [
            "files.upload",
            "files.download",
            "files.delete",
            "files.rename",
            "files.move",
            "files.view",
            "folders.create",
            "folders.delete",
            "folders.rename",
            "folders.move",
            "storage.view",
            "shares.view",
        ],
    ),
    (VIEWER_ROLE, "查看者", 40, ["files.view", "files.download", "storage.view"]),
    (GUEST_ROLE, "访客", 20, ["files.view", "files.download"]),
]

# 上传时直接忽略的操作系统元数据文件
SYSTEM_FILE_NAMES = frozenset(
    {
        ".DS_Store",
        "Thumbs.db",
        "desktop.ini",
        ".Spotlight-V100",
        ".Trashes",
        "ehthumbs.db",
        ".localized",
    }
)
SYSTEM_FILE_PREFIXES = ("._",)

DEFAULT_LOCAL_SOURCE_NAME = "本地存储"

SHARE_TYPE_FILE = "file"
SHARE_TYPE_FOLDER = "folder"

DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 200
