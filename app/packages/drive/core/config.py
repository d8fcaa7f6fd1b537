"""配置模块：负责加载基于环境变量的应用设置，并以不可变对象的形式提供给各组件。"""

import os
from functools import lru_cache
from pathlib import Path
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

MIB = 1024 * 1024
GIB = 1024 * MIB


# 探测项目根目录并加载环境文件，支持通过 ENV_FILE/ENVIRONMENT 定制优先级。
def _detect_base_dir() -> Path:
    """向上遍历目录树，寻找包含 `app` 目录的项目根路径。"""
    current = Path(__file__).resolve()
    for candidate in current.parents:
        if (candidate / "app").is_dir():
            return candidate
    return current.parent


BASE_DIR = _detect_base_dir()


def _as_bool(value: Optional[str]) -> bool:
    if value is None:
        return False
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _load_environment() -> None:
    env_file_override = os.getenv("ENV_FILE")
    if env_file_override:
        candidate = BASE_DIR / env_file_override
        if candidate.exists():
            load_dotenv(candidate, override=True, encoding="utf-8")
        return

    base_env = BASE_DIR / ".env"
    if base_env.exists():
        load_dotenv(base_env, override=False, encoding="utf-8")

    environment = os.getenv("ENVIRONMENT")
    if environment is None and _as_bool(os.getenv("DEBUG")):
        environment = "development"

    if environment:
        candidate_name = environment if environment.startswith(".env") else f".env.{environment}"
        candidate_path = BASE_DIR / candidate_name
        if candidate_path.exists():
            load_dotenv(candidate_path, override=True, encoding="utf-8")


_load_environment()


class Settings(BaseSettings):
    """
    封装应用运行所需的所有配置项，每个字段都可以通过环境变量重写。
    实例构造后不可修改，由启动阶段显式传入服务、适配器工厂与配额账本。
    """

    project_name: str = Field(default="Cloud Drive API", alias="PROJECT_NAME")
    api_v1_str: str = Field(default="/api/v1", alias="API_V1_STR")
    debug: bool = Field(default=False, alias="DEBUG")

    database_url_override: Optional[str] = Field(default=None, alias="DATABASE_URL")
    database_host: str = Field(default="localhost", alias="DATABASE_HOST")
    database_port: int = Field(default=5432, alias="DATABASE_PORT")
    database_user: str = Field(default="postgres", alias="DATABASE_USER")
    database_password: str = Field(default="postgres", alias="DATABASE_PASSWORD")
    database_name: str = Field(default="cloud_drive", alias="DATABASE_NAME")
    database_echo: bool = Field(default=False, alias="DATABASE_ECHO")

    redis_host: str = Field(default="localhost", alias="REDIS_HOST")
    redis_port: int = Field(default=6379, alias="REDIS_PORT")
    redis_db: int = Field(default=0, alias="REDIS_DB")

    jwt_secret_key: str = Field(default="changeme", alias="JWT_SECRET_KEY")
    jwt_algorithm: str = Field(default="HS256", alias="JWT_ALGORITHM")
    access_token_expire_minutes: int = Field(default=60 * 24 * 7, alias="ACCESS_TOKEN_EXPIRE_MINUTES")
    password_reset_code_ttl_minutes: int = Field(default=15, alias="PASSWORD_RESET_CODE_TTL_MINUTES")

    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_dir: str = Field(default="log", alias="LOG_DIR")
    log_file_name: str = Field(default="app.log", alias="LOG_FILE_NAME")
    log_json: bool = Field(default=False, alias="LOG_JSON")
    app_port: int = Field(default=8000, alias="APP_PORT")
    timezone: str = Field(default="Asia/Shanghai", alias="TIMEZONE")

    # 存储相关
    local_storage_root: str = Field(default="storage", alias="LOCAL_STORAGE_ROOT")
    local_max_file_size: int = Field(default=100 * MIB, alias="LOCAL_MAX_FILE_SIZE")
    max_file_size: int = Field(default=5 * GIB, alias="MAX_FILE_SIZE")
    default_quota_limit: int = Field(default=10 * GIB, alias="DEFAULT_QUOTA_LIMIT")
    enable_direct_url: bool = Field(default=True, alias="ENABLE_DIRECT_URL")
    remote_timeout_seconds: int = Field(default=30, alias="REMOTE_TIMEOUT_SECONDS")

    # 分享与目录树
    share_token_length: int = Field(default=10, alias="SHARE_TOKEN_LENGTH")
    max_tree_depth: int = Field(default=64, alias="MAX_TREE_DEPTH")

    # 首次启动时创建的 Owner 账号
    owner_username: str = Field(default="admin", alias="OWNER_USERNAME")
    owner_password: str = Field(default="admin123", alias="OWNER_PASSWORD")
    owner_email: str = Field(default="admin@example.com", alias="OWNER_EMAIL")

    model_config = SettingsConfigDict(extra="ignore", frozen=True)

    @field_validator("share_token_length")
    @classmethod
    def _min_token_length(cls, value: int) -> int:
        # 分享令牌至少 10 位
        return max(int(value), 10)

    @property
    def sql_database_url(self) -> str:
        """返回数据库连接串，优先使用 ``DATABASE_URL``，否则拼接 PostgreSQL 连接串。"""
        if self.database_url_override:
            return self.database_url_override
        return (
            f"postgresql+psycopg2://{self.database_user}:{self.database_password}"
            f"@{self.database_host}:{self.database_port}/{self.database_name}"
        )

    @property
    def redis_url(self) -> str:
        """根据当前配置生成 Redis 连接地址。"""
        return f"redis://{self.redis_host}:{self.redis_port}/{self.redis_db}"

    def _resolve_path(self, raw: str) -> Path:
        path = Path(raw)
        if not path.is_absolute():
            path = BASE_DIR / path
        return path

    @property
    def log_directory(self) -> Path:
        return self._resolve_path(self.log_dir)

    @property
    def log_file_path(self) -> Path:
        return self.log_directory / self.log_file_name

    @property
    def local_storage_directory(self) -> Path:
        """本地存储根目录的绝对路径，相对路径基于项目根目录解析。"""
        return self._resolve_path(self.local_storage_root)

    @property
    def timezone_info(self) -> ZoneInfo:
        """返回当前配置对应的时区信息，无法解析时回退到 UTC。"""
        try:
            return ZoneInfo(self.timezone)
        except ZoneInfoNotFoundError:
            return ZoneInfo("UTC")


@lru_cache
def get_settings() -> Settings:
    """返回单例化的配置对象，避免重复解析环境变量造成性能浪费。"""
    return Settings()
