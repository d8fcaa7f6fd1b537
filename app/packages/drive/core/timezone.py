"""时区工具方法：统一按配置时区获取、归一化与格式化时间。"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from zoneinfo import ZoneInfo

from app.packages.drive.core.config import get_settings


def get_timezone() -> ZoneInfo:
    return get_settings().timezone_info


def now() -> datetime:
    """返回当前时区的时间。"""
    return datetime.now(get_timezone())


def to_local(value: Optional[datetime]) -> Optional[datetime]:
    """将 ``datetime`` 转换为配置时区。

    SQLite 读回的时间不带时区信息，约定其按配置时区存储，因此直接补齐时区。
    """
    if value is None:
        return None
    tz = get_timezone()
    if value.tzinfo is None:
        return value.replace(tzinfo=tz)
    return value.astimezone(tz)


def is_past(value: Optional[datetime]) -> bool:
    """判断时间点是否已经过去，空值视为永不过期。"""
    localized = to_local(value)
    return localized is not None and localized <= now()


def format_datetime(value: Optional[datetime]) -> Optional[str]:
    """将时间格式化为 ``YYYY-MM-DD HH:MM:SS`` 字符串。"""
    localized = to_local(value)
    if localized is None:
        return None
    return localized.strftime("%Y-%m-%d %H:%M:%S")


def isoformat(value: Optional[datetime]) -> Optional[str]:
    """ISO-8601 格式，写入快照等 JSON 文档时使用。"""
    localized = to_local(value)
    return localized.isoformat() if localized is not None else None
