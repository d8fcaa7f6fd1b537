"""Path utilities: folder path materialisation and display-name helpers.

Rules shared by the file/folder/share services:
- A folder path always starts with '/', e.g. "/docs/2024"; the root itself is not stored;
- Display names never contain '/' or '\\';
- Duplicate display names are resolved as ``name(1).ext``, ``name(2).ext`` ...
"""

from __future__ import annotations

import os
from typing import Iterable, List, Optional, Tuple
from urllib.parse import quote

from app.packages.drive.core.constants import SYSTEM_FILE_NAMES, SYSTEM_FILE_PREFIXES
from app.packages.drive.core.exceptions import ValidationFailed

MAX_NAME_LENGTH = 255


def validate_name(name: Optional[str], *, label: str = "名称") -> str:
    s = (name or "").strip()
    if not s:
        raise ValidationFailed(f"{label}不能为空")
    if "/" in s or "\\" in s:
        raise ValidationFailed(f"{label}不能包含路径分隔符")
    if s in {".", ".."}:
        raise ValidationFailed(f"{label}不合法")
    if len(s) > MAX_NAME_LENGTH:
        raise ValidationFailed(f"{label}长度不能超过 {MAX_NAME_LENGTH} 个字符")
    return s


def join_folder_path(parent_path: Optional[str], name: str) -> str:
    if not parent_path or parent_path == "/":
        return f"/{name}"
    return f"{parent_path.rstrip('/')}/{name}"


def rebase_path(path: str, old_prefix: str, new_prefix: str) -> str:
    """把 ``old_prefix`` 开头的路径换成 ``new_prefix`` 开头，相对后缀保持不变。"""
    if path == old_prefix:
        return new_prefix
    if path.startswith(old_prefix.rstrip("/") + "/"):
        return new_prefix.rstrip("/") + path[len(old_prefix.rstrip("/")):]
    return path


def split_name(filename: str) -> Tuple[str, str]:
    """拆分为 ``(stem, ext)``，隐藏文件（如 ``.env``）视为无扩展名。"""
    stem, ext = os.path.splitext(filename)
    if not stem:
        return filename, ""
    return stem, ext


def unique_name(name: str, existing: Iterable[str]) -> str:
    taken = set(existing)
    if name not in taken:
        return name
    stem, ext = split_name(name)
    counter = 1
    while f"{stem}({counter}){ext}" in taken:
        counter += 1
    return f"{stem}({counter}){ext}"


def split_relative_path(relative_path: Optional[str]) -> List[str]:
    """从 ``a/b/c.txt`` 形式的相对路径中取出目录段 ``["a", "b"]``。"""
    if not relative_path:
        return []
    parts = [segment.strip() for segment in relative_path.replace("\\", "/").split("/")]
    parts = [segment for segment in parts if segment and segment != "."]
    if any(segment == ".." for segment in parts):
        raise ValidationFailed("相对路径不合法")
    return [validate_name(segment, label="文件夹名称") for segment in parts[:-1]]


def is_system_file(filename: Optional[str]) -> bool:
    base = os.path.basename((filename or "").replace("\\", "/"))
    return base in SYSTEM_FILE_NAMES or base.startswith(SYSTEM_FILE_PREFIXES)


def content_disposition(filename: str, disposition: str = "attachment") -> str:
    """构造 RFC 5987 编码的 Content-Disposition，兼容非 ASCII 文件名。"""
    ascii_fallback = filename.encode("ascii", "ignore").decode("ascii").replace('"', "") or "download"
    return f"{disposition}; filename=\"{ascii_fallback}\"; filename*=UTF-8''{quote(filename)}"
