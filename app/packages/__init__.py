"""可装配的业务包。

每个业务包在 ``packages`` 下以 ``AppPackage`` 形式登记，``app.main`` 通过
``get_active_package`` 取得当前启用的那一个。目前只有网盘包 ``drive``。
"""

from __future__ import annotations

import os
from typing import Dict

from . import drive
from .types import AppPackage

ACTIVE_PACKAGE_ENV = "APP_ACTIVE_PACKAGE"
DEFAULT_PACKAGE = drive.package.name

PACKAGE_REGISTRY: Dict[str, AppPackage] = {}


def register_package(package: AppPackage) -> AppPackage:
    """登记业务包，名称不区分大小写且不能重复。"""
    key = package.name.strip().lower()
    if key in PACKAGE_REGISTRY:
        raise RuntimeError(f"业务包 '{key}' 重复注册")
    PACKAGE_REGISTRY[key] = package
    return package


def get_active_package() -> AppPackage:
    name = (os.getenv(ACTIVE_PACKAGE_ENV) or DEFAULT_PACKAGE).strip().lower()
    package = PACKAGE_REGISTRY.get(name)
    if package is None:
        available = ", ".join(sorted(PACKAGE_REGISTRY))
        raise RuntimeError(f"{ACTIVE_PACKAGE_ENV}={name} 无对应业务包，可用选项：{available}")
    return package


register_package(drive.package)

__all__ = ["AppPackage", "PACKAGE_REGISTRY", "get_active_package", "register_package"]
