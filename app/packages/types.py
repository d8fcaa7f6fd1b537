"""业务包元数据定义。"""

from __future__ import annotations

from dataclasses import dataclass
from logging import Logger
from typing import Callable, ContextManager, Dict, Optional

from fastapi import APIRouter


@dataclass(frozen=True)
class AppPackage:
    """业务包向主应用暴露的入口：路由、配置、日志、初始化与异常转换。

    主应用只通过这里拿到的对象装配 FastAPI 实例，不直接依赖包内模块。
    """

    name: str
    api_router: APIRouter
    get_settings: Callable[[], object]
    setup_logging: Callable[[], None]
    logger: Logger
    init_db: Callable[[], None]
    create_response: Callable[..., dict]
    http_exception_handler: Callable[..., object]
    generic_exception_handler: Callable[..., object]
    refreshed_token_scope: Callable[[], ContextManager[Dict[str, Optional[str]]]]
    set_request_id: Callable[[Optional[str]], None]
