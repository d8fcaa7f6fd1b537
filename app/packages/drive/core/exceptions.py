"""异常处理模块：定义统一的业务异常族与全局异常转换。

业务代码只抛出 ``AppException`` 及其子类；每个子类固定对应一个 HTTP 状态码，
由全局处理器转换为 ``{"msg", "data", "code"}`` 结构。
"""

from typing import Any, Optional

from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse

from app.packages.drive.core.logger import logger
from app.packages.drive.core.security import consume_refreshed_token


class AppException(HTTPException):
    """携带统一响应结构的业务异常，方便在全局处理中转换响应体。"""

    def __init__(self, msg: str, code: int = status.HTTP_400_BAD_REQUEST, data: Any = None) -> None:
        super().__init__(status_code=code, detail=msg)
        self.msg = msg
        self.data = data

    def __str__(self) -> str:
        return self.msg


class _FixedCodeException(AppException):
    status_code_default = status.HTTP_400_BAD_REQUEST
    message_default = "请求参数错误"

    def __init__(self, msg: Optional[str] = None, data: Any = None, *, code: Optional[int] = None) -> None:
        super().__init__(msg or self.message_default, code or self.status_code_default, data)


class ValidationFailed(_FixedCodeException):
    message_default = "请求参数错误"


class Unauthorized(_FixedCodeException):
    status_code_default = status.HTTP_401_UNAUTHORIZED
    message_default = "未登录或登录已过期"


class Forbidden(_FixedCodeException):
    status_code_default = status.HTTP_403_FORBIDDEN
    message_default = "权限不足"


class NotFound(_FixedCodeException):
    status_code_default = status.HTTP_404_NOT_FOUND
    message_default = "资源不存在"


class QuotaExceeded(_FixedCodeException):
    message_default = "存储空间不足"


class CyclicMove(_FixedCodeException):
    message_default = "不能将文件夹移动到自己或子文件夹中"


class DuplicateName(_FixedCodeException):
    message_default = "名称已存在"


class Expired(_FixedCodeException):
    status_code_default = status.HTTP_410_GONE
    message_default = "分享已过期"


class LimitReached(_FixedCodeException):
    status_code_default = status.HTTP_403_FORBIDDEN
    message_default = "下载次数已达上限"


class InvalidPassword(_FixedCodeException):
    status_code_default = status.HTTP_401_UNAUTHORIZED
    message_default = "密码错误"


class OwnerProtected(_FixedCodeException):
    status_code_default = status.HTTP_403_FORBIDDEN
    message_default = "不能修改Owner用户"


class UnsupportedBackendType(_FixedCodeException):
    message_default = "不支持的存储类型"


class BackendUnavailable(_FixedCodeException):
    status_code_default = status.HTTP_500_INTERNAL_SERVER_ERROR
    message_default = "存储后端不可用"


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:  # pragma: no cover - framework glue
    """将 FastAPI 的 ``HTTPException`` 转换为统一响应格式。"""
    payload = {"msg": exc.detail, "data": getattr(exc, "data", None), "code": exc.status_code}
    token = consume_refreshed_token()
    if token:
        payload["meta"] = {"access_token": token}
    return JSONResponse(status_code=exc.status_code, content=payload, headers=getattr(exc, "headers", None))


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:  # pragma: no cover - framework glue
    """兜底处理：将未捕获异常转换为标准的 500 响应结构。"""
    logger.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    payload = {
        "msg": "服务器内部错误",
        "data": None,
        "code": status.HTTP_500_INTERNAL_SERVER_ERROR,
    }
    token = consume_refreshed_token()
    if token:
        payload["meta"] = {"access_token": token}
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=payload)
