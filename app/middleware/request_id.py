"""请求 ID 中间件：把 ``X-Request-ID`` 写入日志上下文。

请求头里带了 ``X-Request-ID`` 就沿用，否则生成一个 UUID4；
响应头会回写同一个值，方便前端与日志对照。
"""

from __future__ import annotations

import uuid
from typing import Callable, Optional

from starlette.datastructures import MutableHeaders
from starlette.types import ASGIApp, Message, Receive, Scope, Send

REQUEST_ID_HEADER = "x-request-id"


class RequestIdMiddleware:
    def __init__(self, app: ASGIApp, *, setter: Callable[[Optional[str]], None]) -> None:
        self.app = app
        self.setter = setter

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:  # pragma: no cover
        if scope.get("type") != "http":
            await self.app(scope, receive, send)
            return

        headers = {key.decode("latin-1").lower(): value.decode("latin-1") for key, value in scope.get("headers", [])}
        request_id = headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        self.setter(request_id)

        async def send_with_request_id(message: Message) -> None:
            if message["type"] == "http.response.start":
                MutableHeaders(scope=message)[REQUEST_ID_HEADER] = request_id
            await send(message)

        try:
            await self.app(scope, receive, send_with_request_id)
        finally:
            self.setter(None)
