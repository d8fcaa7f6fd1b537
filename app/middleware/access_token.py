"""刷新令牌中间件：把认证依赖签发的新令牌写入响应头 ``X-Access-Token``。

请求开始时建立令牌容器，认证依赖滑动续期后把新令牌放进容器，
响应头发出前再从容器取出，前端可选地接收并替换本地缓存。
"""

from __future__ import annotations

from typing import Callable, ContextManager, Dict, Optional

from starlette.datastructures import MutableHeaders
from starlette.types import ASGIApp, Message, Receive, Scope, Send

ACCESS_TOKEN_HEADER = "X-Access-Token"


class AccessTokenHeaderMiddleware:
    def __init__(
        self,
        app: ASGIApp,
        *,
        token_scope: Callable[[], ContextManager[Dict[str, Optional[str]]]],
    ) -> None:
        self.app = app
        self.token_scope = token_scope

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope.get("type") != "http":
            await self.app(scope, receive, send)
            return

        with self.token_scope() as holder:

            async def send_with_token(message: Message) -> None:
                if message["type"] == "http.response.start":
                    token = holder.get("access_token")
                    if token:
                        MutableHeaders(scope=message)[ACCESS_TOKEN_HEADER] = token
                await send(message)

            await self.app(scope, receive, send_with_token)
