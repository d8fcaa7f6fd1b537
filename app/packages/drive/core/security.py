"""安全模块：提供密码哈希、JWT 令牌的生成/解析以及随机标识生成能力。"""

import secrets
import string
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterator, Optional

import bcrypt
from jose import JWTError, jwt

from .config import get_settings
from .logger import logger

# URL 安全字符表，与 nanoid 默认字母表一致
URL_SAFE_ALPHABET = string.ascii_letters + string.digits + "_-"

_refreshed_token_ctx: ContextVar[Optional[Dict[str, Optional[str]]]] = ContextVar("refreshed_token", default=None)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """校验明文密码与已存储哈希值是否匹配。"""
    try:
        return bcrypt.checkpw(plain_password.encode("utf-8"), hashed_password.encode("utf-8"))
    except ValueError:
        # 存储的哈希格式非法时视为不匹配
        return False


def get_password_hash(password: str) -> str:
    """对输入密码执行 bcrypt 哈希并返回可持久化的字符串。"""
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def random_id(length: int) -> str:
    """生成指定长度、不可预测的 URL 安全随机串。"""
    return "".join(secrets.choice(URL_SAFE_ALPHABET) for _ in range(length))


def random_code(length: int = 6) -> str:
    """生成纯数字验证码。"""
    return "".join(secrets.choice(string.digits) for _ in range(length))


def create_access_token(subject: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    """根据传入载荷生成带有过期时间的签名 JWT。"""
    settings = get_settings()
    expire = datetime.now(timezone.utc) + (
        expires_delta if expires_delta else timedelta(minutes=settings.access_token_expire_minutes)
    )
    to_encode = subject.copy()
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> Optional[Dict[str, Any]]:
    """解析 JWT 并在合法时返回其中的业务载荷，否则返回 ``None``。

    过期由会话存储的滑动 TTL 控制，这里不校验 ``exp``。
    """
    settings = get_settings()
    try:
        return jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
            options={"verify_exp": False},
        )
    except JWTError as exc:  # pragma: no cover - logging side effect
        logger.warning("Failed to decode JWT: %s", exc)
        return None


def store_refreshed_token(token: Optional[str]) -> None:
    """记录当前请求中新生成的访问令牌，供响应阶段附带返回。

    写入的是中间件在请求开始时放入的容器，线程池中的上下文副本共享同一个容器。
    没有容器（例如在请求之外调用）时忽略。
    """
    holder = _refreshed_token_ctx.get()
    if holder is not None:
        holder["access_token"] = token


def consume_refreshed_token() -> Optional[str]:
    holder = _refreshed_token_ctx.get()
    return holder.get("access_token") if holder is not None else None


@contextmanager
def refreshed_token_scope() -> Iterator[Dict[str, Optional[str]]]:
    """为一次请求建立刷新令牌容器，退出时恢复原上下文。"""
    holder: Dict[str, Optional[str]] = {}
    token = _refreshed_token_ctx.set(holder)
    try:
        yield holder
    finally:
        _refreshed_token_ctx.reset(token)
