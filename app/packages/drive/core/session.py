"""会话管理：使用 Redis 或内存后端实现滑动过期的登录会话。

除单个会话的创建/续期/删除外，还按用户维护会话索引，
以便在用户被删除时一次性吊销其全部会话。
"""

from __future__ import annotations

import secrets
import threading
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

import redis

from app.packages.drive.core.config import get_settings
from app.packages.drive.core.logger import logger


class SessionBackend:
    """会话后端基类，定义滑动过期操作的接口。"""

    def create_session(self, user_id: int, ttl_seconds: int) -> str:  # pragma: no cover - interface definition
        raise NotImplementedError

    def touch_session(self, session_id: str, user_id: int, ttl_seconds: int) -> bool:  # pragma: no cover
        raise NotImplementedError

    def delete_session(self, session_id: str) -> None:  # pragma: no cover
        raise NotImplementedError

    def revoke_user_sessions(self, user_id: int) -> int:  # pragma: no cover
        raise NotImplementedError

    def save_code(self, key: str, code: str, ttl_seconds: int) -> None:  # pragma: no cover
        raise NotImplementedError

    def consume_code(self, key: str, code: str) -> bool:  # pragma: no cover
        raise NotImplementedError


class RedisSessionBackend(SessionBackend):
    def __init__(self, url: str) -> None:
        self._client = redis.Redis.from_url(url, decode_responses=True, socket_connect_timeout=1)
        self._client.ping()

    def create_session(self, user_id: int, ttl_seconds: int) -> str:
        session_id = uuid.uuid4().hex
        key = self._session_key(session_id)
        pipe = self._client.pipeline()
        pipe.hset(key, mapping={"user_id": str(user_id)})
        pipe.expire(key, ttl_seconds)
        pipe.sadd(self._user_key(user_id), session_id)
        pipe.execute()
        return session_id

    def touch_session(self, session_id: str, user_id: int, ttl_seconds: int) -> bool:
        key = self._session_key(session_id)
        stored_user_id = self._client.hget(key, "user_id")
        if stored_user_id is None or stored_user_id != str(user_id):
            return False
        self._client.expire(key, ttl_seconds)
        return True

    def delete_session(self, session_id: str) -> None:
        key = self._session_key(session_id)
        user_id = self._client.hget(key, "user_id")
        self._client.delete(key)
        if user_id is not None:
            self._client.srem(self._user_key(int(user_id)), session_id)

    def revoke_user_sessions(self, user_id: int) -> int:
        user_key = self._user_key(user_id)
        session_ids = self._client.smembers(user_key)
        if session_ids:
            self._client.delete(*[self._session_key(sid) for sid in session_ids])
        self._client.delete(user_key)
        return len(session_ids)

    def save_code(self, key: str, code: str, ttl_seconds: int) -> None:
        self._client.set(self._code_key(key), code, ex=ttl_seconds)

    def consume_code(self, key: str, code: str) -> bool:
        code_key = self._code_key(key)
        stored = self._client.get(code_key)
        if stored is None or not secrets.compare_digest(stored, code):
            return False
        self._client.delete(code_key)
        return True

    @staticmethod
    def _session_key(session_id: str) -> str:
        return f"session:{session_id}"

    @staticmethod
    def _user_key(user_id: int) -> str:
        return f"user_sessions:{user_id}"

    @staticmethod
    def _code_key(key: str) -> str:
        return f"verify_code:{key}"


class InMemorySessionBackend(SessionBackend):
    """内存后端用于测试或缺少 Redis 时的回退实现。"""

    def __init__(self) -> None:
        self._store: dict[str, tuple[int, datetime]] = {}
        self._codes: dict[str, tuple[str, datetime]] = {}
        self._lock = threading.Lock()

    def create_session(self, user_id: int, ttl_seconds: int) -> str:
        session_id = uuid.uuid4().hex
        with self._lock:
            self._store[session_id] = (user_id, self._expiry(ttl_seconds))
        return session_id

    def touch_session(self, session_id: str, user_id: int, ttl_seconds: int) -> bool:
        with self._lock:
            record = self._store.get(session_id)
            if record is None:
                return False
            stored_user_id, current_expiry = record
            if stored_user_id != user_id or current_expiry < datetime.now(timezone.utc):
                self._store.pop(session_id, None)
                return False
            self._store[session_id] = (stored_user_id, self._expiry(ttl_seconds))
            return True

    def delete_session(self, session_id: str) -> None:
        with self._lock:
            self._store.pop(session_id, None)

    def revoke_user_sessions(self, user_id: int) -> int:
        with self._lock:
            doomed = [sid for sid, (uid, _) in self._store.items() if uid == user_id]
            for sid in doomed:
                self._store.pop(sid, None)
        return len(doomed)

    def save_code(self, key: str, code: str, ttl_seconds: int) -> None:
        with self._lock:
            self._codes[key] = (code, self._expiry(ttl_seconds))

    def consume_code(self, key: str, code: str) -> bool:
        with self._lock:
            record = self._codes.get(key)
            if record is None:
                return False
            stored, expiry = record
            if expiry < datetime.now(timezone.utc):
                self._codes.pop(key, None)
                return False
            if not secrets.compare_digest(stored, code):
                return False
            self._codes.pop(key, None)
            return True

    @staticmethod
    def _expiry(ttl_seconds: int) -> datetime:
        return datetime.now(timezone.utc) + timedelta(seconds=ttl_seconds)


_backend: Optional[SessionBackend] = None


def _get_backend() -> SessionBackend:
    global _backend
    if _backend is not None:
        return _backend

    settings = get_settings()
    try:
        _backend = RedisSessionBackend(settings.redis_url)
        logger.info("Session store initialized with Redis at %s", settings.redis_url)
    except redis.RedisError as exc:  # pragma: no cover - fallback path
        logger.warning("Redis unavailable (%s), falling back to in-memory session store", exc)
        _backend = InMemorySessionBackend()
    return _backend


def create_session(user_id: int, ttl_seconds: int) -> str:
    """创建会话并返回会话 ID。"""
    return _get_backend().create_session(user_id, ttl_seconds)


def touch_session(session_id: str, user_id: int, ttl_seconds: int) -> bool:
    """刷新会话 TTL，若会话不存在或用户不匹配则返回 ``False``。"""
    return _get_backend().touch_session(session_id, user_id, ttl_seconds)


def delete_session(session_id: str) -> None:
    _get_backend().delete_session(session_id)


def revoke_user_sessions(user_id: int) -> int:
    """吊销某个用户的全部会话，返回被吊销的数量。"""
    return _get_backend().revoke_user_sessions(user_id)


def save_verify_code(purpose: str, subject: str, code: str, ttl_seconds: int) -> None:
    """保存一次性验证码，同一 ``purpose``/``subject`` 重复保存时覆盖旧值。"""
    _get_backend().save_code(f"{purpose}:{subject}", code, ttl_seconds)


def consume_verify_code(purpose: str, subject: str, code: str) -> bool:
    """校验验证码，匹配且未过期时删除并返回 ``True``。"""
    return _get_backend().consume_code(f"{purpose}:{subject}", code)
