"""存储适配器：以统一接口封装各类物理存储后端。

变体集合是封闭的（见 ``BackendVariant``）：
- LOCAL：本地磁盘；
- OBJECT_STORE：S3 兼容对象存储（R2 / MinIO / 七牛 / 又拍云），基于 boto3；
- BOT_CHANNEL：Telegram Bot 频道，基于 Bot API；
- GIT_REPO：GitHub 仓库，基于 contents API；
- CUSTOM：自定义 HTTP 图床（Cloudinary 也走该变体）。

每个变体的连接参数是一个不可变 dataclass，构造时校验必填字段；
``StorageAdapterFactory`` 负责把数据库中的 ``(type, config)`` 转成具体适配器。
"""

from __future__ import annotations

import base64
import mimetypes
import shutil
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, ClassVar, Dict, Mapping, Optional, Tuple, Union
from urllib.parse import quote

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from app.packages.drive.core.config import MIB, Settings, get_settings
from app.packages.drive.core.enums import STORAGE_TYPE_VARIANTS, BackendVariant, StorageTypeEnum
from app.packages.drive.core.exceptions import (
    BackendUnavailable,
    NotFound,
    QuotaExceeded,
    UnsupportedBackendType,
    ValidationFailed,
)
from app.packages.drive.core.logger import logger


def guess_mime(name: str) -> str:
    mime, _ = mimetypes.guess_type(name)
    return mime or "application/octet-stream"


def create_retry_session(retries: int = 3, backoff_factor: float = 0.5) -> requests.Session:
    """创建带有重试功能的请求会话，仅对幂等方法重试。"""
    retry = Retry(
        total=retries,
        read=retries,
        connect=retries,
        backoff_factor=backoff_factor,
        status_forcelist=(429, 500, 502, 503, 504),
        allowed_methods=["HEAD", "GET", "PUT", "DELETE"],
    )
    session = requests.Session()
    adapter = HTTPAdapter(max_retries=retry)
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    return session


# ------------------------------------------
# 公共数据结构
# ------------------------------------------


@dataclass(frozen=True)
class StoredObject:
    """上传结果：``path`` 写入 ``File.storage_path``，``url`` 为后端返回的访问地址（可选）。"""

    path: str
    url: Optional[str] = None


def _required(value: Any, field_name: str, label: str) -> None:
    if value is None or not str(value).strip():
        raise ValidationFailed(f"{label} 配置字段 {field_name} 不能为空")


def _positive(value: Optional[int], field_name: str) -> None:
    if value is not None and int(value) <= 0:
        raise ValidationFailed(f"配置字段 {field_name} 必须大于 0")


@dataclass(frozen=True)
class LocalConfig:
    variant: ClassVar[BackendVariant] = BackendVariant.LOCAL

    base_path: str
    max_file_size: int

    def __post_init__(self) -> None:
        _required(self.base_path, "base_path", "本地存储")
        _positive(self.max_file_size, "max_file_size")


@dataclass(frozen=True)
class ObjectStoreConfig:
    variant: ClassVar[BackendVariant] = BackendVariant.OBJECT_STORE

    bucket: str
    access_key_id: str
    secret_access_key: str
    endpoint: str
    region: str = "auto"
    public_url: Optional[str] = None
    path_prefix: str = ""

    def __post_init__(self) -> None:
        for name in ("bucket", "access_key_id", "secret_access_key", "endpoint"):
            _required(getattr(self, name), name, "对象存储")


@dataclass(frozen=True)
class BotChannelConfig:
    variant: ClassVar[BackendVariant] = BackendVariant.BOT_CHANNEL

    bot_token: str
    chat_id: str
    api_base: str = "https://api.telegram.org"
    max_file_size: int = 50 * MIB

    def __post_init__(self) -> None:
        _required(self.bot_token, "bot_token", "Telegram")
        _required(self.chat_id, "chat_id", "Telegram")
        _positive(self.max_file_size, "max_file_size")


@dataclass(frozen=True)
class GitRepoConfig:
    variant: ClassVar[BackendVariant] = BackendVariant.GIT_REPO

    token: str
    repo: str
    branch: str = "main"
    path_prefix: str = "uploads/"
    api_base: str = "https://api.github.com"
    max_file_size: int = 100 * MIB

    def __post_init__(self) -> None:
        _required(self.token, "token", "GitHub")
        _required(self.repo, "repo", "GitHub")
        if self.repo.count("/") != 1:
            raise ValidationFailed("GitHub 配置字段 repo 格式应为 owner/name")
        _positive(self.max_file_size, "max_file_size")


@dataclass(frozen=True)
class CustomConfig:
    variant: ClassVar[BackendVariant] = BackendVariant.CUSTOM

    upload_url: str
    download_url: str = "{path}"
    method: str = "POST"
    headers: Mapping[str, str] = field(default_factory=dict)
    form_fields: Mapping[str, str] = field(default_factory=dict)
    file_field: str = "file"
    response_path: str = "url"
    max_file_size: Optional[int] = None

    def __post_init__(self) -> None:
        _required(self.upload_url, "upload_url", "自定义存储")
        _required(self.response_path, "response_path", "自定义存储")
        if self.method.upper() not in {"POST", "PUT"}:
            raise ValidationFailed("自定义存储配置字段 method 仅支持 POST 或 PUT")
        _positive(self.max_file_size, "max_file_size")


BackendConfig = Union[LocalConfig, ObjectStoreConfig, BotChannelConfig, GitRepoConfig, CustomConfig]


# ------------------------------------------
# 适配器接口
# ------------------------------------------


class StorageBackend:
    """存储适配器接口。

    - ``upload``：写入字节并返回 ``StoredObject``；
    - ``download``：对象不存在时抛出 ``NotFound``；
    - ``delete``：尽力删除，对象不存在或后端失败时返回 ``False`` 而不抛异常；
    - ``test_connection``：轻量探测后端可达性；
    - ``get_direct_url``：后端不支持直链时返回 ``None``。
    """

    name = "storage"

    def initialize(self) -> None:
        """首次使用前的准备动作，默认无操作。"""

    def upload(self, data: bytes, key: str, *, content_type: Optional[str] = None) -> StoredObject:
        raise NotImplementedError

    def download(self, path: str) -> bytes:
        raise NotImplementedError

    def delete(self, path: str) -> bool:
        raise NotImplementedError

    def test_connection(self) -> bool:
        raise NotImplementedError

    def get_direct_url(self, path: str) -> Optional[str]:
        return None

    def copy(self, source_path: str, key: str) -> StoredObject:
        """复制对象到新的存储键，默认通过下载再上传实现。"""
        data = self.download(source_path)
        return self.upload(data, key, content_type=guess_mime(key))

    @staticmethod
    def _check_size(size: int, limit: Optional[int]) -> None:
        if limit and size > limit:
            raise QuotaExceeded(f"文件大小超过限制（最大 {limit} 字节）")


# ------------------------------------------
# 本地文件系统实现
# ------------------------------------------


class LocalBackend(StorageBackend):
    name = "本地存储"

    def __init__(self, config: LocalConfig):
        self.config = config
        self.root = Path(config.base_path).resolve()

    def initialize(self) -> None:
        try:
            self.root.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise BackendUnavailable(f"无法创建本地根目录: {exc}") from exc

    # 统一的安全路径拼接，防止路径遍历
    def _resolve(self, rel: str) -> Path:
        rel_norm = (rel or "").strip().lstrip("/")
        candidate = (self.root / rel_norm).resolve()
        if candidate == self.root:
            raise ValidationFailed("非法路径: 存储键为空")
        try:
            candidate.relative_to(self.root)
        except ValueError as exc:
            raise ValidationFailed("非法路径: 越权访问") from exc
        return candidate

    def upload(self, data: bytes, key: str, *, content_type: Optional[str] = None) -> StoredObject:
        self._check_size(len(data), self.config.max_file_size)
        target = self._resolve(key)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)
        except OSError as exc:
            raise BackendUnavailable(f"本地写入失败: {exc}") from exc
        return StoredObject(path=key)

    def download(self, path: str) -> bytes:
        target = self._resolve(path)
        if not target.is_file():
            raise NotFound("文件不存在")
        try:
            return target.read_bytes()
        except OSError as exc:
            raise BackendUnavailable(f"本地读取失败: {exc}") from exc

    def delete(self, path: str) -> bool:
        try:
            self._resolve(path).unlink()
            return True
        except (OSError, ValidationFailed) as exc:
            logger.warning("Local delete failed for %s: %s", path, exc)
            return False

    def test_connection(self) -> bool:
        marker = self.root / ".test"
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            marker.write_bytes(b"ok")
            marker.unlink()
            return True
        except OSError as exc:
            logger.warning("Local storage at %s not writable: %s", self.root, exc)
            return False

    def copy(self, source_path: str, key: str) -> StoredObject:
        src = self._resolve(source_path)
        if not src.is_file():
            raise NotFound("源文件不存在")
        self._check_size(src.stat().st_size, self.config.max_file_size)
        dst = self._resolve(key)
        try:
            dst.parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(src, dst)
        except OSError as exc:
            raise BackendUnavailable(f"本地复制失败: {exc}") from exc
        return StoredObject(path=key)


# ------------------------------------------
# S3 兼容对象存储（boto3）
# ------------------------------------------


class ObjectStoreBackend(StorageBackend):
    name = "对象存储"

    def __init__(self, config: ObjectStoreConfig):
        try:
            import boto3  # type: ignore
            from botocore.exceptions import BotoCoreError, ClientError  # type: ignore
        except ImportError as exc:
            raise BackendUnavailable("对象存储功能不可用：缺少依赖 boto3，请在后端安装后重试") from exc

        self.config = config
        self.bucket = config.bucket
        self.prefix = (config.path_prefix or "").strip("/")
        self._client_error = ClientError
        self._errors: Tuple[type, ...] = (BotoCoreError, ClientError)
        self._client = boto3.client(
            "s3",
            endpoint_url=config.endpoint,
            region_name=config.region,
            aws_access_key_id=config.access_key_id,
            aws_secret_access_key=config.secret_access_key,
        )

    # 拼接基于 path_prefix 的对象 key
    def _key(self, path: str) -> str:
        rel = path.lstrip("/")
        return f"{self.prefix}/{rel}" if self.prefix else rel

    def _is_missing(self, exc: Exception) -> bool:
        if not isinstance(exc, self._client_error):
            return False
        code = str(exc.response.get("Error", {}).get("Code", ""))
        return code in {"NoSuchKey", "404", "NotFound"}

    def upload(self, data: bytes, key: str, *, content_type: Optional[str] = None) -> StoredObject:
        try:
            self._client.put_object(
                Bucket=self.bucket,
                Key=self._key(key),
                Body=data,
                ContentType=content_type or guess_mime(key),
            )
        except self._errors as exc:
            raise BackendUnavailable(f"对象存储上传失败: {exc}") from exc
        return StoredObject(path=key, url=self.get_direct_url(key))

    def download(self, path: str) -> bytes:
        try:
            obj = self._client.get_object(Bucket=self.bucket, Key=self._key(path))
            return obj["Body"].read()
        except self._errors as exc:
            if self._is_missing(exc):
                raise NotFound("文件不存在") from exc
            raise BackendUnavailable(f"对象存储下载失败: {exc}") from exc

    def delete(self, path: str) -> bool:
        key = self._key(path)
        try:
            # S3 删除不存在的对象也会返回成功，先确认对象存在
            self._client.head_object(Bucket=self.bucket, Key=key)
            self._client.delete_object(Bucket=self.bucket, Key=key)
            return True
        except self._errors as exc:
            logger.warning("Object store delete failed for %s: %s", key, exc)
            return False

    def test_connection(self) -> bool:
        try:
            self._client.head_bucket(Bucket=self.bucket)
            return True
        except self._errors as exc:
            logger.warning("Object store bucket %s unreachable: %s", self.bucket, exc)
            return False

    def get_direct_url(self, path: str) -> Optional[str]:
        if not self.config.public_url:
            return None
        base = self.config.public_url.rstrip("/")
        if not base.startswith("http"):
            base = f"https://{base}"
        return f"{base}/{quote(self._key(path))}"

    def copy(self, source_path: str, key: str) -> StoredObject:
        try:
            self._client.copy_object(
                Bucket=self.bucket,
                Key=self._key(key),
                CopySource={"Bucket": self.bucket, "Key": self._key(source_path)},
            )
        except self._errors as exc:
            if self._is_missing(exc):
                raise NotFound("源文件不存在") from exc
            raise BackendUnavailable(f"对象存储复制失败: {exc}") from exc
        return StoredObject(path=key, url=self.get_direct_url(key))


# ------------------------------------------
# Telegram Bot 频道
# ------------------------------------------


class BotChannelBackend(StorageBackend):
    """把文件作为文档消息发送到频道。

    存储路径格式为 ``<message_id>/<file_id>``：下载用 file_id，删除用 message_id。
    直链会暴露 bot token，因此不提供。
    """

    name = "Telegram"

    def __init__(self, config: BotChannelConfig, *, session: requests.Session, timeout: int = 30):
        self.config = config
        self.session = session
        self.timeout = timeout

    def _api(self, method: str) -> str:
        return f"{self.config.api_base.rstrip('/')}/bot{self.config.bot_token}/{method}"

    def _call(self, http_method: str, method: str, **kwargs: Any) -> Dict[str, Any]:
        try:
            resp = self.session.request(http_method, self._api(method), timeout=self.timeout, **kwargs)
        except requests.RequestException as exc:
            raise BackendUnavailable(f"Telegram 请求失败: {exc}") from exc
        try:
            payload = resp.json()
        except ValueError:
            payload = {}
        if not resp.ok or not payload.get("ok"):
            description = payload.get("description") or resp.status_code
            raise BackendUnavailable(f"Telegram 接口错误: {description}")
        result = payload.get("result")
        return result if isinstance(result, dict) else {}

    @staticmethod
    def _split(path: str) -> Tuple[str, str]:
        message_id, _, file_id = (path or "").partition("/")
        if not message_id or not file_id:
            raise NotFound("文件不存在")
        return message_id, file_id

    def upload(self, data: bytes, key: str, *, content_type: Optional[str] = None) -> StoredObject:
        self._check_size(len(data), self.config.max_file_size)
        result = self._call(
            "POST",
            "sendDocument",
            data={"chat_id": self.config.chat_id, "caption": key},
            files={"document": (key, data, content_type or guess_mime(key))},
        )
        file_id = (result.get("document") or {}).get("file_id")
        message_id = result.get("message_id")
        if not file_id or message_id is None:
            raise BackendUnavailable("Telegram 返回结果缺少 file_id")
        return StoredObject(path=f"{message_id}/{file_id}")

    def download(self, path: str) -> bytes:
        _, file_id = self._split(path)
        try:
            info = self._call("GET", "getFile", params={"file_id": file_id})
        except BackendUnavailable as exc:
            raise NotFound("文件不存在") from exc
        file_path = info.get("file_path")
        if not file_path:
            raise NotFound("文件不存在")
        url = f"{self.config.api_base.rstrip('/')}/file/bot{self.config.bot_token}/{file_path}"
        try:
            resp = self.session.get(url, timeout=self.timeout)
        except requests.RequestException as exc:
            raise BackendUnavailable(f"Telegram 下载失败: {exc}") from exc
        if resp.status_code == 404:
            raise NotFound("文件不存在")
        if not resp.ok:
            raise BackendUnavailable(f"Telegram 下载失败: HTTP {resp.status_code}")
        return resp.content

    def delete(self, path: str) -> bool:
        try:
            message_id, _ = self._split(path)
            self._call("POST", "deleteMessage", data={"chat_id": self.config.chat_id, "message_id": message_id})
            return True
        except (BackendUnavailable, NotFound) as exc:
            logger.warning("Telegram delete failed for %s: %s", path, exc)
            return False

    def test_connection(self) -> bool:
        try:
            self._call("GET", "getMe")
            return True
        except BackendUnavailable as exc:
            logger.warning("Telegram bot unreachable: %s", exc)
            return False


# ------------------------------------------
# GitHub 仓库
# ------------------------------------------


class GitRepoBackend(StorageBackend):
    name = "GitHub"

    def __init__(self, config: GitRepoConfig, *, session: requests.Session, timeout: int = 30):
        self.config = config
        self.session = session
        self.timeout = timeout
        self.headers = {
            "Authorization": f"Bearer {config.token}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }

    def _repo_path(self, key: str) -> str:
        prefix = (self.config.path_prefix or "").strip("/")
        return f"{prefix}/{key.lstrip('/')}" if prefix else key.lstrip("/")

    def _contents_url(self, repo_path: str) -> str:
        return f"{self.config.api_base.rstrip('/')}/repos/{self.config.repo}/contents/{quote(repo_path)}"

    def _request(self, method: str, url: str, **kwargs: Any) -> requests.Response:
        headers = {**self.headers, **kwargs.pop("headers", {})}
        try:
            return self.session.request(method, url, headers=headers, timeout=self.timeout, **kwargs)
        except requests.RequestException as exc:
            raise BackendUnavailable(f"GitHub 请求失败: {exc}") from exc

    def upload(self, data: bytes, key: str, *, content_type: Optional[str] = None) -> StoredObject:
        self._check_size(len(data), self.config.max_file_size)
        repo_path = self._repo_path(key)
        body = {
            "message": f"upload {key}",
            "content": base64.b64encode(data).decode("ascii"),
            "branch": self.config.branch,
        }
        resp = self._request("PUT", self._contents_url(repo_path), json=body)
        if not resp.ok:
            raise BackendUnavailable(f"GitHub 上传失败: HTTP {resp.status_code}")
        return StoredObject(path=repo_path, url=self.get_direct_url(repo_path))

    def download(self, path: str) -> bytes:
        resp = self._request(
            "GET",
            self._contents_url(path),
            params={"ref": self.config.branch},
            headers={"Accept": "application/vnd.github.raw"},
        )
        if resp.status_code == 404:
            raise NotFound("文件不存在")
        if not resp.ok:
            raise BackendUnavailable(f"GitHub 下载失败: HTTP {resp.status_code}")
        return resp.content

    def delete(self, path: str) -> bool:
        try:
            meta = self._request("GET", self._contents_url(path), params={"ref": self.config.branch})
            if not meta.ok:
                return False
            sha = meta.json().get("sha")
            if not sha:
                return False
            resp = self._request(
                "DELETE",
                self._contents_url(path),
                json={"message": f"delete {path}", "sha": sha, "branch": self.config.branch},
            )
            return resp.ok
        except (BackendUnavailable, ValueError) as exc:
            logger.warning("GitHub delete failed for %s: %s", path, exc)
            return False

    def test_connection(self) -> bool:
        try:
            resp = self._request("GET", f"{self.config.api_base.rstrip('/')}/repos/{self.config.repo}")
        except BackendUnavailable as exc:
            logger.warning("GitHub repository unreachable: %s", exc)
            return False
        return resp.ok

    def get_direct_url(self, path: str) -> Optional[str]:
        return f"https://raw.githubusercontent.com/{self.config.repo}/{self.config.branch}/{quote(path)}"


# ------------------------------------------
# 自定义 HTTP 图床
# ------------------------------------------


class CustomBackend(StorageBackend):
    """通过可配置的 HTTP 上传接口存储文件。

    上传响应为 JSON，按 ``response_path``（点号分隔）取出的值作为存储路径；
    下载地址由 ``download_url`` 模板生成，支持 ``{path}``、``{filename}``、``{id}`` 占位符。
    """

    name = "自定义存储"

    def __init__(self, config: CustomConfig, *, session: requests.Session, timeout: int = 30):
        self.config = config
        self.session = session
        self.timeout = timeout

    def _render(self, template: str, key: str) -> str:
        return (
            str(template)
            .replace("{{filename}}", key)
            .replace("{{path}}", key)
            .replace("{{timestamp}}", str(int(time.time() * 1000)))
        )

    def _extract(self, payload: Any) -> str:
        result = payload
        for part in self.config.response_path.split("."):
            if isinstance(result, dict) and part in result:
                result = result[part]
            else:
                raise BackendUnavailable(f"上传响应中缺少字段: {self.config.response_path}")
        if not isinstance(result, str) or not result:
            raise BackendUnavailable("上传响应中的文件地址无效")
        return result

    def _download_url(self, path: str) -> str:
        filename = path.rstrip("/").split("/")[-1] or path
        file_id = filename.split(".")[0]
        return (
            self.config.download_url.replace("{filename}", filename)
            .replace("{id}", file_id)
            .replace("{path}", path)
        )

    def upload(self, data: bytes, key: str, *, content_type: Optional[str] = None) -> StoredObject:
        self._check_size(len(data), self.config.max_file_size)
        form = {name: self._render(value, key) for name, value in self.config.form_fields.items()}
        try:
            resp = self.session.request(
                self.config.method.upper(),
                self.config.upload_url,
                headers=dict(self.config.headers),
                data=form,
                files={self.config.file_field: (key, data, content_type or guess_mime(key))},
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise BackendUnavailable(f"自定义存储上传失败: {exc}") from exc
        if not resp.ok:
            raise BackendUnavailable(f"自定义存储上传失败: HTTP {resp.status_code}")
        try:
            payload = resp.json()
        except ValueError as exc:
            raise BackendUnavailable("自定义存储返回的不是 JSON") from exc
        path = self._extract(payload)
        return StoredObject(path=path, url=self._download_url(path))

    def download(self, path: str) -> bytes:
        try:
            resp = self.session.get(self._download_url(path), headers=dict(self.config.headers), timeout=self.timeout)
        except requests.RequestException as exc:
            raise BackendUnavailable(f"自定义存储下载失败: {exc}") from exc
        if resp.status_code == 404:
            raise NotFound("文件不存在")
        if not resp.ok:
            raise BackendUnavailable(f"自定义存储下载失败: HTTP {resp.status_code}")
        return resp.content

    def delete(self, path: str) -> bool:
        logger.warning("Delete is not supported by custom storage, leaving %s in place", path)
        return False

    def test_connection(self) -> bool:
        try:
            resp = self.session.head(self.config.upload_url, headers=dict(self.config.headers), timeout=self.timeout)
        except requests.RequestException as exc:
            logger.warning("Custom storage unreachable: %s", exc)
            return False
        # 405 等 4xx 也说明服务可达
        return resp.status_code < 500

    def get_direct_url(self, path: str) -> Optional[str]:
        return self._download_url(path)


# ------------------------------------------
# 工厂
# ------------------------------------------


def resolve_storage_type(storage_type: Any) -> Tuple[StorageTypeEnum, BackendVariant]:
    """把类型标签（字符串或 ``StorageTypeEnum``）解析为存储类型与对应的适配器变体，未知标签直接报错。"""
    raw = getattr(storage_type, "value", storage_type)
    try:
        parsed = StorageTypeEnum(str(raw or "").strip().lower())
    except ValueError as exc:
        raise UnsupportedBackendType(f"不支持的存储类型: {storage_type}") from exc
    return parsed, STORAGE_TYPE_VARIANTS[parsed]


def _text(raw: Mapping[str, Any], key: str, default: Optional[str] = None) -> Optional[str]:
    value = raw.get(key)
    if value is None:
        return default
    text = str(value).strip()
    return text or default


def _int(raw: Mapping[str, Any], key: str, default: Optional[int]) -> Optional[int]:
    value = raw.get(key)
    if value is None or value == "":
        return default
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ValidationFailed(f"配置字段 {key} 必须为整数") from exc


def _mapping(raw: Mapping[str, Any], key: str) -> Dict[str, str]:
    value = raw.get(key) or {}
    if not isinstance(value, Mapping):
        raise ValidationFailed(f"配置字段 {key} 必须为对象")
    return {str(k): str(v) for k, v in value.items()}


class StorageAdapterFactory:
    """按 ``(type, config)`` 构造适配器。

    先把原始配置解析为对应变体的不可变配置对象（缺字段立即失败），再按变体分派构造。
    需要初始化的适配器由调用方在首次使用前调用 ``initialize()``。
    """

    def __init__(
        self,
        settings: Settings,
        *,
        session_factory: Callable[[], requests.Session] = create_retry_session,
    ) -> None:
        self.settings = settings
        self.session_factory = session_factory
        self._builders: Dict[BackendVariant, Callable[[Any], StorageBackend]] = {
            BackendVariant.LOCAL: LocalBackend,
            BackendVariant.OBJECT_STORE: ObjectStoreBackend,
            BackendVariant.BOT_CHANNEL: self._remote(BotChannelBackend),
            BackendVariant.GIT_REPO: self._remote(GitRepoBackend),
            BackendVariant.CUSTOM: self._remote(CustomBackend),
        }

    def _remote(self, cls: Callable[..., StorageBackend]) -> Callable[[Any], StorageBackend]:
        def build(config: Any) -> StorageBackend:
            return cls(config, session=self.session_factory(), timeout=self.settings.remote_timeout_seconds)

        return build

    def parse_config(self, storage_type: Any, raw: Optional[Mapping[str, Any]]) -> BackendConfig:
        parsed_type, variant = resolve_storage_type(storage_type)
        data: Mapping[str, Any] = raw or {}
        if not isinstance(data, Mapping):
            raise ValidationFailed("存储配置必须为对象")

        if variant is BackendVariant.LOCAL:
            return LocalConfig(
                base_path=_text(data, "base_path", str(self.settings.local_storage_directory)),
                max_file_size=_int(data, "max_file_size", self.settings.local_max_file_size),
            )
        if variant is BackendVariant.OBJECT_STORE:
            endpoint = _text(data, "endpoint")
            account_id = _text(data, "account_id")
            if endpoint is None and parsed_type is StorageTypeEnum.R2 and account_id:
                endpoint = f"https://{account_id}.r2.cloudflarestorage.com"
            region_default = "us-east-1" if parsed_type is StorageTypeEnum.MINIO else "auto"
            return ObjectStoreConfig(
                bucket=_text(data, "bucket", ""),
                access_key_id=_text(data, "access_key_id", ""),
                secret_access_key=_text(data, "secret_access_key", ""),
                endpoint=endpoint or "",
                region=_text(data, "region", region_default),
                public_url=_text(data, "public_url"),
                path_prefix=_text(data, "path_prefix", ""),
            )
        if variant is BackendVariant.BOT_CHANNEL:
            return BotChannelConfig(
                bot_token=_text(data, "bot_token", ""),
                chat_id=_text(data, "chat_id", ""),
                api_base=_text(data, "api_base", "https://api.telegram.org"),
                max_file_size=_int(data, "max_file_size", 50 * MIB),
            )
        if variant is BackendVariant.GIT_REPO:
            return GitRepoConfig(
                token=_text(data, "token", ""),
                repo=_text(data, "repo", ""),
                branch=_text(data, "branch", "main"),
                path_prefix=_text(data, "path_prefix", "uploads/"),
                api_base=_text(data, "api_base", "https://api.github.com"),
                max_file_size=_int(data, "max_file_size", 100 * MIB),
            )
        if variant is BackendVariant.CUSTOM:
            upload_url = _text(data, "upload_url")
            response_path = _text(data, "response_path", "url")
            form_fields = _mapping(data, "form_fields")
            if parsed_type is StorageTypeEnum.CLOUDINARY:
                cloud_name = _text(data, "cloud_name")
                if upload_url is None and cloud_name:
                    upload_url = f"https://api.cloudinary.com/v1_1/{cloud_name}/auto/upload"
                if _text(data, "upload_preset"):
                    form_fields.setdefault("upload_preset", _text(data, "upload_preset"))
                response_path = _text(data, "response_path", "secure_url")
            return CustomConfig(
                upload_url=upload_url or "",
                download_url=_text(data, "download_url", "{path}"),
                method=_text(data, "method", "POST"),
                headers=_mapping(data, "headers"),
                form_fields=form_fields,
                file_field=_text(data, "file_field", "file"),
                response_path=response_path,
                max_file_size=_int(data, "max_file_size", None),
            )
        raise UnsupportedBackendType(f"不支持的存储类型: {storage_type}")

    def build(self, config: BackendConfig) -> StorageBackend:
        builder = self._builders.get(config.variant)
        if builder is None:
            raise UnsupportedBackendType(f"不支持的存储变体: {config.variant}")
        return builder(config)

    def create(self, storage_type: Any, raw: Optional[Mapping[str, Any]]) -> StorageBackend:
        return self.build(self.parse_config(storage_type, raw))


adapter_factory = StorageAdapterFactory(get_settings())
