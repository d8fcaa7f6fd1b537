"""Zip 打包工具：把 ``(bytes, relative_path)`` 列表写成内存中的 zip 并分块输出。"""

from __future__ import annotations

import io
import zipfile
from typing import Iterable, Iterator, Tuple

CHUNK_SIZE = 64 * 1024


def build_zip(entries: Iterable[Tuple[bytes, str]]) -> io.BytesIO:
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w", zipfile.ZIP_DEFLATED) as archive:
        for data, arcname in entries:
            archive.writestr(arcname.lstrip("/"), data)
    buf.seek(0)
    return buf


def iter_buffer(buf: io.BytesIO, chunk_size: int = CHUNK_SIZE) -> Iterator[bytes]:
    while True:
        chunk = buf.read(chunk_size)
        if not chunk:
            break
        yield chunk
