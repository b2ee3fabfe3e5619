"""HTTP 传输层

职责:
- GET 请求并解析 JSON（元数据刷新、Stash 标签列表）
- 下载文件到本地（组件归档、Moodle 源码包）

通过 HttpClient 协议抽象，测试时注入计数用的假实现。
传输失败统一抛 ConnectionError，由调用方包装为缓存/获取错误。
"""

from __future__ import annotations

import json
import logging
import shutil
import urllib.error
import urllib.request
from pathlib import Path
from typing import Any, Protocol

from componentmgr.utils.net import validate_url_scheme

logger = logging.getLogger(__name__)


class HttpClient(Protocol):
    """HTTP 客户端协议"""

    def get_json(self, url: str, headers: dict[str, str] | None = None) -> Any:
        ...

    def download(
        self, url: str, dest: Path, headers: dict[str, str] | None = None,
    ) -> Path:
        ...


class UrllibHttpClient:
    """基于 urllib 的默认实现"""

    def __init__(self, timeout: int = 60) -> None:
        self.timeout = timeout

    def _request(
        self, url: str, headers: dict[str, str] | None,
    ) -> urllib.request.Request:
        validate_url_scheme(url, context="http")
        req = urllib.request.Request(url)
        for key, value in (headers or {}).items():
            req.add_header(key, value)
        return req

    def get_json(self, url: str, headers: dict[str, str] | None = None) -> Any:
        req = self._request(url, headers)
        logger.debug("GET %s", url)
        try:
            with urllib.request.urlopen(req, timeout=self.timeout) as resp:  # nosec B310
                body = resp.read()
        except (urllib.error.HTTPError, urllib.error.URLError, OSError) as e:
            raise ConnectionError(f"请求失败: {url} - {e}") from e
        try:
            return json.loads(body)
        except ValueError as e:
            raise ConnectionError(f"响应不是合法 JSON: {url} - {e}") from e

    def download(
        self, url: str, dest: Path, headers: dict[str, str] | None = None,
    ) -> Path:
        req = self._request(url, headers)
        dest.parent.mkdir(parents=True, exist_ok=True)
        logger.debug("下载 %s -> %s", url, dest)
        try:
            with urllib.request.urlopen(req, timeout=self.timeout) as resp, \
                    open(dest, "wb") as f:  # nosec B310
                shutil.copyfileobj(resp, f)
        except (urllib.error.HTTPError, urllib.error.URLError, OSError) as e:
            dest.unlink(missing_ok=True)
            raise ConnectionError(f"下载失败: {url} - {e}") from e
        return dest
