"""网络工具：包仓库远端地址校验"""

from __future__ import annotations

from urllib.parse import urlparse

from componentmgr.core.exceptions import ComponentManagerError, ErrorKind

_ALLOWED_SCHEMES = frozenset(("http", "https"))


def validate_url_scheme(url: str, *, context: str = "") -> None:
    """只放行 http/https；context 说明该地址的用途，写入错误上下文"""
    scheme = urlparse(url).scheme
    if scheme not in _ALLOWED_SCHEMES:
        raise ComponentManagerError(
            ErrorKind.PROJECT, "invalid-url-scheme",
            url=url, scheme=scheme, usage=context,
        )


def remote_host(url: str, *, usage: str) -> str:
    """校验远端仓库地址并返回主机名，用于区分同类型仓库的缓存文件"""
    validate_url_scheme(url, context=usage)
    host = urlparse(url).hostname
    if not host:
        raise ComponentManagerError(
            ErrorKind.PROJECT, "invalid-url-scheme", url=url, usage=usage,
        )
    return host
