"""包仓库元数据磁盘缓存

缓存状态显式区分「未加载」与「已加载」：
- 首次访问 data() 时读取文件一次，此后同一实例不再隐式重读
- 只有 replace()（refresh 的落盘出口）和 update() 会改写内容
- 读写都由实例内的锁串行化，refresh 不会与同一实例内的读交错
"""

from __future__ import annotations

import json
import logging
import threading
from enum import Enum
from pathlib import Path
from typing import Any

from componentmgr.core.exceptions import ComponentManagerError, ErrorKind
from componentmgr.utils.yaml_io import atomic_write

logger = logging.getLogger(__name__)


class CacheState(str, Enum):
    UNLOADED = "unloaded"
    LOADED = "loaded"


class MetadataCache:
    """组件标识 -> 仓库特定元数据 的持久化映射"""

    def __init__(self, path: Path) -> None:
        self.path = path
        self.state = CacheState.UNLOADED
        self._data: dict[str, Any] = {}
        self._lock = threading.RLock()

    def exists(self) -> bool:
        return self.path.is_file()

    def data(self) -> dict[str, Any]:
        """返回内存中的缓存，首次访问时从磁盘加载"""
        with self._lock:
            if self.state is CacheState.UNLOADED:
                self._data = self._read()
                self.state = CacheState.LOADED
            return self._data

    def replace(self, data: dict[str, Any]) -> None:
        """整体替换缓存并覆盖磁盘文件"""
        with self._lock:
            self._write(data)
            self._data = data
            self.state = CacheState.LOADED

    def update(self, key: str, value: Any) -> None:
        """更新单个条目并回写磁盘"""
        with self._lock:
            data = self.data()
            data[key] = value
            self._write(data)

    def _read(self) -> dict[str, Any]:
        if not self.path.is_file():
            raise ComponentManagerError(
                ErrorKind.CACHE, "cache-missing", path=self.path,
            )
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise ComponentManagerError(
                ErrorKind.CACHE, "cache-unreadable", path=self.path, error=e,
            ) from e
        if not isinstance(data, dict):
            raise ComponentManagerError(
                ErrorKind.CACHE, "cache-unreadable", path=self.path,
                error=f"顶层类型为 {type(data).__name__}",
            )
        logger.debug("已加载元数据缓存: %s (%d 个组件)", self.path, len(data))
        return data

    def _write(self, data: dict[str, Any]) -> None:
        try:
            atomic_write(self.path, json.dumps(data, ensure_ascii=False))
        except OSError as e:
            raise ComponentManagerError(
                ErrorKind.CACHE, "cache-write-failed", path=self.path, error=e,
            ) from e
