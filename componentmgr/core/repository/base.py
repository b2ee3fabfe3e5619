"""包仓库抽象

所有仓库共享同一契约：id / name / get_component / satisfies_version。
CachingPackageRepository 额外持有一个 MetadataCache，
并且只能通过 refresh_metadata_cache() 显式刷新。
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

from componentmgr.core.models import Component, ComponentSpecification, ComponentVersion
from componentmgr.core.repository.cache import MetadataCache

logger = logging.getLogger(__name__)


class PackageRepository(ABC):
    """包仓库基类"""

    #: 仓库类型标识（项目文件中的 type 值）
    type_id: str = ""
    #: 展示名称
    display_name: str = ""
    caching = False

    def __init__(self, repository_id: str, options: dict[str, Any] | None = None) -> None:
        self.repository_id = repository_id
        self.options = dict(options or {})

    @property
    def id(self) -> str:
        return self.repository_id

    @property
    def name(self) -> str:
        return self.display_name

    @abstractmethod
    def get_component(self, spec: ComponentSpecification) -> Component:
        """把组件声明解析为该仓库中已知的全部版本"""

    @abstractmethod
    def satisfies_version(self, constraint: str, version: ComponentVersion) -> bool:
        """判断版本是否满足约束（约束的解释由各仓库自行决定）"""

    def __repr__(self) -> str:
        return f"{type(self).__name__}(id={self.repository_id!r})"


class CachingPackageRepository(PackageRepository):
    """带磁盘元数据缓存的包仓库"""

    caching = True

    def __init__(
        self,
        repository_id: str,
        options: dict[str, Any] | None = None,
        *,
        cache_dir: str | Path,
    ) -> None:
        super().__init__(repository_id, options)
        self.cache_dir = Path(cache_dir)
        self.cache = MetadataCache(self.metadata_cache_path())

    @abstractmethod
    def metadata_cache_path(self) -> Path:
        """由仓库身份确定的缓存文件路径"""

    @abstractmethod
    def refresh_metadata_cache(self, log: logging.Logger | None = None) -> None:
        """拉取完整列表并覆盖缓存文件"""

    def has_metadata_cache(self) -> bool:
        return self.cache.exists()
