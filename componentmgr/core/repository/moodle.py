"""Moodle.org 插件目录包仓库

元数据来自批量接口 pluglist.php，一次返回全部插件及其版本。
缓存以 frankenstyle 组件名（如 mod_forum）为键；
没有组件名的记录（补丁、外部工具等）在刷新时跳过并告警。
"""

from __future__ import annotations

import hashlib
import logging
from pathlib import Path
from typing import Any

from componentmgr.core.exceptions import ComponentManagerError, ErrorKind
from componentmgr.core.models import (
    ArchiveSource,
    Component,
    ComponentSource,
    ComponentSpecification,
    ComponentVersion,
    GitSource,
    Maturity,
)
from componentmgr.core.repository.base import CachingPackageRepository
from componentmgr.utils.http import HttpClient, UrllibHttpClient
from componentmgr.utils.net import remote_host

logger = logging.getLogger(__name__)

_ANY_VERSION = frozenset(("", "*"))


class MoodlePackageRepository(CachingPackageRepository):
    """Moodle.org/plugins 仓库"""

    type_id = "moodle"
    display_name = "Moodle.org plugin repository"

    PLUGIN_LIST_URL = "https://download.moodle.org/api/1.3/pluglist.php"
    METADATA_CACHE_FILENAME = "{repository}-{digest}.json"

    def __init__(
        self,
        repository_id: str,
        options: dict[str, Any] | None = None,
        *,
        cache_dir: str | Path,
        http: HttpClient | None = None,
    ) -> None:
        self.plugin_list_url = str((options or {}).get("uri") or self.PLUGIN_LIST_URL)
        super().__init__(repository_id, options, cache_dir=cache_dir)
        self.http = http or UrllibHttpClient()

    def metadata_cache_path(self) -> Path:
        remote_host(self.plugin_list_url, usage=f"moodle repository {self.repository_id}")
        digest = hashlib.sha1(self.plugin_list_url.encode()).hexdigest()[:12]
        return self.cache_dir / "moodle" / self.METADATA_CACHE_FILENAME.format(
            repository=self.repository_id, digest=digest,
        )

    def get_package(self, name: str) -> dict[str, Any] | None:
        """返回缓存中的原始插件记录"""
        return self.cache.data().get(name)

    def get_component(self, spec: ComponentSpecification) -> Component:
        record = self.get_package(spec.name)
        if record is None:
            logger.debug("Moodle 仓库中没有组件: %s", spec.name)
            return Component(spec.name, (), self)

        versions: list[ComponentVersion] = []
        seen: set[tuple[int | None, str | None]] = set()
        for raw in record.get("versions") or []:
            version = self._map_version(raw)
            key = (version.version, version.release)
            if key in seen:
                continue
            seen.add(key)
            versions.append(version)
        return Component(spec.name, tuple(versions), self)

    @staticmethod
    def _map_version(raw: dict[str, Any]) -> ComponentVersion:
        sources: list[ComponentSource] = []
        if raw.get("downloadurl"):
            sources.append(ArchiveSource(uri=raw["downloadurl"]))
        if (
            (raw.get("vcssystem") or "").lower() == "git"
            and raw.get("vcsrepositoryurl")
            and raw.get("vcstag")
        ):
            sources.append(GitSource(uri=raw["vcsrepositoryurl"], ref=raw["vcstag"]))

        number = raw.get("version")
        try:
            number = int(number) if number is not None else None
        except (TypeError, ValueError):
            number = None
        return ComponentVersion(
            version=number,
            release=raw.get("release"),
            maturity=Maturity.parse(raw.get("maturity")),
            sources=tuple(sources),
        )

    def satisfies_version(self, constraint: str, version: ComponentVersion) -> bool:
        """空约束或 * 匹配任意版本，否则需与发布名或版本号完全相同"""
        if constraint in _ANY_VERSION:
            return True
        if version.release is not None and constraint == version.release:
            return True
        return version.version is not None and constraint == str(version.version)

    def refresh_metadata_cache(self, log: logging.Logger | None = None) -> None:
        log = log or logger
        log.debug("拉取元数据: %s", self.plugin_list_url, extra={"url": self.plugin_list_url})
        try:
            raw = self.http.get_json(self.plugin_list_url)
        except ConnectionError as e:
            raise ComponentManagerError(
                ErrorKind.CACHE, "refresh-failed",
                repository=self.id, url=self.plugin_list_url, error=e,
            ) from e
        if not isinstance(raw, dict) or not isinstance(raw.get("plugins"), list):
            raise ComponentManagerError(
                ErrorKind.CACHE, "refresh-failed",
                repository=self.id, url=self.plugin_list_url,
                error="响应缺少 plugins 列表",
            )

        log.debug("索引组件数据")
        components: dict[str, Any] = {}
        for plugin in raw["plugins"]:
            name = plugin.get("component")
            if not name:
                log.warning(
                    "插件没有组件名，可能是补丁或外部工具: id=%s name=%s",
                    plugin.get("id"), plugin.get("name"),
                )
                continue
            components[name] = plugin

        log.info("写入元数据缓存: %s (%d 个组件)", self.cache.path, len(components),
                 extra={"file": str(self.cache.path)})
        self.cache.replace(components)
