"""Atlassian Stash（Bitbucket Server）项目包仓库

每个 package_repositories 条目对应一个 Stash 项目，需要配置:
  uri            - Stash Web 根地址，如 https://stash.example.com
  project        - 项目 key，如 MDL
  authentication - Base64 编码的 "用户名:密码"，以 HTTP Basic 发送。
                   Base64 可被轻易解码，建议使用只读账号。

批量仓库列表接口不含标签，标签在组件首次被请求时单独拉取并写回缓存。
"""

from __future__ import annotations

import hashlib
import logging
from pathlib import Path
from typing import Any

from componentmgr.core.exceptions import ComponentManagerError, ErrorKind
from componentmgr.core.models import (
    Component,
    ComponentSpecification,
    ComponentVersion,
    GitSource,
)
from componentmgr.core.repository.base import CachingPackageRepository
from componentmgr.utils.http import HttpClient, UrllibHttpClient
from componentmgr.utils.net import remote_host

logger = logging.getLogger(__name__)


class StashPackageRepository(CachingPackageRepository):
    """Stash 项目仓库：一个 Git 仓库即一个组件，一个标签即一个版本"""

    type_id = "stash"
    display_name = "Atlassian Stash plugin repository"

    PROJECT_REPOSITORY_LIST_PATH = "/rest/api/1.0/projects/{project}/repos"
    REPOSITORY_TAGS_PATH = "/rest/api/1.0/projects/{project}/repos/{slug}/tags"
    PAGE_LIMIT = 100

    REQUIRED_OPTIONS = ("uri", "project")

    def __init__(
        self,
        repository_id: str,
        options: dict[str, Any] | None = None,
        *,
        cache_dir: str | Path,
        http: HttpClient | None = None,
    ) -> None:
        options = dict(options or {})
        for key in self.REQUIRED_OPTIONS:
            if not options.get(key):
                raise ComponentManagerError(
                    ErrorKind.PROJECT, "repository-option-missing",
                    repository=repository_id, option=key,
                )
        self.uri = str(options["uri"]).rstrip("/")
        self.project = str(options["project"])
        super().__init__(repository_id, options, cache_dir=cache_dir)
        self.http = http or UrllibHttpClient()

    def metadata_cache_path(self) -> Path:
        host = remote_host(self.uri, usage=f"stash repository {self.repository_id}")
        digest = hashlib.sha1(f"{host}/{self.project}".encode()).hexdigest()[:12]
        return self.cache_dir / "stash" / f"{host}-{self.project}-{digest}.json"

    def get_package(self, name: str) -> dict[str, Any] | None:
        return self.cache.data().get(name)

    def get_component(self, spec: ComponentSpecification) -> Component:
        package = self.get_package(spec.name)
        if package is None:
            logger.debug("Stash 项目 %s 中没有组件: %s", self.project, spec.name)
            return Component(spec.name, (), self)

        if "tags" not in package:
            package = {**package, "tags": self._fetch_tags(spec.name)}
            logger.debug("写回标签缓存: %s (%d 个标签)", spec.name, len(package["tags"]))
            self.cache.update(spec.name, package)

        clone_links = (package.get("links") or {}).get("clone") or []
        versions = []
        for tag in package["tags"]:
            sources = tuple(
                GitSource(uri=link["href"], ref=tag["displayId"])
                for link in clone_links if link.get("href")
            )
            versions.append(ComponentVersion(None, tag["displayId"], None, sources))
        return Component(package.get("slug", spec.name), tuple(versions), self)

    def satisfies_version(self, constraint: str, version: ComponentVersion) -> bool:
        return constraint == version.release

    def refresh_metadata_cache(self, log: logging.Logger | None = None) -> None:
        log = log or logger
        path = self.PROJECT_REPOSITORY_LIST_PATH.format(project=self.project)
        log.debug("拉取元数据: %s", path, extra={"path": path})
        try:
            values = self._get_paged(path)
        except ConnectionError as e:
            raise ComponentManagerError(
                ErrorKind.CACHE, "refresh-failed",
                repository=self.id, url=self.uri + path, error=e,
            ) from e

        log.debug("索引组件数据")
        components: dict[str, Any] = {}
        for repo in values:
            slug = repo.get("slug")
            if not slug:
                log.warning("仓库记录缺少 slug，跳过: %s", repo.get("name"))
                continue
            components[slug] = repo

        log.info("写入元数据缓存: %s (%d 个组件)", self.cache.path, len(components),
                 extra={"file": str(self.cache.path)})
        self.cache.replace(components)

    def _fetch_tags(self, slug: str) -> list[dict[str, Any]]:
        path = self.REPOSITORY_TAGS_PATH.format(project=self.project, slug=slug)
        try:
            return self._get_paged(path)
        except ConnectionError as e:
            raise ComponentManagerError(
                ErrorKind.CACHE, "tags-fetch-failed",
                repository=self.id, component=slug, error=e,
            ) from e

    def _get_paged(self, path: str) -> list[dict[str, Any]]:
        """跟随 isLastPage / nextPageStart 取回全部分页"""
        values: list[dict[str, Any]] = []
        start = 0
        while True:
            url = f"{self.uri}{path}?limit={self.PAGE_LIMIT}&start={start}"
            page = self.http.get_json(url, headers=self._headers())
            if not isinstance(page, dict):
                raise ConnectionError(f"响应格式无效: {url}")
            values.extend(page.get("values") or [])
            if page.get("isLastPage", True) or page.get("nextPageStart") is None:
                return values
            start = page["nextPageStart"]

    def _headers(self) -> dict[str, str]:
        auth = self.options.get("authentication")
        return {"Authorization": f"Basic {auth}"} if auth else {}
