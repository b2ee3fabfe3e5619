"""组件版本解析器

对每个组件声明:
  1. 按声明顺序遍历其包仓库
  2. 取第一个至少有一个版本满足约束的仓库
  3. 在该仓库的满足版本中选成熟度最高者，其次版本号最高者，
     仍相同时保留先声明的版本
任一组件无法解析即抛 RESOLUTION 错误，不产生部分结果。
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from concurrent.futures import ThreadPoolExecutor
from typing import TYPE_CHECKING

from componentmgr.core.exceptions import ComponentManagerError, ErrorKind
from componentmgr.core.models import ComponentSpecification, ComponentVersion, ResolvedComponent

if TYPE_CHECKING:
    from componentmgr.core.lockfile import LockFile
    from componentmgr.core.repository.base import PackageRepository

logger = logging.getLogger(__name__)


def select_version(candidates: Iterable[ComponentVersion]) -> ComponentVersion | None:
    """按 (成熟度, 版本号) 取最高者；相同键时先出现者胜出"""
    best: ComponentVersion | None = None
    for candidate in candidates:
        if best is None or candidate.sort_key() > best.sort_key():
            best = candidate
    return best


class VersionResolver:
    """版本解析器"""

    def __init__(
        self,
        repositories: dict[str, PackageRepository],
        lock_file: LockFile | None = None,
    ) -> None:
        self.repositories = repositories
        self.lock_file = lock_file

    def resolve(self, spec: ComponentSpecification) -> ResolvedComponent:
        locked = self._from_lock(spec)
        if locked is not None:
            return locked

        for repo_id in spec.repositories:
            repo = self.repositories.get(repo_id)
            if repo is None:
                raise ComponentManagerError(
                    ErrorKind.RESOLUTION, "unknown-repository",
                    component=spec.name, repository=repo_id,
                )
            component = repo.get_component(spec)
            satisfying = [
                v for v in component.versions
                if repo.satisfies_version(spec.version, v)
            ]
            logger.debug(
                "%s: 仓库 %s 有 %d 个版本, %d 个满足约束 %r",
                spec.name, repo_id, len(component.versions),
                len(satisfying), spec.version,
            )
            chosen = select_version(satisfying)
            if chosen is not None:
                logger.info(
                    "已解析 %s -> %s (仓库 %s, version=%s)",
                    spec.name, chosen.release, repo_id, chosen.version,
                )
                return ResolvedComponent(spec, repo_id, chosen)

        raise ComponentManagerError(
            ErrorKind.RESOLUTION, "no-satisfying-version",
            component=spec.name, constraint=spec.version,
            repositories=", ".join(spec.repositories),
        )

    def resolve_all(
        self, specs: Iterable[ComponentSpecification], workers: int = 1,
    ) -> dict[str, ResolvedComponent]:
        """解析全部组件，结果按声明顺序返回

        workers > 1 时跨组件并行；每个组件名只由一个任务写入结果。
        """
        specs = list(specs)
        names = [s.name for s in specs]
        if len(set(names)) != len(names):
            raise ComponentManagerError(
                ErrorKind.PROJECT, "project-invalid", error="组件名重复",
            )
        if workers <= 1:
            return {spec.name: self.resolve(spec) for spec in specs}
        with ThreadPoolExecutor(max_workers=workers) as pool:
            results = list(pool.map(self.resolve, specs))
        return {r.name: r for r in results}

    def _from_lock(self, spec: ComponentSpecification) -> ResolvedComponent | None:
        if self.lock_file is None:
            return None
        entry = self.lock_file.get(spec.name)
        if entry is None or not entry.matches(spec):
            return None
        logger.info("沿用锁文件: %s -> %s (仓库 %s)",
                    spec.name, entry.version.release, entry.repository)
        return ResolvedComponent(spec, entry.repository, entry.version)
