"""项目文件

项目文件（YAML）声明:
  moodle_version       - 需要的 Moodle 平台分支，如 "3.1"
  components           - 组件名 -> {version, repositories, 其余键进入 extra}
  package_repositories - 仓库 id -> {type, 仓库特定配置}

组件声明按文件中的顺序保存；repositories 的顺序即解析时的查询顺序。
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from componentmgr.core.exceptions import ComponentManagerError, ErrorKind
from componentmgr.core.models import ComponentSpecification
from componentmgr.core.repository import PackageRepository, create_repository
from componentmgr.core.repository.base import CachingPackageRepository
from componentmgr.utils.http import HttpClient
from componentmgr.utils.yaml_io import load_yaml

logger = logging.getLogger(__name__)

_SPEC_KEYS = frozenset(("version", "repositories", "repository"))


def parse_specification(name: str, info: dict[str, Any] | None) -> ComponentSpecification:
    """解析单个组件声明"""
    info = info or {}
    if not isinstance(info, dict):
        raise ComponentManagerError(
            ErrorKind.PROJECT, "project-invalid",
            component=name, error="组件声明必须是映射",
        )
    repositories = info.get("repositories")
    if repositories is None:
        repositories = [info["repository"]] if info.get("repository") else []
    elif isinstance(repositories, str):
        repositories = [repositories]
    version = info.get("version", "")
    return ComponentSpecification(
        name=str(name),
        version="" if version is None else str(version),
        repositories=tuple(str(r) for r in repositories),
        extra={k: v for k, v in info.items() if k not in _SPEC_KEYS},
    )


@dataclass
class Project:
    """已加载的项目：组件声明 + 已构造的包仓库"""

    path: Path
    moodle_version: str
    components: tuple[ComponentSpecification, ...]
    repositories: dict[str, PackageRepository] = field(default_factory=dict)

    @classmethod
    def load(
        cls,
        path: str | Path,
        *,
        cache_dir: str | Path,
        http: HttpClient | None = None,
    ) -> Project:
        p = Path(path)
        if not p.is_file():
            raise ComponentManagerError(
                ErrorKind.PROJECT, "project-file-missing", path=p,
            )
        try:
            data = load_yaml(p, require_mapping=True)
        except (yaml.YAMLError, ValueError) as e:
            raise ComponentManagerError(
                ErrorKind.PROJECT, "project-invalid", path=p, error=e,
            ) from e

        components = data.get("components") or {}
        repo_options = data.get("package_repositories") or {}
        if not isinstance(components, dict) or not isinstance(repo_options, dict):
            raise ComponentManagerError(
                ErrorKind.PROJECT, "project-invalid", path=p,
                error="components 与 package_repositories 必须是映射",
            )

        specs = tuple(parse_specification(n, i) for n, i in components.items())
        repositories = {
            str(repo_id): create_repository(
                str(repo_id), options or {}, cache_dir=cache_dir, http=http,
            )
            for repo_id, options in repo_options.items()
        }
        logger.info(
            "已加载项目 %s: %d 个组件, %d 个包仓库",
            p, len(specs), len(repositories),
        )
        return cls(
            path=p,
            moodle_version=str(data.get("moodle_version", "") or ""),
            components=specs,
            repositories=repositories,
        )

    def get_repository(self, repository_id: str) -> PackageRepository | None:
        return self.repositories.get(repository_id)

    def caching_repositories(self) -> list[CachingPackageRepository]:
        return [
            r for r in self.repositories.values()
            if isinstance(r, CachingPackageRepository)
        ]

    def used_caching_repositories(self) -> list[CachingPackageRepository]:
        """被至少一个组件引用的带缓存仓库"""
        used = {rid for spec in self.components for rid in spec.repositories}
        return [r for r in self.caching_repositories() if r.id in used]

    def validate(self) -> list[str]:
        """返回全部问题描述，空列表表示有效"""
        problems: list[str] = []
        for spec in self.components:
            if not spec.name:
                problems.append("存在空组件名")
                continue
            if not spec.repositories:
                problems.append(f"组件 {spec.name} 未指定包仓库")
            for repo_id in spec.repositories:
                if repo_id not in self.repositories:
                    problems.append(f"组件 {spec.name} 引用了未配置的包仓库 {repo_id}")
        return problems
