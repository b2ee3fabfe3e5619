"""包仓库模块

封闭的仓库类型集合:
- filesystem.py: 本地目录
- git.py: 任意 Git 仓库
- moodle.py: Moodle.org 插件目录（带缓存）
- stash.py: Atlassian Stash 项目（带缓存）
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from componentmgr.core.exceptions import ComponentManagerError, ErrorKind
from componentmgr.core.repository.base import CachingPackageRepository, PackageRepository
from componentmgr.core.repository.cache import CacheState, MetadataCache
from componentmgr.core.repository.filesystem import FilesystemPackageRepository
from componentmgr.core.repository.git import GitPackageRepository
from componentmgr.core.repository.moodle import MoodlePackageRepository
from componentmgr.core.repository.stash import StashPackageRepository
from componentmgr.utils.http import HttpClient

REPOSITORY_TYPES: dict[str, type[PackageRepository]] = {
    FilesystemPackageRepository.type_id: FilesystemPackageRepository,
    GitPackageRepository.type_id: GitPackageRepository,
    MoodlePackageRepository.type_id: MoodlePackageRepository,
    StashPackageRepository.type_id: StashPackageRepository,
}


def create_repository(
    repository_id: str,
    options: dict[str, Any],
    *,
    cache_dir: str | Path,
    http: HttpClient | None = None,
) -> PackageRepository:
    """按 options["type"] 构造仓库实例，type 缺省时取 repository_id"""
    type_id = str(options.get("type", repository_id)).lower()
    repo_cls = REPOSITORY_TYPES.get(type_id)
    if repo_cls is None:
        raise ComponentManagerError(
            ErrorKind.PROJECT, "unknown-repository-type",
            repository=repository_id, type=type_id,
            available=", ".join(REPOSITORY_TYPES),
        )
    if issubclass(repo_cls, (MoodlePackageRepository, StashPackageRepository)):
        return repo_cls(repository_id, options, cache_dir=cache_dir, http=http)
    return repo_cls(repository_id, options)


__all__ = [
    "CacheState",
    "CachingPackageRepository",
    "FilesystemPackageRepository",
    "GitPackageRepository",
    "MetadataCache",
    "MoodlePackageRepository",
    "PackageRepository",
    "REPOSITORY_TYPES",
    "StashPackageRepository",
    "create_repository",
]
