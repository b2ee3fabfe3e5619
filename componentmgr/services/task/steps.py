"""任务步骤实现

完整打包流程的步骤顺序（由 task.py 中的构建函数决定）：
1. ValidateProjectStep - 校验项目文件
2. VerifyPackageRepositoriesCachedStep - 确认带缓存仓库已刷新
3. ResolvePlatformVersionStep - 解析 Moodle 平台版本
4. ResolveComponentVersionsStep - 解析组件版本
5. ObtainPlatformSourceStep - 获取 Moodle 源码
6. InstallComponentsStep - 安装组件（每个组件独立重试）
7. BuildComponentsStep - 执行组件构建命令
8. CommitLockFileStep - 写入锁文件
9. PackageStep - 生成发布包
10. RemoveTempDirectoriesStep - 清理临时目录（作为 finalizer 总会执行）
"""

from __future__ import annotations

import logging
import shutil
import threading
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any

import yaml

from componentmgr.core.exceptions import ComponentManagerError, ErrorKind
from componentmgr.core.models import ArchiveSource, ResolvedComponent
from componentmgr.core.platform import MoodleApi
from componentmgr.core.resolver import VersionResolver
from componentmgr.services.source.installer import SourceMaterializer
from componentmgr.services.task.models import TaskContext
from componentmgr.utils.shell import CommandExecutor, run_cmd
from componentmgr.utils.yaml_io import load_yaml

logger = logging.getLogger(__name__)

#: 组件自带的构建清单文件名
COMPONENT_MANIFEST = ".componentmgr.yml"

PACKAGE_FORMATS = {"zip": "zip", "gztar": "gztar", "tar.gz": "gztar"}


class Step(ABC):
    """单个步骤：成功返回详情字典，失败抛 ComponentManagerError"""

    name: str = ""

    @abstractmethod
    def execute(self, ctx: TaskContext) -> dict[str, Any]:
        ...


class ValidateProjectStep(Step):
    name = "validate_project"

    def execute(self, ctx: TaskContext) -> dict[str, Any]:
        problems = ctx.project.validate()
        if problems:
            raise ComponentManagerError(
                ErrorKind.PROJECT, "project-invalid",
                path=ctx.project.path, problems="; ".join(problems),
            )
        return {"components": len(ctx.project.components)}


class VerifyPackageRepositoriesCachedStep(Step):
    """被引用的带缓存仓库必须已有缓存文件，读操作从不触发刷新"""

    name = "verify_repositories_cached"

    def execute(self, ctx: TaskContext) -> dict[str, Any]:
        checked = []
        for repo in ctx.project.used_caching_repositories():
            if not repo.has_metadata_cache():
                raise ComponentManagerError(
                    ErrorKind.CACHE, "cache-missing",
                    repository=repo.id, path=repo.cache.path,
                )
            checked.append(repo.id)
        return {"repositories": checked}


class RefreshPackageRepositoriesStep(Step):
    name = "refresh_repositories"

    def execute(self, ctx: TaskContext) -> dict[str, Any]:
        refreshed = []
        for repo in ctx.project.caching_repositories():
            logger.info("刷新包仓库元数据: %s (%s)", repo.id, repo.name)
            repo.refresh_metadata_cache(logger)
            refreshed.append(repo.id)
        return {"repositories": refreshed}


class ResolvePlatformVersionStep(Step):
    name = "resolve_platform_version"

    def __init__(self, api: MoodleApi, branch: str) -> None:
        self.api = api
        self.branch = branch

    def execute(self, ctx: TaskContext) -> dict[str, Any]:
        ctx.platform_version = self.api.resolve_version(self.branch)
        return {
            "branch": ctx.platform_version.branch,
            "download_uri": ctx.platform_version.download_uri,
        }


class ResolveComponentVersionsStep(Step):
    name = "resolve_component_versions"

    def __init__(self, use_lock: bool = True, workers: int = 1) -> None:
        self.use_lock = use_lock
        self.workers = workers

    def execute(self, ctx: TaskContext) -> dict[str, Any]:
        lock = ctx.lock_file.load() if self.use_lock else None
        resolver = VersionResolver(ctx.project.repositories, lock_file=lock)
        ctx.resolved = resolver.resolve_all(ctx.project.components, workers=self.workers)
        return {
            "resolved": {
                name: f"{r.repository_id}:{r.version.release or r.version.version}"
                for name, r in ctx.resolved.items()
            },
        }


class ObtainPlatformSourceStep(Step):
    """下载并解压 Moodle 源码包到 destination"""

    name = "obtain_platform_source"

    def __init__(self, materializer: SourceMaterializer, destination: Path | None = None) -> None:
        self.materializer = materializer
        self.destination = destination

    def execute(self, ctx: TaskContext) -> dict[str, Any]:
        if ctx.platform_version is None:
            raise ComponentManagerError(
                ErrorKind.TASK, "platform-version-unknown", step=self.name,
            )
        destination = self.destination or ctx.platform.create_temp_directory() / "moodle"
        self.materializer.materialize(
            ArchiveSource(uri=ctx.platform_version.download_uri), destination, logger,
        )
        ctx.moodle_dir = destination
        return {"moodle_dir": str(destination)}


class InstallComponentsStep(Step):
    """把每个已解析组件安装到 Moodle 源码树中的专属目录

    重试以组件为单位：已成功的组件不会因其他组件重试而重跑。
    """

    name = "install_components"

    def __init__(
        self, materializer: SourceMaterializer, attempts: int = 1, workers: int = 1,
    ) -> None:
        self.materializer = materializer
        self.attempts = max(1, attempts)
        self.workers = workers
        self._counter_lock = threading.Lock()

    def execute(self, ctx: TaskContext) -> dict[str, Any]:
        if ctx.moodle_dir is None:
            raise ComponentManagerError(
                ErrorKind.TASK, "install-failed", step=self.name,
                error="未指定 Moodle 根目录",
            )
        moodle_dir = ctx.moodle_dir
        items = list(ctx.resolved.values())
        if self.workers > 1:
            with ThreadPoolExecutor(max_workers=self.workers) as pool:
                paths = list(pool.map(lambda r: self._install(ctx, moodle_dir, r), items))
        else:
            paths = [self._install(ctx, moodle_dir, r) for r in items]
        for resolved, path in zip(items, paths):
            ctx.installed[resolved.name] = path
        return {"installed": {n: str(p) for n, p in ctx.installed.items()}}

    def _install(
        self, ctx: TaskContext, moodle_dir: Path, resolved: ResolvedComponent,
    ) -> Path:
        relative = resolved.specification.get_extra("install_directory") \
            or ctx.platform.component_install_directory(resolved.name)
        target = moodle_dir / relative
        last_error: ComponentManagerError | None = None
        for attempt in range(1, self.attempts + 1):
            if target.exists():
                shutil.rmtree(target)
            self._count(ctx, "install_attempts")
            try:
                source = self.materializer.materialize_any(
                    resolved.version.sources, target, logger,
                )
            except ComponentManagerError as e:
                last_error = e
                logger.warning(
                    "安装 %s 失败 (第 %d/%d 次): %s",
                    resolved.name, attempt, self.attempts, e,
                )
                continue
            self._count(ctx, "installed")
            logger.info("已安装 %s -> %s (来源 %s)", resolved.name, target, source.kind)
            return target
        context = {"component": resolved.name, "attempts": self.attempts, "cause": last_error}
        if last_error is not None and "command" in last_error.context:
            context["command"] = last_error.context["command"]
        raise ComponentManagerError(ErrorKind.TASK, "install-failed", **context) from last_error

    def _count(self, ctx: TaskContext, key: str) -> None:
        # 并行安装时多个线程共享同一个 Counter
        with self._counter_lock:
            ctx.counters[key] += 1


class BuildComponentsStep(Step):
    """执行组件自带清单中声明的构建命令"""

    name = "build_components"

    def __init__(self, executor: CommandExecutor | None = None) -> None:
        self.executor = executor

    def execute(self, ctx: TaskContext) -> dict[str, Any]:
        built = []
        for name, path in ctx.installed.items():
            manifest_path = path / COMPONENT_MANIFEST
            try:
                manifest = load_yaml(manifest_path, require_mapping=True)
            except (yaml.YAMLError, ValueError, OSError) as e:
                raise ComponentManagerError(
                    ErrorKind.TASK, "build-failed",
                    component=name, manifest=manifest_path, error=e,
                ) from e
            commands = manifest.get("build") or []
            if isinstance(commands, str):
                commands = [commands]
            for cmd in commands:
                run_cmd(cmd, cwd=str(path), label=f"build {name}", executor=self.executor)
            if commands:
                ctx.counters["built"] += 1
                built.append(name)
        return {"built": built}


class CommitLockFileStep(Step):
    name = "commit_lock_file"

    def execute(self, ctx: TaskContext) -> dict[str, Any]:
        ctx.lock_file.commit(ctx.resolved)
        return {"path": str(ctx.lock_file.path)}


class PackageStep(Step):
    """把 Moodle 源码树打成归档，归档内顶层目录为 moodle_dir 的目录名"""

    name = "package"

    def __init__(self, package_format: str, destination: Path) -> None:
        if package_format not in PACKAGE_FORMATS:
            raise ComponentManagerError(
                ErrorKind.PROJECT, "project-invalid",
                package_format=package_format,
                error=f"支持的格式: {', '.join(PACKAGE_FORMATS)}",
            )
        self.package_format = PACKAGE_FORMATS[package_format]
        self.destination = destination

    def execute(self, ctx: TaskContext) -> dict[str, Any]:
        if ctx.moodle_dir is None:
            raise ComponentManagerError(
                ErrorKind.TASK, "package-failed", error="没有可打包的源码树",
            )
        base_name = str(self.destination)
        for suffix in (".zip", ".tar.gz"):
            if base_name.endswith(suffix):
                base_name = base_name[: -len(suffix)]
        try:
            self.destination.parent.mkdir(parents=True, exist_ok=True)
            archive = shutil.make_archive(
                base_name, self.package_format,
                root_dir=str(ctx.moodle_dir.parent), base_dir=ctx.moodle_dir.name,
            )
        except (OSError, ValueError) as e:
            raise ComponentManagerError(
                ErrorKind.TASK, "package-failed",
                destination=self.destination, error=e,
            ) from e
        ctx.package_path = Path(archive)
        logger.info("发布包已生成: %s", archive)
        return {"package": archive}


class RemoveTempDirectoriesStep(Step):
    name = "remove_temp_directories"

    def execute(self, ctx: TaskContext) -> dict[str, Any]:
        return {"removed": ctx.platform.remove_temp_directories()}
