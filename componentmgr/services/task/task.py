"""任务：固定顺序的步骤列表

- 步骤顺序只在构造时决定，执行期不调整
- 步骤严格串行，首个失败即中止，后续步骤不再执行
- finalizers（清理步骤）在 finally 中执行，成功或失败都会清理临时目录
- 每种任务由各自的构建函数给出完整的步骤列表，不继承、不改写其他任务的列表
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from pathlib import Path

from componentmgr.core.exceptions import ComponentManagerError
from componentmgr.core.lockfile import LockFile
from componentmgr.core.platform import MoodleApi, MoodlePlatform
from componentmgr.core.project import Project
from componentmgr.services.source.installer import SourceMaterializer
from componentmgr.services.task.models import StepRecord, TaskContext, TaskReport
from componentmgr.services.task.steps import (
    BuildComponentsStep,
    CommitLockFileStep,
    InstallComponentsStep,
    ObtainPlatformSourceStep,
    PackageStep,
    RefreshPackageRepositoriesStep,
    RemoveTempDirectoriesStep,
    ResolveComponentVersionsStep,
    ResolvePlatformVersionStep,
    Step,
    ValidateProjectStep,
    VerifyPackageRepositoriesCachedStep,
)
from componentmgr.utils.shell import CommandExecutor

logger = logging.getLogger(__name__)


class Task:
    """不可变的步骤序列 + 共享上下文"""

    def __init__(
        self,
        name: str,
        steps: Sequence[Step],
        context: TaskContext,
        finalizers: Sequence[Step] = (),
    ) -> None:
        self.name = name
        self.steps: tuple[Step, ...] = tuple(steps)
        self.finalizers: tuple[Step, ...] = tuple(finalizers)
        self.context = context
        self.report: TaskReport | None = None

    def execute(self) -> TaskReport:
        """按顺序执行全部步骤；失败时在清理后重新抛出原始错误"""
        self.report = report = TaskReport()
        total = len(self.steps)
        try:
            for index, step in enumerate(self.steps, 1):
                logger.info("[%s %d/%d] %s", self.name, index, total, step.name)
                try:
                    detail = step.execute(self.context)
                except Exception as e:
                    # 非业务异常同样记入报告后原样抛出
                    detail = e.to_dict() if isinstance(e, ComponentManagerError) \
                        else {"error": f"{type(e).__name__}: {e}"}
                    report.steps.append(StepRecord(step.name, "failed", detail))
                    report.error = e
                    logger.error("[%s] 步骤 %s 失败: %s", self.name, step.name, e)
                    for skipped in self.steps[index:]:
                        report.steps.append(StepRecord(skipped.name, "skipped"))
                    raise
                report.steps.append(StepRecord(step.name, "done", detail or {}))
        finally:
            self._finalize(report)
        logger.info("[%s] 完成", self.name)
        return report

    def _finalize(self, report: TaskReport) -> None:
        for step in self.finalizers:
            try:
                detail = step.execute(self.context)
            except (ComponentManagerError, OSError) as e:
                # 清理失败不覆盖主流程的原始错误
                logger.exception("[%s] 清理步骤 %s 失败", self.name, step.name)
                report.steps.append(StepRecord(step.name, "failed", {"error": str(e)}))
                if report.error is None:
                    report.error = e
                continue
            report.steps.append(StepRecord(step.name, "done", detail or {}))


def _context(
    project: Project, platform: MoodlePlatform | None, lock_file: LockFile | None,
) -> TaskContext:
    return TaskContext(
        project=project,
        platform=platform or MoodlePlatform(),
        lock_file=lock_file or LockFile(project.path.with_name("componentmgr.lock.yml")),
    )


def build_refresh_task(
    project: Project, *, platform: MoodlePlatform | None = None,
) -> Task:
    """刷新全部带缓存仓库的元数据"""
    ctx = _context(project, platform, None)
    return Task("refresh", [
        ValidateProjectStep(),
        RefreshPackageRepositoriesStep(),
    ], ctx)


def build_resolve_task(
    project: Project,
    *,
    lock_file: LockFile | None = None,
    use_lock: bool = True,
    workers: int = 1,
    platform: MoodlePlatform | None = None,
) -> Task:
    """只解析版本，不获取源码"""
    ctx = _context(project, platform, lock_file)
    return Task("resolve", [
        ValidateProjectStep(),
        VerifyPackageRepositoriesCachedStep(),
        ResolveComponentVersionsStep(use_lock=use_lock, workers=workers),
    ], ctx)


def build_install_task(
    project: Project,
    moodle_dir: Path,
    *,
    lock_file: LockFile | None = None,
    materializer: SourceMaterializer | None = None,
    executor: CommandExecutor | None = None,
    attempts: int = 3,
    workers: int = 1,
    use_lock: bool = True,
    platform: MoodlePlatform | None = None,
) -> Task:
    """把组件安装到已有的 Moodle 源码树"""
    ctx = _context(project, platform, lock_file)
    ctx.moodle_dir = Path(moodle_dir)
    materializer = materializer or SourceMaterializer()
    return Task("install", [
        ValidateProjectStep(),
        VerifyPackageRepositoriesCachedStep(),
        ResolveComponentVersionsStep(use_lock=use_lock, workers=workers),
        InstallComponentsStep(materializer, attempts=attempts, workers=workers),
        BuildComponentsStep(executor),
        CommitLockFileStep(),
    ], ctx, finalizers=[RemoveTempDirectoriesStep()])


def build_package_task(
    project: Project,
    package_destination: Path,
    *,
    package_format: str = "zip",
    api: MoodleApi | None = None,
    moodle_destination: Path | None = None,
    lock_file: LockFile | None = None,
    materializer: SourceMaterializer | None = None,
    executor: CommandExecutor | None = None,
    attempts: int = 3,
    workers: int = 1,
    use_lock: bool = True,
    platform: MoodlePlatform | None = None,
) -> Task:
    """获取干净的 Moodle 源码、安装组件并打包"""
    ctx = _context(project, platform, lock_file)
    materializer = materializer or SourceMaterializer()
    return Task("package", [
        ValidateProjectStep(),
        VerifyPackageRepositoriesCachedStep(),
        ResolvePlatformVersionStep(api or MoodleApi(), project.moodle_version),
        ResolveComponentVersionsStep(use_lock=use_lock, workers=workers),
        ObtainPlatformSourceStep(materializer, moodle_destination),
        InstallComponentsStep(materializer, attempts=attempts, workers=workers),
        BuildComponentsStep(executor),
        CommitLockFileStep(),
        PackageStep(package_format, Path(package_destination)),
    ], ctx, finalizers=[RemoveTempDirectoriesStep()])
