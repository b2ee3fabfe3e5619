"""任务数据模型

数据类：
- TaskContext: 所有步骤共享的可变运行上下文
- StepRecord: 单个步骤的执行记录
- TaskReport: 任务执行报告
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from componentmgr.core.lockfile import LockFile
from componentmgr.core.models import PlatformVersion, ResolvedComponent
from componentmgr.core.platform import MoodlePlatform
from componentmgr.core.project import Project


@dataclass
class TaskContext:
    """任务运行上下文：步骤按顺序读写，后一步依赖前一步留下的状态"""

    project: Project
    platform: MoodlePlatform
    lock_file: LockFile
    moodle_dir: Path | None = None
    platform_version: PlatformVersion | None = None
    resolved: dict[str, ResolvedComponent] = field(default_factory=dict)
    installed: dict[str, Path] = field(default_factory=dict)
    package_path: Path | None = None
    counters: Counter = field(default_factory=Counter)


@dataclass
class StepRecord:
    step: str
    status: str  # "done" / "failed" / "skipped"
    detail: dict[str, Any] = field(default_factory=dict)


@dataclass
class TaskReport:
    """任务执行报告"""

    steps: list[StepRecord] = field(default_factory=list)
    error: Exception | None = None

    @property
    def success(self) -> bool:
        return self.error is None and all(s.status != "failed" for s in self.steps)

    @property
    def failed_step(self) -> str:
        for s in self.steps:
            if s.status == "failed":
                return s.step
        return ""
