"""任务流水线模块

- models.py: 运行上下文与报告
- steps.py: 步骤实现
- task.py: Task 与各任务的构建函数
"""

from componentmgr.services.task.models import StepRecord, TaskContext, TaskReport
from componentmgr.services.task.task import (
    Task,
    build_install_task,
    build_package_task,
    build_refresh_task,
    build_resolve_task,
)

__all__ = [
    "StepRecord",
    "Task",
    "TaskContext",
    "TaskReport",
    "build_install_task",
    "build_package_task",
    "build_refresh_task",
    "build_resolve_task",
]
