"""Shell 命令执行工具：统一子进程调用

通过 CommandExecutor 协议抽象子进程执行，方便测试替换。
版本控制适配器和构建步骤都经由执行器派生子进程。
"""

from __future__ import annotations

import logging
import shlex
import subprocess
from dataclasses import dataclass
from typing import Protocol

from componentmgr.core.exceptions import ComponentManagerError, ErrorKind

logger = logging.getLogger(__name__)


# =========================================================================
# 命令执行结果
# =========================================================================

@dataclass
class CommandResult:
    """命令执行结果（与 subprocess 解耦）"""

    args: list[str]
    returncode: int
    stdout: str
    stderr: str

    @property
    def success(self) -> bool:
        return self.returncode == 0

    @property
    def command_line(self) -> str:
        return shlex.join(self.args)


# =========================================================================
# 命令执行器协议
# =========================================================================

class CommandExecutor(Protocol):
    """命令执行器协议：抽象子进程调用

    测试时可注入记录命令行的 mock 实现，无需 patch subprocess。
    """

    def execute(
        self,
        cmd: str | list[str],
        *,
        cwd: str = ".",
        env: dict[str, str] | None = None,
    ) -> CommandResult:
        """执行命令并返回结果"""
        ...


class LocalExecutor:
    """本地子进程执行器（默认实现，不经过 shell）"""

    def execute(
        self,
        cmd: str | list[str],
        *,
        cwd: str = ".",
        env: dict[str, str] | None = None,
    ) -> CommandResult:
        args = shlex.split(cmd) if isinstance(cmd, str) else list(cmd)
        logger.debug("执行: %s (cwd=%s)", shlex.join(args), cwd)
        try:
            r = subprocess.run(
                args, capture_output=True, text=True,
                cwd=cwd, env=env, check=False,
            )
        except OSError as e:
            # 可执行文件不存在等情况统一表现为失败的退出码
            return CommandResult(args=args, returncode=127, stdout="", stderr=str(e))
        return CommandResult(
            args=args,
            returncode=r.returncode,
            stdout=r.stdout,
            stderr=r.stderr,
        )


def run_cmd(
    cmd: str, *, cwd: str = ".",
    env: dict[str, str] | None = None,
    label: str = "cmd",
    executor: CommandExecutor | None = None,
) -> CommandResult:
    """执行构建命令，失败抛 ComponentManagerError(TASK, build-failed)"""
    executor = executor or LocalExecutor()
    logger.info("  %s: %s (cwd=%s)", label, cmd, cwd)
    r = executor.execute(cmd, cwd=cwd, env=env)
    if not r.success:
        raise ComponentManagerError(
            ErrorKind.TASK, "build-failed",
            command=r.command_line, returncode=r.returncode,
            stderr=r.stderr[:500], label=label,
        )
    return r
