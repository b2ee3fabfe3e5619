"""Git 版本控制适配器

每个实例绑定一个工作目录；每个操作同步派生一个 git 子进程并检查退出码。
非零退出码抛 ComponentManagerError(VERSION_CONTROL, <操作码>)，
context 中带完整命令行，适配器自身不做重试。
"""

from __future__ import annotations

import logging
import shlex
from enum import Enum
from pathlib import Path

from componentmgr.core.exceptions import ComponentManagerError, ErrorKind
from componentmgr.utils.shell import CommandExecutor, CommandResult, LocalExecutor

logger = logging.getLogger(__name__)


class RecurseSubmodules(str, Enum):
    """fetch 时的子模块递归模式"""

    NO = "no"
    YES = "yes"
    ON_DEMAND = "on-demand"


class GitVersionControl:
    """绑定到单个工作目录的 Git 操作集合"""

    def __init__(
        self,
        directory: str | Path,
        git_executable: str = "git",
        executor: CommandExecutor | None = None,
    ) -> None:
        self.directory = Path(directory)
        self.git_executable = git_executable
        self.executor = executor or LocalExecutor()
        self.remotes: dict[str, str] = {}

    def init(self) -> None:
        self._run(["init"], "init-failed")

    def add_remote(self, name: str, uri: str) -> None:
        self._run(["remote", "add", name, uri], "remote-add-failed")
        self.remotes[name] = uri

    def fetch(
        self,
        remote: str,
        recurse_submodules: RecurseSubmodules | str = RecurseSubmodules.NO,
        with_tags: bool = True,
    ) -> None:
        """拉取远程引用；with_tags 时追加一次独立的 fetch --tags"""
        mode = self._recurse_mode(recurse_submodules)
        self._run(
            ["fetch", remote, f"--recurse-submodules={mode.value}"],
            "fetch-failed",
        )
        if with_tags:
            self._run(["fetch", "--tags", remote], "fetch-failed")

    def fetch_ref(self, remote: str, ref: str) -> None:
        """只拉取单个引用，结果写入 FETCH_HEAD"""
        self._run(["fetch", remote, ref], "fetch-failed")

    def checkout(self, ref: str) -> None:
        self._run(["checkout", ref], "checkout-failed")

    def checkout_index(self, prefix: str | Path) -> None:
        """将当前索引的全部文件导出到 prefix，不含 .git 元数据

        git 按字符串拼接前缀，目录前缀必须以分隔符结尾。
        """
        prefix = str(prefix)
        if not prefix.endswith("/"):
            prefix += "/"
        self._run(
            ["checkout-index", "--all", f"--prefix={prefix}"],
            "checkout-index-failed",
        )

    def submodule_update(self, with_init: bool = False) -> None:
        args = ["submodule", "update"]
        if with_init:
            args.append("--init")
        self._run(args, "fetch-failed")

    def parse_revision(self, ref: str) -> str:
        """返回 ref 对应的提交哈希"""
        r = self._run(["rev-parse", ref], "rev-parse-failed")
        return r.stdout.strip()

    @staticmethod
    def _recurse_mode(value: RecurseSubmodules | str) -> RecurseSubmodules:
        try:
            return RecurseSubmodules(value)
        except ValueError:
            raise ComponentManagerError(
                ErrorKind.VERSION_CONTROL, "invalid-recurse-mode",
                value=value,
            ) from None

    def _run(self, arguments: list[str], code: str) -> CommandResult:
        args = [self.git_executable, *arguments]
        logger.debug("git: %s (cwd=%s)", shlex.join(args), self.directory)
        r = self.executor.execute(args, cwd=str(self.directory))
        if not r.success:
            raise ComponentManagerError(
                ErrorKind.VERSION_CONTROL, code,
                command=shlex.join(args),
                returncode=r.returncode,
                stderr=r.stderr.strip()[:300],
            )
        return r
