"""测试共享 fixture：记录命令行的执行器 + 计数的 HTTP 假实现"""

from __future__ import annotations

import shlex
from pathlib import Path
from typing import Any

import pytest

from componentmgr.utils.shell import CommandResult


class RecordingExecutor:
    """记录每次调用的命令行；fail_on 中的子命令返回非零退出码"""

    def __init__(self, fail_on: tuple[str, ...] = (), stdout: str = "") -> None:
        self.fail_on = fail_on
        self.stdout = stdout
        self.calls: list[tuple[list[str], str]] = []

    def execute(self, cmd, *, cwd: str = ".", env=None) -> CommandResult:
        args = shlex.split(cmd) if isinstance(cmd, str) else list(cmd)
        self.calls.append((args, cwd))
        subcommand = args[1] if len(args) > 1 else args[0]
        rc = 1 if subcommand in self.fail_on else 0
        return CommandResult(args=args, returncode=rc, stdout=self.stdout, stderr="boom" if rc else "")

    @property
    def command_lines(self) -> list[str]:
        return [shlex.join(args) for args, _ in self.calls]


class FakeHttpClient:
    """按 URL（忽略查询串）返回预置 JSON / 文件内容，并记录调用"""

    def __init__(
        self,
        responses: dict[str, Any] | None = None,
        files: dict[str, bytes] | None = None,
    ) -> None:
        self.responses = responses or {}
        self.files = files or {}
        self.calls: list[str] = []
        self.headers: list[dict[str, str] | None] = []

    def get_json(self, url: str, headers: dict[str, str] | None = None) -> Any:
        self.calls.append(url)
        self.headers.append(headers)
        key = url.split("?", 1)[0]
        if key not in self.responses:
            raise ConnectionError(f"404: {url}")
        return self.responses[key]

    def download(self, url: str, dest: Path, headers: dict[str, str] | None = None) -> Path:
        self.calls.append(url)
        if url not in self.files:
            raise ConnectionError(f"404: {url}")
        dest.parent.mkdir(parents=True, exist_ok=True)
        dest.write_bytes(self.files[url])
        return dest


@pytest.fixture()
def recording_executor() -> RecordingExecutor:
    return RecordingExecutor()


@pytest.fixture()
def make_executor():
    return RecordingExecutor


@pytest.fixture()
def make_http():
    return FakeHttpClient
