"""GitVersionControl 单元测试"""

from __future__ import annotations

import shutil
import subprocess
from pathlib import Path

import pytest

from componentmgr.core.exceptions import ComponentManagerError, ErrorKind
from componentmgr.core.models import GitSource
from componentmgr.core.vcs.git import GitVersionControl, RecurseSubmodules
from componentmgr.services.source import GitMaterializer


class TestCommandConstruction:
    """命令行构造测试"""

    def test_runs_in_bound_directory(self, tmp_path, recording_executor) -> None:
        vcs = GitVersionControl(tmp_path, executor=recording_executor)
        vcs.init()
        args, cwd = recording_executor.calls[0]
        assert args == ["git", "init"]
        assert cwd == str(tmp_path)

    def test_custom_executable(self, tmp_path, recording_executor) -> None:
        vcs = GitVersionControl(tmp_path, "/usr/local/bin/git", recording_executor)
        vcs.checkout("v1.0")
        assert recording_executor.command_lines == ["/usr/local/bin/git checkout v1.0"]

    def test_add_remote(self, tmp_path, recording_executor) -> None:
        vcs = GitVersionControl(tmp_path, executor=recording_executor)
        vcs.add_remote("origin", "https://example.com/a.git")
        assert recording_executor.command_lines == [
            "git remote add origin https://example.com/a.git",
        ]
        assert vcs.remotes == {"origin": "https://example.com/a.git"}

    def test_fetch_defaults(self, tmp_path, recording_executor) -> None:
        vcs = GitVersionControl(tmp_path, executor=recording_executor)
        vcs.fetch("origin")
        assert recording_executor.command_lines == [
            "git fetch origin --recurse-submodules=no",
            "git fetch --tags origin",
        ]

    def test_fetch_on_demand_without_tags(self, tmp_path, recording_executor) -> None:
        vcs = GitVersionControl(tmp_path, executor=recording_executor)
        vcs.fetch("origin", RecurseSubmodules.ON_DEMAND, with_tags=False)
        assert recording_executor.command_lines == [
            "git fetch origin --recurse-submodules=on-demand",
        ]

    @pytest.mark.parametrize("mode", ["no", "yes", "on-demand"])
    def test_fetch_accepts_string_modes(self, tmp_path, recording_executor, mode) -> None:
        vcs = GitVersionControl(tmp_path, executor=recording_executor)
        vcs.fetch("origin", mode, with_tags=False)
        assert f"--recurse-submodules={mode}" in recording_executor.calls[0][0]

    def test_invalid_recurse_mode(self, tmp_path, recording_executor) -> None:
        vcs = GitVersionControl(tmp_path, executor=recording_executor)
        with pytest.raises(ComponentManagerError) as exc:
            vcs.fetch("origin", "sideways")
        assert exc.value.kind is ErrorKind.VERSION_CONTROL
        assert exc.value.code == "invalid-recurse-mode"
        assert recording_executor.calls == []

    def test_checkout_index_appends_separator(self, tmp_path, recording_executor) -> None:
        vcs = GitVersionControl(tmp_path, executor=recording_executor)
        vcs.checkout_index("/tmp/export")
        assert recording_executor.command_lines == [
            "git checkout-index --all --prefix=/tmp/export/",
        ]

    @pytest.mark.parametrize("with_init,expected", [
        (False, "git submodule update"),
        (True, "git submodule update --init"),
    ])
    def test_submodule_update(self, tmp_path, recording_executor, with_init, expected) -> None:
        vcs = GitVersionControl(tmp_path, executor=recording_executor)
        vcs.submodule_update(with_init=with_init)
        assert recording_executor.command_lines == [expected]

    def test_parse_revision_strips_output(self, tmp_path, make_executor) -> None:
        executor = make_executor(stdout="abc123\n")
        vcs = GitVersionControl(tmp_path, executor=executor)
        assert vcs.parse_revision("HEAD") == "abc123"


class TestFailureCodes:
    """非零退出码映射为操作专属错误码"""

    @pytest.mark.parametrize("call,subcommand,code", [
        (lambda v: v.init(), "init", "init-failed"),
        (lambda v: v.add_remote("o", "u"), "remote", "remote-add-failed"),
        (lambda v: v.fetch("o"), "fetch", "fetch-failed"),
        (lambda v: v.checkout("x"), "checkout", "checkout-failed"),
        (lambda v: v.checkout_index("p"), "checkout-index", "checkout-index-failed"),
        (lambda v: v.parse_revision("x"), "rev-parse", "rev-parse-failed"),
        (lambda v: v.submodule_update(), "submodule", "fetch-failed"),
    ])
    def test_error_code(self, tmp_path, make_executor, call, subcommand, code) -> None:
        vcs = GitVersionControl(tmp_path, executor=make_executor(fail_on=(subcommand,)))
        with pytest.raises(ComponentManagerError) as exc:
            call(vcs)
        assert exc.value.code == code
        assert exc.value.context["command"].startswith(f"git {subcommand}")

    def test_tags_fetch_failure(self, tmp_path, make_executor) -> None:
        executor = make_executor()
        vcs = GitVersionControl(tmp_path, executor=executor)
        original = executor.execute

        def fail_tags(cmd, **kwargs):
            result = original(cmd, **kwargs)
            if "--tags" in cmd:
                result.returncode = 128
            return result

        executor.execute = fail_tags
        with pytest.raises(ComponentManagerError, match="fetch --tags origin"):
            vcs.fetch("origin")

    def test_missing_binary_is_version_control_error(self, tmp_path) -> None:
        vcs = GitVersionControl(tmp_path, git_executable="definitely-not-git-xyz")
        with pytest.raises(ComponentManagerError) as exc:
            vcs.init()
        assert exc.value.code == "init-failed"


def _git(cwd: Path, *args: str) -> str:
    r = subprocess.run(
        ["git", "-c", "user.name=t", "-c", "user.email=t@example.com", *args],
        cwd=str(cwd), capture_output=True, text=True, check=True,
    )
    return r.stdout.strip()


@pytest.mark.skipif(shutil.which("git") is None, reason="需要 git")
class TestRealGit:
    """真实 git 子进程"""

    @pytest.fixture()
    def upstream(self, tmp_path) -> Path:
        repo = tmp_path / "upstream"
        repo.mkdir()
        _git(repo, "init", "-q")
        (repo / "version.php").write_text("<?php $plugin->version = 1;\n")
        (repo / "lang" / "en").mkdir(parents=True)
        (repo / "lang" / "en" / "x.php").write_bytes(b"\x00\x01binary\n")
        _git(repo, "add", "-A")
        _git(repo, "commit", "-q", "-m", "v1")
        _git(repo, "tag", "v1.0")
        (repo / "version.php").write_text("<?php $plugin->version = 2;\n")
        _git(repo, "commit", "-q", "-am", "v2")
        return repo

    def test_checkout_index_exports_clean_tree(self, tmp_path, upstream) -> None:
        work = tmp_path / "work"
        work.mkdir()
        vcs = GitVersionControl(work)
        vcs.init()
        vcs.add_remote("origin", str(upstream))
        vcs.fetch("origin")
        vcs.checkout("v1.0")
        export = tmp_path / "export"
        vcs.checkout_index(export)

        assert not (export / ".git").exists()
        assert (export / "version.php").read_text() == "<?php $plugin->version = 1;\n"
        assert (export / "lang" / "en" / "x.php").read_bytes() == b"\x00\x01binary\n"
        files = sorted(p.relative_to(export).as_posix() for p in export.rglob("*") if p.is_file())
        assert files == ["lang/en/x.php", "version.php"]
        assert vcs.parse_revision("HEAD") == _git(upstream, "rev-parse", "v1.0")

    def test_checkout_unknown_ref(self, tmp_path, upstream) -> None:
        work = tmp_path / "work"
        work.mkdir()
        vcs = GitVersionControl(work)
        vcs.init()
        vcs.add_remote("origin", str(upstream))
        vcs.fetch("origin")
        with pytest.raises(ComponentManagerError) as exc:
            vcs.checkout("v9.9")
        assert exc.value.code == "checkout-failed"
        assert "git checkout v9.9" in exc.value.context["command"]

    def test_default_ref_follows_remote_head(self, tmp_path) -> None:
        repo = tmp_path / "branches"
        repo.mkdir()
        _git(repo, "init", "-q")
        _git(repo, "symbolic-ref", "HEAD", "refs/heads/main")
        (repo / "version.php").write_text("old\n")
        _git(repo, "add", "-A")
        _git(repo, "commit", "-q", "-m", "old")
        # 按字母序排在默认分支之前的旧分支
        _git(repo, "branch", "aaa-old")
        (repo / "version.php").write_text("new\n")
        _git(repo, "commit", "-q", "-am", "new")

        out = tmp_path / "out"
        commit = GitMaterializer(recurse_submodules=False).materialize(
            GitSource(str(repo), GitSource.DEFAULT_REF), out,
        )
        assert (out / "version.php").read_text() == "new\n"
        assert commit == _git(repo, "rev-parse", "main")
