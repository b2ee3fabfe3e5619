"""组件来源获取器单元测试"""

from __future__ import annotations

import io
import tarfile
import zipfile
from pathlib import Path

import pytest

from componentmgr.core.exceptions import ComponentManagerError, ErrorKind
from componentmgr.core.models import ArchiveSource, DirectorySource, GitSource
from componentmgr.services.source import (
    ArchiveMaterializer,
    DirectoryMaterializer,
    GitMaterializer,
    SourceMaterializer,
)
from componentmgr.services.source.materializers import extract_archive

ZIP_URL = "https://download.example.com/mod_forum.zip"


def _zip_bytes(files: dict[str, str]) -> bytes:
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w") as zf:
        for name, content in files.items():
            zf.writestr(name, content)
    return buf.getvalue()


class TestDirectoryMaterializer:
    def test_copies_tree(self, tmp_path) -> None:
        src = tmp_path / "src"
        (src / "lang").mkdir(parents=True)
        (src / "version.php").write_text("<?php")
        (src / "lang" / "en.php").write_text("<?php")
        target = tmp_path / "out"
        DirectoryMaterializer().materialize(DirectorySource(str(src)), target)
        assert (target / "version.php").is_file()
        assert (target / "lang" / "en.php").is_file()

    def test_missing_directory(self, tmp_path) -> None:
        with pytest.raises(ComponentManagerError) as exc:
            DirectoryMaterializer().materialize(
                DirectorySource(str(tmp_path / "nope")), tmp_path / "out",
            )
        assert exc.value.kind is ErrorKind.PACKAGE_FAILURE
        assert exc.value.code == "directory-missing"


class TestArchiveMaterializer:
    def test_single_root_is_flattened(self, tmp_path, make_http) -> None:
        http = make_http(files={ZIP_URL: _zip_bytes({
            "forum/version.php": "<?php", "forum/lib.php": "<?php",
        })})
        target = tmp_path / "mod" / "forum"
        ArchiveMaterializer(http).materialize(ArchiveSource(ZIP_URL), target)
        assert sorted(p.name for p in target.iterdir()) == ["lib.php", "version.php"]

    def test_flat_archive_kept(self, tmp_path, make_http) -> None:
        http = make_http(files={ZIP_URL: _zip_bytes({"a.php": "1", "b/c.php": "2"})})
        target = tmp_path / "out"
        ArchiveMaterializer(http).materialize(ArchiveSource(ZIP_URL), target)
        assert (target / "a.php").is_file()
        assert (target / "b" / "c.php").is_file()

    def test_download_failure(self, tmp_path, make_http) -> None:
        with pytest.raises(ComponentManagerError) as exc:
            ArchiveMaterializer(make_http()).materialize(ArchiveSource(ZIP_URL), tmp_path / "o")
        assert exc.value.code == "download-failed"
        assert isinstance(exc.value.__cause__, ConnectionError)

    def test_corrupt_archive(self, tmp_path, make_http) -> None:
        http = make_http(files={ZIP_URL: b"definitely not an archive"})
        with pytest.raises(ComponentManagerError) as exc:
            ArchiveMaterializer(http).materialize(ArchiveSource(ZIP_URL), tmp_path / "o")
        assert exc.value.code == "extract-failed"

    def test_zip_path_escape_rejected(self, tmp_path) -> None:
        archive = tmp_path / "evil.zip"
        archive.write_bytes(_zip_bytes({"../escape.php": "x"}))
        with pytest.raises(OSError):
            extract_archive(archive, tmp_path / "dest")
        assert not (tmp_path / "escape.php").exists()

    def test_tar_archive(self, tmp_path) -> None:
        archive = tmp_path / "pkg.tar.gz"
        payload = tmp_path / "payload.txt"
        payload.write_text("hello")
        with tarfile.open(archive, "w:gz") as tf:
            tf.add(payload, arcname="pkg/payload.txt")
        extract_archive(archive, tmp_path / "dest")
        assert (tmp_path / "dest" / "pkg" / "payload.txt").read_text() == "hello"


class TestGitMaterializer:
    def test_command_sequence(self, tmp_path, make_executor) -> None:
        executor = make_executor(stdout="abc123\n")
        target = tmp_path / "out"
        commit = GitMaterializer(executor=executor).materialize(
            GitSource("https://g.example.com/forum.git", "v1.0"), target,
        )
        assert commit == "abc123"
        subcommands = [args[1] for args, _ in executor.calls]
        assert subcommands == [
            "init", "remote", "fetch", "fetch", "checkout",
            "submodule", "rev-parse", "checkout-index",
        ]
        lines = executor.command_lines
        assert "git fetch origin --recurse-submodules=on-demand" in lines
        assert "git checkout v1.0" in lines
        assert lines[-1] == f"git checkout-index --all --prefix={target.resolve()}/"
        # 所有命令都在同一个临时仓库中执行
        assert len({cwd for _, cwd in executor.calls}) == 1

    def test_without_submodules(self, tmp_path, make_executor) -> None:
        executor = make_executor()
        GitMaterializer(executor=executor, recurse_submodules=False).materialize(
            GitSource("https://g/x.git", "main"), tmp_path / "out",
        )
        assert "git fetch origin --recurse-submodules=no" in executor.command_lines
        assert all(args[1] != "submodule" for args, _ in executor.calls)

    def test_default_ref_checks_out_remote_head(self, tmp_path, make_executor) -> None:
        executor = make_executor()
        GitMaterializer(executor=executor, recurse_submodules=False).materialize(
            GitSource("https://g/x.git", GitSource.DEFAULT_REF), tmp_path / "out",
        )
        lines = executor.command_lines
        assert lines.index("git fetch origin HEAD") > lines.index("git fetch --tags origin")
        assert lines[lines.index("git fetch origin HEAD") + 1] == "git checkout FETCH_HEAD"

    def test_target_io_error_wrapped(self, tmp_path, make_executor) -> None:
        blocker = tmp_path / "file"
        blocker.write_text("x")
        with pytest.raises(ComponentManagerError) as exc:
            GitMaterializer(executor=make_executor()).materialize(
                GitSource("https://g/x.git", "main"), blocker / "target",
            )
        assert exc.value.kind is ErrorKind.PACKAGE_FAILURE
        assert exc.value.code == "git-failed"
        assert isinstance(exc.value.__cause__, OSError)

    def test_vcs_failure_wrapped(self, tmp_path, make_executor) -> None:
        executor = make_executor(fail_on=("checkout",))
        with pytest.raises(ComponentManagerError) as exc:
            GitMaterializer(executor=executor).materialize(
                GitSource("https://g/x.git", "missing-tag"), tmp_path / "out",
            )
        err = exc.value
        assert err.kind is ErrorKind.PACKAGE_FAILURE
        assert err.code == "git-failed"
        assert err.context["command"] == "git checkout missing-tag"
        assert err.__cause__.code == "checkout-failed"


class TestSourceMaterializer:
    def test_dispatch_by_type(self, tmp_path) -> None:
        src = tmp_path / "src"
        src.mkdir()
        (src / "f.php").write_text("x")
        used = SourceMaterializer().materialize_any(
            [DirectorySource(str(src))], tmp_path / "out",
        )
        assert used == DirectorySource(str(src))

    def test_falls_back_to_next_source(self, tmp_path, make_http, make_executor) -> None:
        http = make_http(files={ZIP_URL: _zip_bytes({"forum/version.php": "<?php"})})
        materializer = SourceMaterializer(
            git=GitMaterializer(executor=make_executor(fail_on=("fetch",))),
            archive=ArchiveMaterializer(http),
        )
        target = tmp_path / "out"
        used = materializer.materialize_any(
            [GitSource("https://g/forum.git", "v1"), ArchiveSource(ZIP_URL)], target,
        )
        assert used == ArchiveSource(ZIP_URL)
        assert (target / "version.php").is_file()

    def test_single_failure_reraised(self, tmp_path) -> None:
        with pytest.raises(ComponentManagerError) as exc:
            SourceMaterializer().materialize_any(
                [DirectorySource(str(tmp_path / "nope"))], tmp_path / "out",
            )
        assert exc.value.code == "directory-missing"

    def test_all_sources_fail(self, tmp_path, make_http) -> None:
        materializer = SourceMaterializer(archive=ArchiveMaterializer(make_http()))
        with pytest.raises(ComponentManagerError) as exc:
            materializer.materialize_any(
                [DirectorySource(str(tmp_path / "nope")), ArchiveSource(ZIP_URL)],
                tmp_path / "out",
            )
        assert exc.value.code == "no-usable-source"
        assert exc.value.context["attempts"] == 2

    def test_unsupported_source(self, tmp_path) -> None:
        with pytest.raises(ComponentManagerError, match="unsupported-source"):
            SourceMaterializer().materialize(object(), tmp_path)
