"""组件来源获取器 - 支持 Git / Directory / Archive

职责：
- Git: init + remote add + fetch + checkout，再 checkout-index 导出干净源码树
- Directory: 原样复制本地目录
- Archive: 下载归档并解压（zip / tar）

获取器不判断目标是否已存在，调用方负责提供干净的目标目录。
任何 I/O 或子进程失败都抛 PACKAGE_FAILURE 错误，原错误保留在 __cause__ 中。
"""

from __future__ import annotations

import logging
import shutil
import tarfile
import tempfile
import zipfile
from pathlib import Path
from typing import Any
from urllib.parse import urlparse

from componentmgr.core.exceptions import ComponentManagerError, ErrorKind
from componentmgr.core.models import ArchiveSource, DirectorySource, GitSource
from componentmgr.core.vcs.git import GitVersionControl, RecurseSubmodules
from componentmgr.utils.http import HttpClient, UrllibHttpClient
from componentmgr.utils.shell import CommandExecutor

logger = logging.getLogger(__name__)


class GitMaterializer:
    """Git 来源"""

    REMOTE_NAME = "origin"

    def __init__(
        self,
        git_executable: str = "git",
        executor: CommandExecutor | None = None,
        recurse_submodules: bool = True,
    ) -> None:
        self.git_executable = git_executable
        self.executor = executor
        self.recurse_submodules = recurse_submodules

    def materialize(
        self, source: GitSource, target: Path, log: logging.Logger | None = None,
    ) -> str:
        """导出 source.ref 的文件到 target，返回检出的提交哈希"""
        log = log or logger
        try:
            repo_dir = Path(tempfile.mkdtemp(prefix="componentmgr-git-"))
        except OSError as e:
            raise self._failure(source, e) from e
        try:
            vcs = GitVersionControl(repo_dir, self.git_executable, self.executor)
            log.info("获取 Git 源码: %s@%s", source.uri, source.ref,
                     extra={"uri": source.uri, "ref": source.ref})
            vcs.init()
            vcs.add_remote(self.REMOTE_NAME, source.uri)
            vcs.fetch(
                self.REMOTE_NAME,
                RecurseSubmodules.ON_DEMAND if self.recurse_submodules
                else RecurseSubmodules.NO,
            )
            ref = source.ref
            if ref == GitSource.DEFAULT_REF:
                # FETCH_HEAD 此时指向任意分支，需单独拉取远端 HEAD
                vcs.fetch_ref(self.REMOTE_NAME, GitSource.DEFAULT_REF)
                ref = "FETCH_HEAD"
            vcs.checkout(ref)
            if self.recurse_submodules:
                vcs.submodule_update(with_init=True)
            commit = vcs.parse_revision("HEAD")
            log.debug("导出索引到 %s (commit %s)", target, commit)
            target.mkdir(parents=True, exist_ok=True)
            vcs.checkout_index(target.resolve())
        except ComponentManagerError as e:
            raise self._failure(source, e, command=e.context.get("command", "")) from e
        except OSError as e:
            raise self._failure(source, e, target=target) from e
        finally:
            shutil.rmtree(repo_dir, ignore_errors=True)
        return commit

    @staticmethod
    def _failure(source: GitSource, error: Exception, **context: Any) -> ComponentManagerError:
        return ComponentManagerError(
            ErrorKind.PACKAGE_FAILURE, "git-failed",
            uri=source.uri, ref=source.ref, error=error, **context,
        )


class DirectoryMaterializer:
    """本地目录来源"""

    def materialize(
        self, source: DirectorySource, target: Path, log: logging.Logger | None = None,
    ) -> str:
        log = log or logger
        src = Path(source.path).expanduser()
        if not src.is_dir():
            raise ComponentManagerError(
                ErrorKind.PACKAGE_FAILURE, "directory-missing", path=src,
            )
        log.info("复制本地目录: %s -> %s", src, target,
                 extra={"path": str(src), "target": str(target)})
        try:
            shutil.copytree(src, target, symlinks=True, dirs_exist_ok=True)
        except (OSError, shutil.Error) as e:
            raise ComponentManagerError(
                ErrorKind.PACKAGE_FAILURE, "copy-failed",
                path=src, target=target, error=e,
            ) from e
        return ""


class ArchiveMaterializer:
    """归档来源（zip / tar.*）

    归档内只有单个顶层目录时（Moodle 插件包的常见布局），
    解压后将该目录的内容提升到 target。
    """

    def __init__(self, http: HttpClient | None = None) -> None:
        self.http = http or UrllibHttpClient()

    def materialize(
        self, source: ArchiveSource, target: Path, log: logging.Logger | None = None,
    ) -> str:
        log = log or logger
        try:
            work_dir = Path(tempfile.mkdtemp(prefix="componentmgr-archive-"))
        except OSError as e:
            raise ComponentManagerError(
                ErrorKind.PACKAGE_FAILURE, "other", uri=source.uri, error=e,
            ) from e
        try:
            filename = Path(urlparse(source.uri).path).name or "download"
            archive = work_dir / filename
            log.info("下载归档: %s", source.uri, extra={"uri": source.uri})
            try:
                self.http.download(source.uri, archive)
            except ConnectionError as e:
                raise ComponentManagerError(
                    ErrorKind.PACKAGE_FAILURE, "download-failed",
                    uri=source.uri, error=e,
                ) from e

            extracted = work_dir / "extracted"
            log.debug("解压 %s -> %s", archive, target)
            try:
                extract_archive(archive, extracted)
                root = _single_root(extracted)
                target.mkdir(parents=True, exist_ok=True)
                shutil.copytree(root, target, symlinks=True, dirs_exist_ok=True)
            except (OSError, shutil.Error, tarfile.TarError, zipfile.BadZipFile) as e:
                raise ComponentManagerError(
                    ErrorKind.PACKAGE_FAILURE, "extract-failed",
                    uri=source.uri, archive=archive, error=e,
                ) from e
        finally:
            shutil.rmtree(work_dir, ignore_errors=True)
        return ""


def extract_archive(archive: Path, dest: Path) -> None:
    """按内容识别 zip 或 tar 并解压到 dest"""
    dest.mkdir(parents=True, exist_ok=True)
    if zipfile.is_zipfile(archive):
        with zipfile.ZipFile(archive) as zf:
            for member in zf.namelist():
                resolved = (dest / member).resolve()
                if not resolved.is_relative_to(dest.resolve()):
                    raise OSError(f"归档成员越界: {member}")
            zf.extractall(dest)
        return
    with tarfile.open(archive) as tf:
        tf.extractall(path=str(dest), filter="data")  # noqa: S202


def _single_root(extracted: Path) -> Path:
    children = [c for c in extracted.iterdir() if c.name != "__MACOSX"]
    if len(children) == 1 and children[0].is_dir():
        return children[0]
    return extracted
