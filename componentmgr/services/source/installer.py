"""来源分派器

按 ComponentSource 的具体类型选择获取器；
对一个版本的多个备选来源依次尝试，首个成功者胜出。
"""

from __future__ import annotations

import logging
import shutil
from collections.abc import Iterable
from pathlib import Path

from componentmgr.core.exceptions import ComponentManagerError, ErrorKind
from componentmgr.core.models import (
    ArchiveSource,
    ComponentSource,
    DirectorySource,
    GitSource,
)
from componentmgr.services.source.materializers import (
    ArchiveMaterializer,
    DirectoryMaterializer,
    GitMaterializer,
)

logger = logging.getLogger(__name__)


class SourceMaterializer:
    """组件来源获取入口"""

    def __init__(
        self,
        git: GitMaterializer | None = None,
        directory: DirectoryMaterializer | None = None,
        archive: ArchiveMaterializer | None = None,
    ) -> None:
        self.git = git or GitMaterializer()
        self.directory = directory or DirectoryMaterializer()
        self.archive = archive or ArchiveMaterializer()

    def materialize(
        self, source: ComponentSource, target: Path, log: logging.Logger | None = None,
    ) -> str:
        if isinstance(source, GitSource):
            return self.git.materialize(source, target, log)
        if isinstance(source, DirectorySource):
            return self.directory.materialize(source, target, log)
        if isinstance(source, ArchiveSource):
            return self.archive.materialize(source, target, log)
        raise ComponentManagerError(
            ErrorKind.PACKAGE_FAILURE, "unsupported-source",
            source=type(source).__name__,
        )

    def materialize_any(
        self,
        sources: Iterable[ComponentSource],
        target: Path,
        log: logging.Logger | None = None,
    ) -> ComponentSource:
        """依次尝试备选来源，失败的来源会清空 target 后再试下一个"""
        log = log or logger
        errors: list[ComponentManagerError] = []
        for source in sources:
            try:
                self.materialize(source, target, log)
                return source
            except ComponentManagerError as e:
                log.warning("来源获取失败，尝试下一个: %s", e)
                errors.append(e)
                if target.exists():
                    shutil.rmtree(target)
        if len(errors) == 1:
            raise errors[0]
        raise ComponentManagerError(
            ErrorKind.PACKAGE_FAILURE, "no-usable-source",
            target=target, attempts=len(errors),
            errors="; ".join(str(e) for e in errors),
        )
