"""本地文件系统包仓库：组件来自声明中的 directory 路径"""

from __future__ import annotations

from componentmgr.core.exceptions import ComponentManagerError, ErrorKind
from componentmgr.core.models import (
    Component,
    ComponentSpecification,
    ComponentVersion,
    DirectorySource,
)
from componentmgr.core.repository.base import PackageRepository


class FilesystemPackageRepository(PackageRepository):
    """文件系统仓库：只有一个不带版本号的合成版本"""

    type_id = "filesystem"
    display_name = "Filesystem package repository"

    def get_component(self, spec: ComponentSpecification) -> Component:
        directory = spec.get_extra("directory")
        if not directory:
            raise ComponentManagerError(
                ErrorKind.PROJECT, "repository-option-missing",
                component=spec.name, option="directory", repository=self.id,
            )
        version = ComponentVersion(
            None, None, None, (DirectorySource(path=str(directory)),),
        )
        return Component(spec.name, (version,), self)

    def satisfies_version(self, constraint: str, version: ComponentVersion) -> bool:
        return True
