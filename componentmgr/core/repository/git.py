"""Git 包仓库：组件来自声明中的 uri，版本约束直接作为检出的 ref"""

from __future__ import annotations

from componentmgr.core.exceptions import ComponentManagerError, ErrorKind
from componentmgr.core.models import (
    Component,
    ComponentSpecification,
    ComponentVersion,
    GitSource,
)
from componentmgr.core.repository.base import PackageRepository


class GitPackageRepository(PackageRepository):
    """任意 Git 仓库：不枚举版本，也不校验约束"""

    type_id = "git"
    display_name = "Git package repository"

    def get_component(self, spec: ComponentSpecification) -> Component:
        uri = spec.get_extra("uri")
        if not uri:
            raise ComponentManagerError(
                ErrorKind.PROJECT, "repository-option-missing",
                component=spec.name, option="uri", repository=self.id,
            )
        version = ComponentVersion(
            None, spec.version or None, None,
            (GitSource(uri=str(uri), ref=spec.version or GitSource.DEFAULT_REF),),
        )
        return Component(spec.name, (version,), self)

    def satisfies_version(self, constraint: str, version: ComponentVersion) -> bool:
        return True
