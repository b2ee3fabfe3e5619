"""项目锁文件

记录每个组件最终选定的仓库与版本（含来源），
后续运行在约束未变时直接复用，保证构建可复现。
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from componentmgr.core.exceptions import ComponentManagerError, ErrorKind
from componentmgr.core.models import (
    ComponentSpecification,
    ComponentVersion,
    Maturity,
    ResolvedComponent,
    source_from_dict,
)
from componentmgr.utils.yaml_io import load_yaml, save_yaml

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LockEntry:
    """锁文件中的单个组件记录"""

    repository: str
    constraint: str
    version: ComponentVersion

    def to_dict(self) -> dict[str, Any]:
        v = self.version
        return {
            "repository": self.repository,
            "constraint": self.constraint,
            "version": v.version,
            "release": v.release,
            "maturity": v.maturity.name.lower() if v.maturity is not None else None,
            "sources": [s.to_dict() for s in v.sources],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LockEntry:
        return cls(
            repository=str(data["repository"]),
            constraint=str(data.get("constraint") or ""),
            version=ComponentVersion(
                version=data.get("version"),
                release=data.get("release"),
                maturity=Maturity.parse(data.get("maturity")),
                sources=tuple(source_from_dict(s) for s in data.get("sources") or []),
            ),
        )

    def matches(self, spec: ComponentSpecification) -> bool:
        """约束未变且仓库仍在可选列表中才可复用"""
        return self.constraint == spec.version and self.repository in spec.repositories


class LockFile:
    """锁文件读写"""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self.entries: dict[str, LockEntry] = {}

    def load(self) -> LockFile:
        try:
            data = load_yaml(self.path, require_mapping=True)
            self.entries = {
                str(name): LockEntry.from_dict(entry)
                for name, entry in (data.get("components") or {}).items()
            }
        except (yaml.YAMLError, ValueError, KeyError, TypeError, AttributeError) as e:
            raise ComponentManagerError(
                ErrorKind.PROJECT, "lock-invalid", path=self.path, error=e,
            ) from e
        logger.debug("已加载锁文件 %s: %d 条记录", self.path, len(self.entries))
        return self

    def get(self, name: str) -> LockEntry | None:
        return self.entries.get(name)

    def commit(self, resolved: Mapping[str, ResolvedComponent]) -> None:
        """用本次解析结果覆盖锁文件"""
        self.entries = {
            name: LockEntry(
                repository=r.repository_id,
                constraint=r.specification.version,
                version=r.version,
            )
            for name, r in resolved.items()
        }
        save_yaml(self.path, {
            "components": {name: e.to_dict() for name, e in self.entries.items()},
        })
        logger.info("已写入锁文件 %s: %d 个组件", self.path, len(self.entries))
