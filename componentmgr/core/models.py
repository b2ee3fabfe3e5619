"""核心数据模型

数据类:
- Maturity: 版本成熟度（alpha < beta < rc < stable）
- GitSource / DirectorySource / ArchiveSource: 组件来源描述（封闭集合）
- ComponentSpecification: 项目文件中声明的组件需求
- ComponentVersion: 组件的一个具体版本
- Component: 某个包仓库解析出的组件及其全部版本
- ResolvedComponent: 解析结果（仓库 + 版本）
- PlatformVersion: 解析后的 Moodle 平台版本
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum
from typing import TYPE_CHECKING, Any, Union

if TYPE_CHECKING:
    from componentmgr.core.repository.base import PackageRepository


class Maturity(IntEnum):
    """版本成熟度，数值与 Moodle 插件目录一致"""

    ALPHA = 50
    BETA = 100
    RC = 150
    STABLE = 200

    @classmethod
    def parse(cls, value: Any) -> Maturity | None:
        """接受数值（50/100/150/200）或名称（"stable"），无法识别返回 None"""
        if value is None or value == "":
            return None
        if isinstance(value, str) and not value.isdigit():
            try:
                return cls[value.strip().upper()]
            except KeyError:
                return None
        try:
            return cls(int(value))
        except ValueError:
            return None


# =========================================================================
# 组件来源
# =========================================================================

@dataclass(frozen=True)
class GitSource:
    """克隆 uri 并检出 ref；ref 为 DEFAULT_REF 时检出远端默认分支"""

    uri: str
    ref: str

    kind = "git"
    DEFAULT_REF = "HEAD"

    def to_dict(self) -> dict[str, str]:
        return {"type": self.kind, "uri": self.uri, "ref": self.ref}


@dataclass(frozen=True)
class DirectorySource:
    """原样复制本地目录"""

    path: str

    kind = "directory"

    def to_dict(self) -> dict[str, str]:
        return {"type": self.kind, "path": self.path}


@dataclass(frozen=True)
class ArchiveSource:
    """下载归档并解压"""

    uri: str

    kind = "archive"

    def to_dict(self) -> dict[str, str]:
        return {"type": self.kind, "uri": self.uri}


ComponentSource = Union[GitSource, DirectorySource, ArchiveSource]


def source_from_dict(data: dict[str, Any]) -> ComponentSource:
    """从锁文件记录还原来源描述"""
    kind = data.get("type")
    if kind == GitSource.kind:
        return GitSource(uri=str(data["uri"]), ref=str(data.get("ref", "")))
    if kind == DirectorySource.kind:
        return DirectorySource(path=str(data["path"]))
    if kind == ArchiveSource.kind:
        return ArchiveSource(uri=str(data["uri"]))
    raise ValueError(f"不支持的来源类型: {kind}")


# =========================================================================
# 组件
# =========================================================================

@dataclass(frozen=True)
class ComponentSpecification:
    """项目文件中的组件声明，解析后不可变"""

    name: str
    version: str = ""
    repositories: tuple[str, ...] = ()
    extra: dict[str, Any] = field(default_factory=dict, hash=False)

    def get_extra(self, key: str, default: Any = None) -> Any:
        return self.extra.get(key, default)


@dataclass(frozen=True)
class ComponentVersion:
    """组件的一个发布版本，sources 为获取同一版本的多个备选来源"""

    version: int | None
    release: str | None
    maturity: Maturity | None
    sources: tuple[ComponentSource, ...] = ()

    def sort_key(self) -> tuple[int, int]:
        """成熟度优先、版本号其次；未知值排在最低"""
        maturity = int(self.maturity) if self.maturity is not None else -1
        version = self.version if self.version is not None else -1
        return maturity, version


@dataclass(frozen=True)
class Component:
    """组件及其全部已知版本"""

    name: str
    versions: tuple[ComponentVersion, ...]
    repository: PackageRepository = field(compare=False, repr=False)

    def __post_init__(self) -> None:
        seen: set[tuple[int | None, str | None]] = set()
        for v in self.versions:
            key = (v.version, v.release)
            if key in seen:
                raise ValueError(
                    f"组件 {self.name} 存在重复版本: version={v.version} release={v.release}"
                )
            seen.add(key)


@dataclass(frozen=True)
class ResolvedComponent:
    """单个组件的解析结果"""

    specification: ComponentSpecification
    repository_id: str
    version: ComponentVersion

    @property
    def name(self) -> str:
        return self.specification.name


@dataclass(frozen=True)
class PlatformVersion:
    """Moodle 平台版本（分支 + 下载地址）"""

    branch: str
    download_uri: str
