"""组件来源获取模块

- materializers.py: Git / Directory / Archive 获取器
- installer.py: 按来源类型分派、备选来源回退
"""

from componentmgr.services.source.installer import SourceMaterializer
from componentmgr.services.source.materializers import (
    ArchiveMaterializer,
    DirectoryMaterializer,
    GitMaterializer,
)

__all__ = [
    "ArchiveMaterializer",
    "DirectoryMaterializer",
    "GitMaterializer",
    "SourceMaterializer",
]
