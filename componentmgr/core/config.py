"""集中配置管理

提供统一的配置入口：支持从 YAML 文件加载 + 编程式覆盖。
核心类只通过构造参数接收配置值，get_config()/init_config() 仅供 CLI 入口使用。
"""

from __future__ import annotations

import logging
import tempfile
from dataclasses import asdict, dataclass, field
from pathlib import Path

from componentmgr.utils.yaml_io import load_yaml

logger = logging.getLogger(__name__)


def _default_cache_dir() -> str:
    return str(Path.home() / ".cache" / "componentmgr")


@dataclass
class Config:
    """全局配置"""

    # 文件
    project_file: str = "componentmgr.yml"
    lock_file: str = "componentmgr.lock.yml"

    # 目录
    cache_dir: str = field(default_factory=_default_cache_dir)
    temp_dir: str = field(default_factory=tempfile.gettempdir)

    # 执行
    git_executable: str = "git"
    install_attempts: int = 3
    workers: int = 1
    http_timeout: int = 60

    # 打包
    package_format: str = "zip"

    # 放不到字段里的配置项
    extra: dict = field(default_factory=dict)

    @classmethod
    def from_file(cls, path: str = "componentmgr.config.yml") -> Config:
        """从 YAML 文件加载配置，不存在则返回默认"""
        data = load_yaml(path)
        if not data:
            return cls()
        known = {f.name for f in cls.__dataclass_fields__.values()}
        matched = {k: v for k, v in data.items() if k in known and k != "extra"}
        extra = {k: v for k, v in data.items() if k not in known}
        cfg = cls(**matched)
        cfg.extra = extra
        return cfg

    def to_dict(self) -> dict:
        return asdict(self)


_current: Config | None = None


def get_config() -> Config:
    """获取当前配置（未初始化则返回默认值）"""
    global _current  # noqa: PLW0603
    if _current is None:
        _current = Config()
    return _current


def init_config(path: str = "componentmgr.config.yml") -> Config:
    """从文件初始化全局配置"""
    global _current  # noqa: PLW0603
    _current = Config.from_file(path)
    logger.info("配置已加载: %s", path)
    return _current
