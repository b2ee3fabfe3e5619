"""componentmgr 命令行接口

CLI 按领域拆分为子模块，每个模块注册自己的命令到 main group。
"""

from __future__ import annotations

import os
import sys
from collections.abc import Callable
from functools import wraps
from typing import Any

import click

from componentmgr import __version__
from componentmgr.core.config import Config, init_config
from componentmgr.core.exceptions import ComponentManagerError
from componentmgr.core.project import Project
from componentmgr.utils.http import UrllibHttpClient
from componentmgr.utils.logger import setup_logging


@click.group()
@click.version_option(version=__version__)
@click.option("--config", "config_path", default="componentmgr.config.yml",
              help="配置文件路径")
@click.pass_context
def main(ctx: click.Context, config_path: str) -> None:
    """componentmgr - Moodle 组件依赖解析与打包工具"""
    setup_logging(
        level=os.getenv("COMPONENTMGR_LOG_LEVEL", "INFO"),
        json_output=os.getenv("COMPONENTMGR_LOG_JSON", "") == "1",
    )
    ctx.obj = init_config(config_path)


def load_project(cfg: Config, project_file: str | None) -> Project:
    return Project.load(
        project_file or cfg.project_file,
        cache_dir=cfg.cache_dir,
        http=UrllibHttpClient(timeout=cfg.http_timeout),
    )


def report_errors(func: Callable[..., Any]) -> Callable[..., Any]:
    """把 ComponentManagerError 输出为结构化提示并以状态码 1 退出"""

    @wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return func(*args, **kwargs)
        except ComponentManagerError as e:
            info = e.to_dict()
            click.echo(f"错误 [{info['kind']}/{info['code']}]: {info['message']}", err=True)
            for key, value in info["context"].items():
                click.echo(f"  {key}: {value}", err=True)
            sys.exit(1)

    return wrapper


# 注册各领域子命令
from componentmgr.cli.cmd_build import register as _reg_build  # noqa: E402
from componentmgr.cli.cmd_repo import register as _reg_repo  # noqa: E402

_reg_repo(main)
_reg_build(main)
