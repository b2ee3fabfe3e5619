"""CLI：安装与打包命令"""

from __future__ import annotations

from pathlib import Path

import click

from componentmgr.cli import load_project, report_errors
from componentmgr.core.config import Config
from componentmgr.core.lockfile import LockFile
from componentmgr.core.platform import MoodlePlatform
from componentmgr.services.source import GitMaterializer, SourceMaterializer
from componentmgr.services.source.materializers import ArchiveMaterializer
from componentmgr.services.task import build_install_task, build_package_task
from componentmgr.utils.http import UrllibHttpClient


def register(group: click.Group) -> None:
    group.add_command(install)
    group.add_command(package)


def _materializer(cfg: Config) -> SourceMaterializer:
    return SourceMaterializer(
        git=GitMaterializer(git_executable=cfg.git_executable),
        archive=ArchiveMaterializer(UrllibHttpClient(timeout=cfg.http_timeout)),
    )


@click.command()
@click.option("--project", "project_file", default=None, help="项目文件路径")
@click.option("--moodle-dir", default=".", help="Moodle 源码根目录")
@click.option("--attempts", default=None, type=int, help="每个组件的安装尝试次数")
@click.pass_obj
@report_errors
def install(
    cfg: Config, project_file: str | None, moodle_dir: str, attempts: int | None,
) -> None:
    """把组件安装到已有的 Moodle 源码树"""
    project = load_project(cfg, project_file)
    task = build_install_task(
        project, Path(moodle_dir),
        lock_file=LockFile(cfg.lock_file),
        materializer=_materializer(cfg),
        attempts=attempts or cfg.install_attempts,
        workers=cfg.workers,
        platform=MoodlePlatform(cfg.temp_dir),
    )
    task.execute()
    click.echo(f"已安装 {len(task.context.installed)} 个组件")


@click.command()
@click.option("--project", "project_file", default=None, help="项目文件路径")
@click.option("--destination", required=True, help="发布包输出路径")
@click.option("--format", "package_format", default=None, help="归档格式: zip / gztar")
@click.option("--attempts", default=None, type=int, help="每个组件的安装尝试次数")
@click.pass_obj
@report_errors
def package(
    cfg: Config, project_file: str | None, destination: str,
    package_format: str | None, attempts: int | None,
) -> None:
    """获取 Moodle 源码、安装组件并打包"""
    project = load_project(cfg, project_file)
    task = build_package_task(
        project, Path(destination),
        package_format=package_format or cfg.package_format,
        lock_file=LockFile(cfg.lock_file),
        materializer=_materializer(cfg),
        attempts=attempts or cfg.install_attempts,
        workers=cfg.workers,
        platform=MoodlePlatform(cfg.temp_dir),
    )
    task.execute()
    click.echo(f"发布包: {task.context.package_path}")
