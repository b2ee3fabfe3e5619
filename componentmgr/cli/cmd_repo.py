"""CLI：包仓库与版本解析命令"""

from __future__ import annotations

import click

from componentmgr.cli import load_project, report_errors
from componentmgr.core.config import Config
from componentmgr.core.lockfile import LockFile
from componentmgr.services.task import build_refresh_task, build_resolve_task


def register(group: click.Group) -> None:
    group.add_command(refresh)
    group.add_command(resolve)
    group.add_command(repositories)


@click.command()
@click.option("--project", "project_file", default=None, help="项目文件路径")
@click.pass_obj
@report_errors
def refresh(cfg: Config, project_file: str | None) -> None:
    """刷新带缓存包仓库的元数据"""
    project = load_project(cfg, project_file)
    report = build_refresh_task(project).execute()
    for record in report.steps:
        if record.step == "refresh_repositories":
            click.echo(f"已刷新: {', '.join(record.detail['repositories']) or '(无)'}")


@click.command()
@click.option("--project", "project_file", default=None, help="项目文件路径")
@click.option("--lock", "lock_path", default=None, help="锁文件路径")
@click.option("--no-lock", is_flag=True, help="忽略锁文件，重新查询仓库")
@click.pass_obj
@report_errors
def resolve(
    cfg: Config, project_file: str | None, lock_path: str | None, no_lock: bool,
) -> None:
    """解析组件版本（不下载源码）"""
    project = load_project(cfg, project_file)
    task = build_resolve_task(
        project, lock_file=LockFile(lock_path or cfg.lock_file),
        use_lock=not no_lock, workers=cfg.workers,
    )
    task.execute()
    for name, r in task.context.resolved.items():
        v = r.version
        click.echo(
            f"  {name:30s} {str(v.release or ''):16s} "
            f"version={v.version} [{r.repository_id}]"
        )


@click.command(name="repositories")
@click.option("--project", "project_file", default=None, help="项目文件路径")
@click.pass_obj
@report_errors
def repositories(cfg: Config, project_file: str | None) -> None:
    """列出项目配置的包仓库及缓存状态"""
    project = load_project(cfg, project_file)
    for repo in project.repositories.values():
        cached = ""
        if repo.caching:
            cached = " cached" if repo.has_metadata_cache() else " (未缓存)"
        click.echo(f"  {repo.id:16s} {repo.name}{cached}")
