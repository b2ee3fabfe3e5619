"""Moodle 平台协作者

职责:
- MoodleApi: 把分支号（如 "3.1"）解析为可下载的源码包地址
- MoodlePlatform: 管理临时目录，按 frankenstyle 组件名计算安装目录
"""

from __future__ import annotations

import logging
import re
import shutil
import tempfile
import threading
from pathlib import Path

from componentmgr.core.exceptions import ComponentManagerError, ErrorKind
from componentmgr.core.models import PlatformVersion

logger = logging.getLogger(__name__)

_BRANCH_RE = re.compile(r"^(\d+)\.(\d+)$")

# 组件类型前缀 -> 相对 Moodle 根目录的安装目录
COMPONENT_TYPE_DIRECTORIES: dict[str, str] = {
    "antivirus": "lib/antivirus",
    "assignfeedback": "mod/assign/feedback",
    "assignsubmission": "mod/assign/submission",
    "atto": "lib/editor/atto/plugins",
    "auth": "auth",
    "availability": "availability/condition",
    "block": "blocks",
    "booktool": "mod/book/tool",
    "calendartype": "calendar/type",
    "coursereport": "course/report",
    "dataformat": "dataformat",
    "editor": "lib/editor",
    "enrol": "enrol",
    "filter": "filter",
    "format": "course/format",
    "gradeexport": "grade/export",
    "gradeimport": "grade/import",
    "gradereport": "grade/report",
    "local": "local",
    "logstore": "admin/tool/log/store",
    "ltisource": "mod/lti/source",
    "message": "message/output",
    "mod": "mod",
    "plagiarism": "plagiarism",
    "portfolio": "portfolio",
    "profilefield": "user/profile/field",
    "qbehaviour": "question/behaviour",
    "qformat": "question/format",
    "qtype": "question/type",
    "quiz": "mod/quiz/report",
    "quizaccess": "mod/quiz/accessrule",
    "report": "report",
    "repository": "repository",
    "theme": "theme",
    "tinymce": "lib/editor/tinymce/plugins",
    "tool": "admin/tool",
    "workshopallocation": "mod/workshop/allocation",
    "workshopeval": "mod/workshop/eval",
    "workshopform": "mod/workshop/form",
}


class MoodleApi:
    """Moodle 下载地址解析"""

    DOWNLOAD_URI_TEMPLATE = (
        "https://download.moodle.org/download.php/direct/"
        "stable{code}/moodle-latest-{code}.zip"
    )

    def resolve_version(self, branch: str) -> PlatformVersion:
        m = _BRANCH_RE.match(branch.strip())
        if m is None:
            raise ComponentManagerError(
                ErrorKind.TASK, "platform-version-unknown", branch=branch,
            )
        major, minor = m.groups()
        # 3.x 之前的分支码为两位（31），4.x 起次版本补零（401）
        code = f"{major}{minor}" if int(major) < 4 else f"{major}{int(minor):02d}"
        return PlatformVersion(
            branch=branch, download_uri=self.DOWNLOAD_URI_TEMPLATE.format(code=code),
        )


class MoodlePlatform:
    """平台相关的文件系统操作"""

    def __init__(self, temp_root: str | Path | None = None) -> None:
        self.temp_root = Path(temp_root) if temp_root else Path(tempfile.gettempdir())
        self._temp_dirs: list[Path] = []
        self._lock = threading.Lock()

    def create_temp_directory(self, prefix: str = "componentmgr-") -> Path:
        self.temp_root.mkdir(parents=True, exist_ok=True)
        path = Path(tempfile.mkdtemp(prefix=prefix, dir=str(self.temp_root)))
        with self._lock:
            self._temp_dirs.append(path)
        logger.debug("创建临时目录: %s", path)
        return path

    @property
    def temp_directories(self) -> list[Path]:
        with self._lock:
            return list(self._temp_dirs)

    def remove_temp_directories(self) -> int:
        """删除本实例创建的全部临时目录，可重复调用"""
        with self._lock:
            dirs, self._temp_dirs = self._temp_dirs, []
        removed = 0
        for path in dirs:
            if path.exists():
                shutil.rmtree(path, ignore_errors=True)
                removed += 1
        if removed:
            logger.info("已删除 %d 个临时目录", removed)
        return removed

    @staticmethod
    def component_install_directory(name: str) -> str:
        """mod_forum -> mod/forum；未知类型抛 PROJECT 错误"""
        component_type, sep, plugin = name.partition("_")
        base = COMPONENT_TYPE_DIRECTORIES.get(component_type)
        if not sep or not plugin or base is None:
            raise ComponentManagerError(
                ErrorKind.PROJECT, "project-invalid",
                component=name, error="无法识别的组件类型",
            )
        return f"{base}/{plugin}"
