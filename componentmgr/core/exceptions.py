"""统一异常体系

所有业务错误都以 ComponentManagerError 抛出，不再派生子类：
错误由 (kind, code) 二元组标识，人类可读信息统一从 _MESSAGES 表查出。
context 中保留命令行、组件名、约束、路径等结构化诊断信息，
CLI 层据此输出友好提示，日志层可原样输出。
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    """错误类别"""

    VERSION_CONTROL = "version-control"
    PACKAGE_FAILURE = "package-failure"
    RESOLUTION = "resolution"
    CACHE = "cache"
    PROJECT = "project"
    TASK = "task"


_MESSAGES: dict[tuple[ErrorKind, str], str] = {
    # 版本控制
    (ErrorKind.VERSION_CONTROL, "remote-add-failed"): "添加远程仓库失败",
    (ErrorKind.VERSION_CONTROL, "checkout-failed"): "检出引用失败",
    (ErrorKind.VERSION_CONTROL, "checkout-index-failed"): "导出索引文件失败",
    (ErrorKind.VERSION_CONTROL, "fetch-failed"): "拉取远程引用失败",
    (ErrorKind.VERSION_CONTROL, "init-failed"): "初始化仓库失败",
    (ErrorKind.VERSION_CONTROL, "rev-parse-failed"): "解析提交引用失败",
    (ErrorKind.VERSION_CONTROL, "invalid-recurse-mode"): "无效的子模块递归模式",
    # 源码获取
    (ErrorKind.PACKAGE_FAILURE, "other"): "组件源码获取失败",
    (ErrorKind.PACKAGE_FAILURE, "git-failed"): "Git 源码获取失败",
    (ErrorKind.PACKAGE_FAILURE, "directory-missing"): "本地组件目录不存在",
    (ErrorKind.PACKAGE_FAILURE, "copy-failed"): "复制本地组件目录失败",
    (ErrorKind.PACKAGE_FAILURE, "download-failed"): "下载组件归档失败",
    (ErrorKind.PACKAGE_FAILURE, "extract-failed"): "解压组件归档失败",
    (ErrorKind.PACKAGE_FAILURE, "unsupported-source"): "不支持的组件来源类型",
    (ErrorKind.PACKAGE_FAILURE, "no-usable-source"): "组件版本的所有来源均获取失败",
    # 版本解析
    (ErrorKind.RESOLUTION, "no-satisfying-version"): "没有满足版本约束的组件版本",
    (ErrorKind.RESOLUTION, "unknown-repository"): "组件引用了未配置的包仓库",
    # 元数据缓存
    (ErrorKind.CACHE, "cache-missing"): "包仓库元数据缓存不存在，请先执行 refresh",
    (ErrorKind.CACHE, "cache-unreadable"): "包仓库元数据缓存无法读取",
    (ErrorKind.CACHE, "refresh-failed"): "刷新包仓库元数据失败",
    (ErrorKind.CACHE, "tags-fetch-failed"): "获取组件标签列表失败",
    (ErrorKind.CACHE, "cache-write-failed"): "写入包仓库元数据缓存失败",
    # 项目文件 / 配置
    (ErrorKind.PROJECT, "project-file-missing"): "项目文件不存在",
    (ErrorKind.PROJECT, "project-invalid"): "项目文件内容无效",
    (ErrorKind.PROJECT, "unknown-repository-type"): "未知的包仓库类型",
    (ErrorKind.PROJECT, "repository-option-missing"): "包仓库缺少必需的配置项",
    (ErrorKind.PROJECT, "lock-invalid"): "锁文件内容无效",
    (ErrorKind.PROJECT, "invalid-url-scheme"): "不允许的 URL 协议，仅支持 http/https",
    # 任务步骤
    (ErrorKind.TASK, "install-failed"): "组件安装失败（已用尽重试次数）",
    (ErrorKind.TASK, "build-failed"): "组件构建命令执行失败",
    (ErrorKind.TASK, "package-failed"): "生成发布包失败",
    (ErrorKind.TASK, "platform-version-unknown"): "无法解析 Moodle 平台版本",
}


def describe(kind: ErrorKind, code: str) -> str:
    """查出 (kind, code) 对应的信息，未登记的组合返回通用描述"""
    return _MESSAGES.get((kind, code), f"未知错误 ({kind.value}/{code})")


class ComponentManagerError(Exception):
    """框架唯一的业务异常

    Attributes:
        kind: 错误类别
        code: 类别内的固定错误码
        context: 结构化诊断上下文（command、component、constraint 等）
    """

    def __init__(self, kind: ErrorKind, code: str, **context: Any) -> None:
        self.kind = kind
        self.code = code
        self.context = context
        super().__init__(self._render())

    @property
    def message(self) -> str:
        return describe(self.kind, self.code)

    def _render(self) -> str:
        text = f"[{self.kind.value}/{self.code}] {self.message}"
        if self.context:
            details = ", ".join(f"{k}={v}" for k, v in self.context.items())
            text = f"{text} ({details})"
        return text

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "code": self.code,
            "message": self.message,
            "context": {k: str(v) for k, v in self.context.items()},
        }
