"""componentmgr - Moodle 组件（插件）依赖解析与打包工具"""

__version__ = "0.4.0"
