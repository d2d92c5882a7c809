"""functemplate：将函数模板（源码、环境变量、依赖）落盘到目标项目。"""

__version__ = "0.1.0"
