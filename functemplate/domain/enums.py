"""领域枚举定义：统一描述符类型、任务状态与运行状态取值。"""

from __future__ import annotations

from enum import Enum


class DescriptorType(str, Enum):
    """文件描述符类型枚举。"""
    function = "function"
    env = "env"
    manifest = "manifest"


class TaskStatus(str, Enum):
    """单个安装任务的生命周期状态。"""
    pending = "pending"
    running = "running"
    succeeded = "succeeded"
    failed = "failed"


class RunStatus(str, Enum):
    """一次 materialize 调用的整体状态；failed 表示已部分落盘并中止。"""
    pending = "pending"
    running = "running"
    succeeded = "succeeded"
    failed = "failed"
