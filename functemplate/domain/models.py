"""领域数据结构定义：文件描述符、合并结果与任务上下文等核心值对象。"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Annotated, Any, Iterable, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator

from functemplate.domain.enums import RunStatus, TaskStatus


class FunctionDescriptor(BaseModel):
    """函数源码描述符：content 为源码文件地址。"""
    model_config = ConfigDict(frozen=True)

    type: Literal["function"] = "function"
    content: str


class EnvDescriptor(BaseModel):
    """环境变量描述符：function_name 用于合并分隔注释。"""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    type: Literal["env"] = "env"
    content: str
    function_name: str | None = Field(default=None, alias="functionName")


class ManifestDescriptor(BaseModel):
    """依赖清单描述符：content 指向包含 dependencies 字段的 JSON 片段。"""
    model_config = ConfigDict(frozen=True)

    type: Literal["manifest"] = "manifest"
    content: str


FileDescriptor = Annotated[
    Union[FunctionDescriptor, EnvDescriptor, ManifestDescriptor],
    Field(discriminator="type"),
]

_DESCRIPTOR_LIST = TypeAdapter(list[FileDescriptor])

# 兼容旧版模板目录中按文件名声明的类型。
_LEGACY_TYPES = {".env": "env", "package.json": "manifest"}


def parse_descriptors(raw: Iterable[dict[str, Any]]) -> list[FileDescriptor]:
    """校验原始字典列表并转换为带标签的描述符；未知类型直接报错。"""
    items: list[dict[str, Any]] = []
    for entry in raw:
        item = dict(entry)
        type_name = item.get("type")
        if isinstance(type_name, str) and type_name in _LEGACY_TYPES:
            item["type"] = _LEGACY_TYPES[type_name]
        items.append(item)
    return _DESCRIPTOR_LIST.validate_python(items)


class ManifestFragment(BaseModel):
    """远端依赖清单片段，仅关心 dependencies 映射。"""
    model_config = ConfigDict(extra="allow")

    dependencies: dict[str, str] = Field(default_factory=dict)

    @field_validator("dependencies", mode="before")
    @classmethod
    def _none_as_empty(cls, value: Any) -> Any:
        return {} if value is None else value


@dataclass(slots=True, frozen=True)
class MergeResult:
    """环境文件合并结果：待写入文本与新引入的变量名。"""
    merged_text: str
    new_keys: tuple[str, ...]


@dataclass(slots=True)
class TaskContext:
    """单次调用的共享结果槽位；每个槽位只由对应任务写入，汇合后才读取。"""
    function_path: Path | None = None
    env: MergeResult | None = None
    dependencies: dict[str, str] | None = None


@dataclass(slots=True)
class TaskRecord:
    """任务状态记录。"""
    title: str
    kind: str
    status: TaskStatus = TaskStatus.pending
    error: str | None = None


@dataclass(slots=True)
class MaterializeSummary:
    """materialize 调用结果汇总，供调用方提示用户补全配置。"""
    function_name: str
    function_path: Path
    status: RunStatus
    context: TaskContext
    tasks: list[TaskRecord] = field(default_factory=list)

    @property
    def new_env_keys(self) -> tuple[str, ...]:
        if self.context.env is None:
            return ()
        return self.context.env.new_keys
