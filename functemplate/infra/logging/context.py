"""日志上下文：以单个 contextvar 保存当前运行绑定的 run/function/task 字段。

asyncio 为每个任务复制上下文，因此并发任务各自绑定的 task 字段互不干扰。
"""

from __future__ import annotations

from contextlib import contextmanager
from contextvars import ContextVar
from types import MappingProxyType
from typing import Iterator, Mapping

CONTEXT_FIELDS = ("run_id", "function_name", "task")

_fields_var: ContextVar[Mapping[str, str | None]] = ContextVar(
    "functemplate_log_fields",
    default=MappingProxyType({}),
)


def get_log_context() -> dict[str, str | None]:
    fields = _fields_var.get()
    return {key: fields.get(key) for key in CONTEXT_FIELDS}


@contextmanager
def bind_log_context(**fields: str | None) -> Iterator[None]:
    """在当前上下文叠加日志字段，退出时恢复为进入前的字段集合。"""
    unknown = sorted(set(fields) - set(CONTEXT_FIELDS))
    if unknown:
        raise TypeError(f"unknown log context fields: {', '.join(unknown)}")
    token = _fields_var.set(MappingProxyType({**_fields_var.get(), **fields}))
    try:
        yield
    finally:
        _fields_var.reset(token)
