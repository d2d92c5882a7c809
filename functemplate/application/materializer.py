"""函数模板落盘编排：为每个文件描述符构建任务、并发执行并汇总结果。"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import Counter
from dataclasses import dataclass
from functools import partial
from pathlib import Path
from typing import Awaitable, Callable, Sequence
from uuid import uuid4

from functemplate.application.dependencies import DependencyInstaller
from functemplate.config import Settings
from functemplate.domain.enums import DescriptorType, RunStatus, TaskStatus
from functemplate.domain.env_merge import merge_env
from functemplate.domain.errors import DuplicateFunctionError, TargetDirectoryError
from functemplate.domain.models import (
    EnvDescriptor,
    FileDescriptor,
    FunctionDescriptor,
    ManifestDescriptor,
    MaterializeSummary,
    TaskContext,
    TaskRecord,
)
from functemplate.infra.http.fetcher import ContentFetcher
from functemplate.infra.logging.context import bind_log_context
from functemplate.infra.storage.filesystem import ProjectLayout, exists, read_text, write_text

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class _PlannedTask:
    record: TaskRecord
    run: Callable[[], Awaitable[None]]


class FunctionMaterializer:
    """任务编排器：校验前置条件后并发执行函数、环境变量与依赖三类任务。"""
    def __init__(
        self,
        *,
        settings: Settings,
        fetcher: ContentFetcher,
        dependency_installer: DependencyInstaller,
    ) -> None:
        self._settings = settings
        self._fetcher = fetcher
        self._dependency_installer = dependency_installer

    def layout(self, target_dir: Path) -> ProjectLayout:
        return ProjectLayout(
            target_dir=target_dir,
            functions_dir=self._settings.functions_dir,
            function_extension=self._settings.normalized_extension(),
            env_file_name=self._settings.env_file_name,
        )

    async def materialize(
        self,
        descriptors: Sequence[FileDescriptor],
        target_dir: Path,
        function_name: str,
    ) -> MaterializeSummary:
        """将函数模板落盘到目标项目。

        前置校验（目标目录、重复函数）在任何任务启动前同步完成；任务全部结束后
        若有失败，按描述符顺序重新抛出第一个异常，已完成任务的落盘结果保留。
        """
        target_dir = Path(target_dir)
        self._check_target_dir(target_dir)
        self._check_unique_kinds(descriptors)

        layout = self.layout(target_dir)
        function_path = layout.function_path(function_name)
        if exists(function_path):
            raise DuplicateFunctionError(function_name, function_path)

        context = TaskContext()
        planned = [self._plan(item, layout, function_name, function_path, context) for item in descriptors]
        summary = MaterializeSummary(
            function_name=function_name,
            function_path=function_path,
            status=RunStatus.running,
            context=context,
            tasks=[item.record for item in planned],
        )

        started = time.perf_counter()
        with bind_log_context(run_id=uuid4().hex[:12], function_name=function_name):
            logger.info(
                "materialize started",
                extra={
                    "event": "materialize.started",
                    "op": "materialize",
                    "payload_preview": {"target_dir": str(target_dir), "tasks": [t.record.kind for t in planned]},
                },
            )
            # 任务之间写入互不相交的文件与槽位，全部并发启动，不做取消。
            outcomes = await asyncio.gather(*(self._run_task(item) for item in planned), return_exceptions=True)
            duration_ms = round((time.perf_counter() - started) * 1000, 2)

            failures = [item for item in outcomes if isinstance(item, BaseException)]
            if failures:
                summary.status = RunStatus.failed
                logger.error(
                    "materialize failed",
                    extra={
                        "event": "materialize.failed",
                        "op": "materialize",
                        "duration_ms": duration_ms,
                        "error_type": type(failures[0]).__name__,
                        "error": str(failures[0]),
                        "payload_preview": {"failed": [t.kind for t in summary.tasks if t.status == TaskStatus.failed]},
                    },
                )
                raise failures[0]

            summary.status = RunStatus.succeeded
            logger.info(
                "materialize completed",
                extra={
                    "event": "materialize.succeeded",
                    "op": "materialize",
                    "duration_ms": duration_ms,
                    "payload_preview": {"new_env_keys": list(summary.new_env_keys)},
                },
            )
        return summary

    @staticmethod
    def _check_target_dir(target_dir: Path) -> None:
        if not target_dir.is_dir():
            raise TargetDirectoryError(target_dir, "does not exist")
        if not exists(target_dir):
            raise TargetDirectoryError(target_dir, "is not readable and writable")

    @staticmethod
    def _check_unique_kinds(descriptors: Sequence[FileDescriptor]) -> None:
        """同类描述符最多一个，保证每个上下文槽位只有一个写入者。"""
        counts = Counter(item.type for item in descriptors)
        duplicated = sorted(kind for kind, count in counts.items() if count > 1)
        if duplicated:
            raise ValueError(f"at most one descriptor per type is allowed, duplicated: {', '.join(duplicated)}")

    def _plan(
        self,
        descriptor: FileDescriptor,
        layout: ProjectLayout,
        function_name: str,
        function_path: Path,
        context: TaskContext,
    ) -> _PlannedTask:
        if isinstance(descriptor, FunctionDescriptor):
            return _PlannedTask(
                record=TaskRecord(title="Create Function", kind=DescriptorType.function.value),
                run=partial(self._write_function, descriptor, layout, function_path, context),
            )
        if isinstance(descriptor, EnvDescriptor):
            label = descriptor.function_name or function_name
            return _PlannedTask(
                record=TaskRecord(title="Configure Environment Variables in .env", kind=DescriptorType.env.value),
                run=partial(self._write_env, descriptor, layout, label, context),
            )
        if isinstance(descriptor, ManifestDescriptor):
            return _PlannedTask(
                record=TaskRecord(title="Installing Dependencies", kind=DescriptorType.manifest.value),
                run=partial(self._install_dependencies, descriptor, layout, context),
            )
        raise TypeError(f"unsupported descriptor: {descriptor!r}")

    async def _run_task(self, task: _PlannedTask) -> None:
        record = task.record
        with bind_log_context(task=record.kind):
            record.status = TaskStatus.running
            logger.debug("task started", extra={"event": "task.started", "op": record.title})
            try:
                await task.run()
            except Exception as exc:
                record.status = TaskStatus.failed
                record.error = str(exc)
                logger.error(
                    "task failed",
                    extra={
                        "event": "task.failed",
                        "op": record.title,
                        "error_type": type(exc).__name__,
                        "error": str(exc),
                    },
                )
                raise
            record.status = TaskStatus.succeeded
            logger.info("task completed", extra={"event": "task.succeeded", "op": record.title})

    async def _write_function(
        self,
        descriptor: FunctionDescriptor,
        layout: ProjectLayout,
        function_path: Path,
        context: TaskContext,
    ) -> None:
        layout.ensure_functions_root()
        await self._fetcher.fetch_to_file(descriptor.content, function_path)
        context.function_path = function_path

    async def _write_env(
        self,
        descriptor: EnvDescriptor,
        layout: ProjectLayout,
        label: str,
        context: TaskContext,
    ) -> None:
        """无环境文档时直接下载落盘；已存在时合并后整体回写。"""
        env_path = layout.env_path()
        if not exists(env_path):
            await self._fetcher.fetch_to_file(descriptor.content, env_path)
            # 首次写入的全部变量都需要用户补全取值。
            context.env = merge_env(None, await read_text(env_path), label)
            return

        current_text = await read_text(env_path)
        incoming_text = await self._fetcher.fetch_body(descriptor.content)
        result = merge_env(current_text, incoming_text, label)
        await write_text(env_path, result.merged_text)
        context.env = result

    async def _install_dependencies(
        self,
        descriptor: ManifestDescriptor,
        layout: ProjectLayout,
        context: TaskContext,
    ) -> None:
        context.dependencies = await self._dependency_installer.install_dependencies(
            descriptor.content,
            layout.target_dir,
        )
