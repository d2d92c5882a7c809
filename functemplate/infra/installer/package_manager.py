"""包管理器安装能力：在目标项目目录内以子进程执行 npm/yarn/pnpm。"""

from __future__ import annotations

import asyncio
import logging
import time
from pathlib import Path
from typing import Mapping, Protocol

from functemplate.domain.errors import InstallerError

logger = logging.getLogger(__name__)

SUPPORTED_MANAGERS = ("npm", "yarn", "pnpm")

# 按锁文件推断项目所用包管理器，先命中者优先。
_LOCKFILES = (
    ("yarn.lock", "yarn"),
    ("pnpm-lock.yaml", "pnpm"),
)


class PackageInstaller(Protocol):
    """外部安装能力接口：将依赖映射安装到 cwd 对应项目。"""

    async def install(self, dependencies: Mapping[str, str], cwd: Path) -> None:
        ...


def detect_package_manager(cwd: Path, preferred: str = "auto") -> str:
    """确定包管理器：显式配置优先，其次按锁文件推断，最后回退 npm。"""
    choice = preferred.strip().lower()
    if choice and choice != "auto":
        if choice not in SUPPORTED_MANAGERS:
            raise ValueError(f"unsupported package manager: {preferred}")
        return choice
    for lockfile, manager in _LOCKFILES:
        if (cwd / lockfile).exists():
            return manager
    return "npm"


def build_install_command(manager: str, dependencies: Mapping[str, str]) -> list[str]:
    """构造安装命令行；版本约束原样透传，不做解析。"""
    specs = [f"{name}@{constraint}" if constraint else name for name, constraint in dependencies.items()]
    if manager == "npm":
        return ["npm", "install", "--save", *specs]
    if manager in {"yarn", "pnpm"}:
        return [manager, "add", *specs]
    raise ValueError(f"unsupported package manager: {manager}")


class PackageManagerInstaller:
    """默认安装实现，基于 asyncio 子进程调用包管理器。"""
    def __init__(self, preferred: str = "auto") -> None:
        self._preferred = preferred

    async def install(self, dependencies: Mapping[str, str], cwd: Path) -> None:
        if not dependencies:
            logger.info("no dependencies to install", extra={"event": "install.skipped", "op": "install"})
            return

        manager = detect_package_manager(cwd, self._preferred)
        command = build_install_command(manager, dependencies)
        started = time.perf_counter()
        logger.info(
            "installing dependencies",
            extra={
                "event": "install.started",
                "external_service": manager,
                "op": "install",
                "payload_preview": {"cwd": str(cwd), "dependencies": dict(dependencies)},
            },
        )
        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                cwd=str(cwd),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as exc:
            raise InstallerError(command, None, f"{manager} executable not found") from exc

        _stdout, stderr = await process.communicate()
        duration_ms = round((time.perf_counter() - started) * 1000, 2)
        stderr_text = stderr.decode("utf-8", errors="replace")
        if process.returncode != 0:
            logger.error(
                "dependency install failed",
                extra={
                    "event": "install.failed",
                    "external_service": manager,
                    "op": "install",
                    "duration_ms": duration_ms,
                    "error_type": "InstallerError",
                    "error": stderr_text,
                },
            )
            raise InstallerError(command, process.returncode, stderr_text)
        logger.info(
            "dependency install completed",
            extra={
                "event": "install.succeeded",
                "external_service": manager,
                "op": "install",
                "duration_ms": duration_ms,
            },
        )
