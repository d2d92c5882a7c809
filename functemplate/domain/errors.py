"""领域异常定义：区分重复函数、目标目录、传输与安装失败。"""

from __future__ import annotations

from pathlib import Path


class FunctemplateError(RuntimeError):
    pass


class DuplicateFunctionError(FunctemplateError):
    """目标项目 functions 目录下已存在同名函数文件。"""

    def __init__(self, function_name: str, path: Path) -> None:
        super().__init__(f'Function with name "{function_name}" already exists in {path.parent.name}/ directory')
        self.function_name = function_name
        self.path = path


class TargetDirectoryError(FunctemplateError):
    def __init__(self, path: Path, reason: str) -> None:
        super().__init__(f"target directory {path} {reason}")
        self.path = path


class FetchError(FunctemplateError):
    """远端内容获取失败：网络异常或非成功状态码。"""

    def __init__(self, address: str, message: str, status_code: int | None = None) -> None:
        super().__init__(f"failed to fetch {address}: {message}")
        self.address = address
        self.status_code = status_code


class InstallerError(FunctemplateError):
    """包管理器执行失败，保留退出码与 stderr 原文。"""

    def __init__(self, command: list[str], returncode: int | None, stderr: str) -> None:
        detail = stderr.strip() or "no output"
        super().__init__(f"{' '.join(command)} failed (exit={returncode}): {detail}")
        self.command = command
        self.returncode = returncode
        self.stderr = stderr
