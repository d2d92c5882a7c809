"""目标项目文件布局：存在性探测、函数/环境文件路径与文本读写。"""

from __future__ import annotations

import asyncio
import os
import re
from dataclasses import dataclass
from pathlib import Path


FUNCTION_NAME_SAFE_RE = re.compile(r"[^a-zA-Z0-9._-]+")


def exists(path: Path) -> bool:
    """路径存在且可读写时返回 True；不存在或无权限统一返回 False。"""
    try:
        return os.access(path, os.R_OK | os.W_OK)
    except (OSError, ValueError):
        return False


async def read_text(path: Path) -> str:
    def _read() -> str:
        with path.open("r", encoding="utf-8", newline="") as handle:
            return handle.read()

    return await asyncio.to_thread(_read)


async def write_text(path: Path, content: str) -> None:
    """整体写入文本文件。"""
    # newline="" 保证合并结果中的换行符原样落盘。
    def _write() -> None:
        with path.open("w", encoding="utf-8", newline="") as handle:
            handle.write(content)

    await asyncio.to_thread(_write)


@dataclass(slots=True)
class ProjectLayout:
    """目标项目落盘约定，负责计算函数与环境文件路径。"""
    target_dir: Path
    functions_dir: str = "functions"
    function_extension: str = ".js"
    env_file_name: str = ".env"

    def sanitize_function_name(self, function_name: str) -> str:
        """清洗函数名，防止路径穿越写出 functions 目录。"""
        clean_name = Path(function_name).name.strip()
        clean_name = FUNCTION_NAME_SAFE_RE.sub("_", clean_name)
        if not clean_name or clean_name in {".", ".."}:
            raise ValueError(f"invalid function name: {function_name!r}")
        return clean_name

    def functions_root(self) -> Path:
        return self.target_dir / self.functions_dir

    def function_path(self, function_name: str) -> Path:
        safe_name = self.sanitize_function_name(function_name)
        return self.functions_root() / f"{safe_name}{self.function_extension}"

    def env_path(self) -> Path:
        return self.target_dir / self.env_file_name

    def ensure_functions_root(self) -> Path:
        """按需创建 functions 目录；目标项目根目录本身不会被创建。"""
        root = self.functions_root()
        root.mkdir(exist_ok=True)
        return root
