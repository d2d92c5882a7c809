"""目标项目布局测试：验证存在性探测、路径计算与函数名清洗。"""

from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from functemplate.infra.storage.filesystem import ProjectLayout, exists, read_text, write_text


def test_exists_true_for_existing_file(tmp_path: Path) -> None:
    path = tmp_path / ".env"
    path.write_text("A=1\n", encoding="utf-8")

    assert exists(path) is True


def test_exists_false_for_missing_path(tmp_path: Path) -> None:
    """不存在的路径返回 False 而不是抛出异常。"""
    assert exists(tmp_path / "missing" / ".env") is False


def test_layout_paths(tmp_path: Path) -> None:
    layout = ProjectLayout(target_dir=tmp_path)

    assert layout.function_path("hello") == tmp_path / "functions" / "hello.js"
    assert layout.env_path() == tmp_path / ".env"


def test_layout_strips_path_segments_from_function_name(tmp_path: Path) -> None:
    """函数名中的路径片段被移除，避免写出 functions 目录。"""
    layout = ProjectLayout(target_dir=tmp_path, function_extension=".ts")

    assert layout.function_path("../../etc/passwd") == tmp_path / "functions" / "passwd.ts"
    with pytest.raises(ValueError):
        layout.function_path("..")


def test_ensure_functions_root_does_not_create_target(tmp_path: Path) -> None:
    """仅创建 functions 子目录，目标目录缺失时报错。"""
    layout = ProjectLayout(target_dir=tmp_path)
    assert layout.ensure_functions_root().is_dir()

    missing = ProjectLayout(target_dir=tmp_path / "missing")
    with pytest.raises(FileNotFoundError):
        missing.ensure_functions_root()


def test_text_round_trip_keeps_line_endings(tmp_path: Path) -> None:
    path = tmp_path / ".env"

    asyncio.run(write_text(path, "A=1\r\nB=2\n"))

    assert asyncio.run(read_text(path)) == "A=1\r\nB=2\n"
