"""依赖安装测试：验证包管理器选择、命令构造、子进程失败与清单适配器。"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Mapping

import httpx
import pytest

from functemplate.application.dependencies import DependencyInstaller
from functemplate.domain.errors import FetchError, InstallerError
from functemplate.infra.http.fetcher import ContentFetcher
from functemplate.infra.installer import package_manager
from functemplate.infra.installer.package_manager import (
    PackageManagerInstaller,
    build_install_command,
    detect_package_manager,
)


class _RecordingInstaller:
    """测试用安装器桩，记录调用参数。"""
    def __init__(self) -> None:
        self.calls: list[tuple[dict[str, str], Path]] = []

    async def install(self, dependencies: Mapping[str, str], cwd: Path) -> None:
        self.calls.append((dict(dependencies), cwd))


class _FakeProcess:
    def __init__(self, returncode: int, stderr: bytes) -> None:
        self.returncode = returncode
        self._stderr = stderr

    async def communicate(self) -> tuple[bytes, bytes]:
        return b"", self._stderr


def test_detect_package_manager_prefers_lockfile(tmp_path: Path) -> None:
    """未显式配置时按锁文件推断，缺省回退 npm。"""
    assert detect_package_manager(tmp_path) == "npm"
    (tmp_path / "yarn.lock").write_text("", encoding="utf-8")
    assert detect_package_manager(tmp_path) == "yarn"
    assert detect_package_manager(tmp_path, preferred="pnpm") == "pnpm"
    with pytest.raises(ValueError):
        detect_package_manager(tmp_path, preferred="bower")


def test_build_install_command_passes_constraints_through() -> None:
    deps = {"got": "^9.6.0", "twilio": ""}

    assert build_install_command("npm", deps) == ["npm", "install", "--save", "got@^9.6.0", "twilio"]
    assert build_install_command("yarn", deps) == ["yarn", "add", "got@^9.6.0", "twilio"]


def test_empty_dependencies_skip_subprocess(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """依赖为空时不启动包管理器。"""
    async def _fail(*_args: object, **_kwargs: object) -> None:
        raise AssertionError("subprocess must not be started")

    monkeypatch.setattr(package_manager.asyncio, "create_subprocess_exec", _fail)

    asyncio.run(PackageManagerInstaller().install({}, tmp_path))


def test_non_zero_exit_raises_installer_error(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """包管理器非零退出时抛出 InstallerError，并携带 stderr 原文。"""
    seen: dict[str, object] = {}

    async def _spawn(*args: str, **kwargs: object) -> _FakeProcess:
        seen["args"] = list(args)
        seen["cwd"] = kwargs.get("cwd")
        return _FakeProcess(1, b"npm ERR! 404 Not Found")

    monkeypatch.setattr(package_manager.asyncio, "create_subprocess_exec", _spawn)

    with pytest.raises(InstallerError) as exc_info:
        asyncio.run(PackageManagerInstaller(preferred="npm").install({"left-pad": "1.3.0"}, tmp_path))

    assert seen["args"] == ["npm", "install", "--save", "left-pad@1.3.0"]
    assert seen["cwd"] == str(tmp_path)
    assert exc_info.value.returncode == 1
    assert "404" in exc_info.value.stderr


def test_dependency_installer_delegates_manifest_dependencies(tmp_path: Path) -> None:
    """适配器读取清单 dependencies 并原样交给安装能力。"""
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"name": "fn", "dependencies": {"got": "^9.6.0"}})

    installer = _RecordingInstaller()

    async def scenario() -> dict[str, str]:
        async with ContentFetcher(transport=httpx.MockTransport(handler)) as fetcher:
            adapter = DependencyInstaller(fetcher=fetcher, installer=installer)
            return await adapter.install_dependencies("https://templates.test/package.json", tmp_path)

    assert asyncio.run(scenario()) == {"got": "^9.6.0"}
    assert installer.calls == [({"got": "^9.6.0"}, tmp_path)]


def test_dependency_installer_rejects_malformed_manifest(tmp_path: Path) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"dependencies": ["got"]})

    installer = _RecordingInstaller()

    async def scenario() -> None:
        async with ContentFetcher(transport=httpx.MockTransport(handler)) as fetcher:
            adapter = DependencyInstaller(fetcher=fetcher, installer=installer)
            await adapter.install_dependencies("https://templates.test/package.json", tmp_path)

    with pytest.raises(FetchError):
        asyncio.run(scenario())
    assert installer.calls == []
