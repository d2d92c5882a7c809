"""依赖安装适配器：获取依赖清单片段并委托外部安装能力。"""

from __future__ import annotations

import logging
from pathlib import Path

from pydantic import ValidationError

from functemplate.domain.errors import FetchError
from functemplate.domain.models import ManifestFragment
from functemplate.infra.http.fetcher import ContentFetcher
from functemplate.infra.installer.package_manager import PackageInstaller

logger = logging.getLogger(__name__)


class DependencyInstaller:
    def __init__(self, *, fetcher: ContentFetcher, installer: PackageInstaller) -> None:
        self._fetcher = fetcher
        self._installer = installer

    async def install_dependencies(self, manifest_address: str, target_dir: Path) -> dict[str, str]:
        """读取清单中的 dependencies 并安装到目标目录，返回已安装的依赖映射。"""
        payload = await self._fetcher.fetch_json(manifest_address)
        try:
            fragment = ManifestFragment.model_validate(payload)
        except ValidationError as exc:
            raise FetchError(manifest_address, f"invalid manifest fragment: {exc}") from exc

        logger.info(
            "manifest fragment loaded",
            extra={
                "event": "manifest.loaded",
                "op": "install_dependencies",
                "payload_preview": {"dependencies": fragment.dependencies},
            },
        )
        await self._installer.install(fragment.dependencies, cwd=target_dir)
        return dict(fragment.dependencies)
