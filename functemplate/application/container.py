"""依赖容器模块，负责单例化创建获取器、安装器与编排服务对象。"""

from __future__ import annotations

from functools import lru_cache

from functemplate.application.dependencies import DependencyInstaller
from functemplate.application.materializer import FunctionMaterializer
from functemplate.config import get_settings
from functemplate.infra.http.fetcher import ContentFetcher
from functemplate.infra.installer.package_manager import PackageManagerInstaller


@lru_cache(maxsize=1)
def get_content_fetcher() -> ContentFetcher:
    """获取内容获取器单例。"""
    settings = get_settings()
    return ContentFetcher(
        timeout_seconds=settings.http_timeout_seconds,
        max_connections=settings.http_max_connections,
    )


@lru_cache(maxsize=1)
def get_package_installer() -> PackageManagerInstaller:
    return PackageManagerInstaller(preferred=get_settings().package_manager)


@lru_cache(maxsize=1)
def get_dependency_installer() -> DependencyInstaller:
    """获取依赖安装适配器单例。"""
    return DependencyInstaller(fetcher=get_content_fetcher(), installer=get_package_installer())


@lru_cache(maxsize=1)
def get_materializer() -> FunctionMaterializer:
    """获取编排服务单例。"""
    return FunctionMaterializer(
        settings=get_settings(),
        fetcher=get_content_fetcher(),
        dependency_installer=get_dependency_installer(),
    )


async def shutdown_container_resources() -> None:
    """关闭共享 HTTP 客户端并清理依赖容器缓存。"""
    if get_content_fetcher.cache_info().currsize:
        await get_content_fetcher().aclose()

    # 按依赖顺序清理缓存，确保后续调用可重新构建全新实例。
    for provider in (
        get_materializer,
        get_dependency_installer,
        get_package_installer,
        get_content_fetcher,
    ):
        provider.cache_clear()
