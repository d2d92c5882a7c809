"""全局配置加载模块：从环境变量构建运行参数并提供缓存访问。"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """运行配置对象，仅从 FUNCTEMPLATE_ 前缀环境变量读取。

    不读取工作目录下的 .env：该文件属于目标项目，由本工具负责合并写入。
    """
    model_config = SettingsConfigDict(
        env_prefix="FUNCTEMPLATE_",
        extra="ignore",
    )

    app_name: str = "functemplate"

    # 目标项目内的落盘布局。
    functions_dir: str = "functions"
    function_extension: str = ".js"
    env_file_name: str = ".env"

    http_timeout_seconds: int = 30
    http_max_connections: int = 20

    # auto | npm | yarn | pnpm
    package_manager: str = "auto"

    log_level: str = "INFO"
    log_console_level: str = "WARNING"
    log_file_enabled: bool = False
    log_dir: Path = Field(default=Path("./logs"))
    log_redact_secrets: bool = True
    log_payload_preview_chars: int = 2000

    def normalized_extension(self) -> str:
        """返回带前导点的函数源码扩展名。"""
        extension = self.function_extension.strip()
        if extension and not extension.startswith("."):
            return f".{extension}"
        return extension


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """构建并缓存 Settings。"""
    settings = Settings()
    # 相对日志路径统一按当前工作目录解析。
    if not settings.log_dir.is_absolute():
        settings.log_dir = (Path.cwd() / settings.log_dir).resolve()
    return settings
