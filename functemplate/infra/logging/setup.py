"""命令行日志初始化：为 functemplate 日志器输出 JSON 行，并屏蔽 .env 中的密钥取值。

一次命令执行只配置一次：stderr 始终输出，按配置追加写入 JSONL 文件。
记录上除上下文字段外，只输出调用方通过 extra 传入且非空的结构化字段。
"""

from __future__ import annotations

import json
import logging
import re
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from functemplate.config import Settings
from functemplate.infra.logging.context import get_log_context

ROOT_LOGGER = "functemplate"

EXTRA_FIELDS = (
    "event",
    "op",
    "external_service",
    "duration_ms",
    "status_code",
    "error_type",
    "error",
    "payload_preview",
)

# 形如 AUTH_TOKEN=xxx / API_KEY: xxx 的赋值，变量名含敏感词时屏蔽取值。
_SECRET_NAME = r"[A-Za-z0-9_]*(?:TOKEN|SECRET|PASSWORD|PASSWD|API_KEY|APIKEY|PRIVATE_KEY|AUTH)[A-Za-z0-9_]*"
_SECRET_ASSIGNMENT_RE = re.compile(
    rf"(?i)\b({_SECRET_NAME}\s*[=:]\s*)(\"[^\"]*\"|'[^']*'|[^\s,;\"'}}]+)"
)
_SECRET_KEY_RE = re.compile(rf"(?i)^{_SECRET_NAME}$")
MASK = "***"

_installed_handlers: list[logging.Handler] = []


def redact_secrets(text: str) -> str:
    return _SECRET_ASSIGNMENT_RE.sub(rf"\1{MASK}", text)


def scrub_payload(value: Any) -> Any:
    """递归屏蔽 payload 中的密钥：敏感键名的取值整体替换，字符串按赋值模式替换。"""
    if isinstance(value, dict):
        return {
            str(key): MASK if _SECRET_KEY_RE.match(str(key)) else scrub_payload(item)
            for key, item in value.items()
        }
    if isinstance(value, (list, tuple)):
        return [scrub_payload(item) for item in value]
    if isinstance(value, str):
        return redact_secrets(value)
    return value


class JsonLineFormatter(logging.Formatter):
    """每条记录一行 JSON；None 字段不输出。"""

    def __init__(self, *, service: str, redact: bool, payload_preview_chars: int) -> None:
        super().__init__()
        self._service = service
        self._redact = redact
        self._payload_preview_chars = payload_preview_chars

    def _clean(self, value: Any) -> Any:
        return scrub_payload(value) if self._redact else value

    def _payload(self, payload: Any) -> Any:
        cleaned = self._clean(payload)
        serialized = json.dumps(cleaned, ensure_ascii=False, sort_keys=True, default=str)
        if len(serialized) <= self._payload_preview_chars:
            return cleaned
        return f"{serialized[:self._payload_preview_chars]}...(truncated)"

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "service": self._service,
            "logger": record.name,
            "message": self._clean(record.getMessage()),
        }
        for key, value in get_log_context().items():
            value = getattr(record, key, None) or value
            if value is not None:
                entry[key] = value
        for key in EXTRA_FIELDS:
            value = getattr(record, key, None)
            if value is None:
                continue
            entry[key] = self._payload(value) if key == "payload_preview" else self._clean(value)
        if record.exc_info and "error" not in entry:
            entry["error"] = self._clean(self.formatException(record.exc_info))
        return json.dumps(entry, ensure_ascii=False, default=str)


def _parse_level(level_text: str) -> int:
    return getattr(logging, str(level_text).upper(), logging.INFO)


def configure_logging(settings: Settings) -> Path | None:
    """为 functemplate 日志器安装 stderr 与可选文件输出，返回日志文件路径。"""
    shutdown_logging()

    formatter = JsonLineFormatter(
        service=settings.app_name,
        redact=settings.log_redact_secrets,
        payload_preview_chars=settings.log_payload_preview_chars,
    )
    stderr_handler = logging.StreamHandler(stream=sys.stderr)
    stderr_handler.setLevel(_parse_level(settings.log_console_level))
    stderr_handler.setFormatter(formatter)
    _installed_handlers.append(stderr_handler)

    log_file: Path | None = None
    if settings.log_file_enabled:
        settings.log_dir.mkdir(parents=True, exist_ok=True)
        log_file = settings.log_dir / "functemplate.jsonl"
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(formatter)
        _installed_handlers.append(file_handler)

    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(_parse_level(settings.log_level))
    # 命令行输出由本模块独占，不再向根日志器重复传播。
    logger.propagate = False
    for handler in _installed_handlers:
        logger.addHandler(handler)
    return log_file


def shutdown_logging() -> None:
    """移除并关闭 configure_logging 安装的输出。"""
    logger = logging.getLogger(ROOT_LOGGER)
    while _installed_handlers:
        handler = _installed_handlers.pop()
        logger.removeHandler(handler)
        handler.close()
    logger.propagate = True
