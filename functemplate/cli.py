"""命令行入口：解析参数、执行落盘编排并提示需手动配置的环境变量。"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, Sequence

from functemplate.application.container import get_materializer, shutdown_container_resources
from functemplate.config import get_settings
from functemplate.domain.errors import FunctemplateError
from functemplate.domain.models import FileDescriptor, MaterializeSummary, parse_descriptors
from functemplate.infra.logging.setup import configure_logging, shutdown_logging

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="functemplate",
        description="Install a function template into a project directory.",
    )
    parser.add_argument("function_name", help="name of the function file to create under functions/")
    parser.add_argument("--target-dir", default=".", help="project root, must already exist")
    parser.add_argument("--function", dest="function_url", help="address of the function source file")
    parser.add_argument("--env", dest="env_url", help="address of the .env template")
    parser.add_argument("--manifest", dest="manifest_url", help="address of the JSON manifest with dependencies")
    parser.add_argument(
        "--descriptors",
        type=Path,
        help="JSON file holding a list of {type, content, functionName} descriptors",
    )
    return parser


def load_descriptors(args: argparse.Namespace) -> list[FileDescriptor]:
    """合并 --descriptors 文件与单项参数构造的描述符列表。"""
    raw: list[dict[str, Any]] = []
    if args.descriptors is not None:
        payload = json.loads(args.descriptors.read_text(encoding="utf-8"))
        if not isinstance(payload, list):
            raise ValueError(f"descriptor file must hold a JSON list: {args.descriptors}")
        raw.extend(payload)
    if args.function_url:
        raw.append({"type": "function", "content": args.function_url})
    if args.env_url:
        raw.append({"type": "env", "content": args.env_url, "functionName": args.function_name})
    if args.manifest_url:
        raw.append({"type": "manifest", "content": args.manifest_url})
    if not raw:
        raise ValueError("nothing to install: pass --function, --env, --manifest or --descriptors")
    return parse_descriptors(raw)


def format_follow_up(new_keys: Sequence[str], env_file_name: str = ".env") -> str | None:
    if not new_keys:
        return None
    return f"INFO Make sure to configure {','.join(new_keys)} in the {env_file_name} file"


async def run(descriptors: list[FileDescriptor], target_dir: Path, function_name: str) -> MaterializeSummary:
    try:
        return await get_materializer().materialize(descriptors, target_dir, function_name)
    finally:
        await shutdown_container_resources()


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_settings()
    configure_logging(settings)
    try:
        descriptors = load_descriptors(args)
        summary = asyncio.run(run(descriptors, Path(args.target_dir).resolve(), args.function_name))
    except (FunctemplateError, ValueError, OSError) as exc:
        logger.error("install failed", extra={"event": "cli.failed", "error_type": type(exc).__name__})
        print(f"ERROR {exc}", file=sys.stderr)
        return 1
    finally:
        shutdown_logging()

    for task in summary.tasks:
        print(f"[{task.status.value}] {task.title}")
    message = format_follow_up(summary.new_env_keys, settings.env_file_name)
    if message:
        print(message)
    return 0
