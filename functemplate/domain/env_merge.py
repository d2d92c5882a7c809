"""环境文件合并引擎：在不覆盖用户修改的前提下追加函数所需变量。

合并规则：
- 当前文档已定义的变量优先，新文档中的同名行以注释形式保留；
- 新文档前插入带函数名的分隔注释，多次安装后仍可按函数分段阅读；
- 无当前文档时直接使用新文档全文，不插入分隔块。

解析基于 python-dotenv 的逐条绑定解析器，所有绑定的原文拼接后与输入完全一致，
因此注释、空行与无法解析的行都会原样保留。
"""

from __future__ import annotations

from io import StringIO

from dotenv.parser import Binding, parse_stream

from functemplate.domain.models import MergeResult

COMMENT_MARKER = "# "
SEPARATOR_TEMPLATE = '\n\n# Variables for function "{label}"\n# ---\n'


def _bindings(text: str) -> list[Binding]:
    return list(parse_stream(StringIO(text)))


def _is_assignment(binding: Binding) -> bool:
    # 仅 KEY=VALUE 形式计入变量；单独的 KEY 行、注释与错误行原样透传。
    return binding.key is not None and binding.value is not None


def _assigned_keys(bindings: list[Binding]) -> list[str]:
    return [binding.key for binding in bindings if _is_assignment(binding)]


def _comment_out(raw: str) -> str:
    """为绑定原文中的每个非空行加注释前缀，空行保持不变。"""
    return "".join(
        f"{COMMENT_MARKER}{line}" if line.strip() else line
        for line in raw.splitlines(keepends=True)
    )


def parse_env(text: str) -> dict[str, str]:
    """将环境文档解析为 变量名 -> 原始行 的有序映射。"""
    return {
        binding.key: binding.original.string.strip()
        for binding in _bindings(text)
        if _is_assignment(binding)
    }


def build_separator(function_label: str) -> str:
    return SEPARATOR_TEMPLATE.format(label=function_label)


def merge_env(current_text: str | None, incoming_text: str, function_label: str) -> MergeResult:
    """合并当前与新获取的环境文档，返回合并文本与新引入变量名。

    current_text 为 None 表示目标项目尚无环境文档；空字符串表示文档存在但为空，
    仍走合并分支。
    """
    incoming = _bindings(incoming_text)
    incoming_keys = _assigned_keys(incoming)

    if current_text is None:
        return MergeResult(merged_text=incoming_text, new_keys=tuple(dict.fromkeys(incoming_keys)))

    current_keys = parse_env(current_text).keys()
    new_keys = tuple(dict.fromkeys(key for key in incoming_keys if key not in current_keys))

    rewritten = "".join(
        _comment_out(binding.original.string)
        if _is_assignment(binding) and binding.key in current_keys
        else binding.original.string
        for binding in incoming
    )
    merged_text = current_text + build_separator(function_label) + rewritten
    return MergeResult(merged_text=merged_text, new_keys=new_keys)
