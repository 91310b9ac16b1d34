"""分析提示词。

提示词正文放在同目录的 .txt 文件里；用户提示词中的 {字段} 由调用方填充，
缺少字段时在发送请求之前就报错。
"""

from __future__ import annotations

import functools
import string
from pathlib import Path

_PROMPTS_DIR = Path(__file__).parent

ANALYZER_SYSTEM = "analyzer_system"
ANALYZER_USER = "analyzer_user"


@functools.lru_cache(maxsize=8)
def load_prompt(name: str) -> str:
    """按名称读取提示词（可省略 .txt）。

    Raises:
        FileNotFoundError: 提示词文件不存在时。
    """
    path = _PROMPTS_DIR / (name if name.endswith(".txt") else f"{name}.txt")
    if not path.is_file():
        raise FileNotFoundError(f"提示词文件不存在: {path}")
    return path.read_text(encoding="utf-8").strip()


@functools.lru_cache(maxsize=8)
def prompt_fields(name: str) -> frozenset[str]:
    """模板中出现的占位字段名。"""
    return frozenset(
        field for _, field, _, _ in string.Formatter().parse(load_prompt(name)) if field
    )


def format_prompt(name: str, **values: str) -> str:
    """填充提示词模板。

    Raises:
        KeyError: 缺少模板需要的字段。
    """
    missing = prompt_fields(name) - values.keys()
    if missing:
        raise KeyError(f"提示词 {name} 缺少字段: {', '.join(sorted(missing))}")
    return load_prompt(name).format(**values)


__all__ = [
    "ANALYZER_SYSTEM",
    "ANALYZER_USER",
    "format_prompt",
    "load_prompt",
    "prompt_fields",
]
