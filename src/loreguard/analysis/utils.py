"""分析流程通用工具函数。"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Awaitable, Callable, TypeVar

from langchain_core.messages import BaseMessage

from loreguard.errors import AnalysisError

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def retry_retryable(
    call: Callable[[], Awaitable[T]],
    max_retries: int = 0,
    base_delay: float = 2.0,
    operation_name: str = "analyze",
) -> T:
    """对标记为 retryable 的分析错误（限流）做指数退避重试。

    - 仅重试 AnalysisError.retryable 为真的异常，其他异常直接抛出。
    - 重试间隔：base_delay, base_delay*2, ...
    - max_retries=0 时等价于直接调用。
    """
    for attempt in range(max_retries + 1):
        try:
            return await call()
        except AnalysisError as e:
            if not e.retryable or attempt >= max_retries:
                if e.retryable and max_retries:
                    logger.error("%s 重试 %d 次后仍失败: %s", operation_name, max_retries, e)
                raise
            delay = base_delay * (2**attempt)
            logger.warning(
                "%s 第 %d 次失败 (%s)，%s 秒后重试",
                operation_name,
                attempt + 1,
                type(e).__name__,
                delay,
            )
            await asyncio.sleep(delay)
    raise RuntimeError("retry_retryable unexpected state")


def extract_text(content: str | list | Any) -> str:
    """从 LLM 响应中提取纯文本内容。

    不同模型提供商返回的 content 格式不同：
    - OpenAI 兼容网关: 直接返回 str
    - Google Gemini: 返回 list[dict]，每个 dict 包含 'type' 和 'text'
    """
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts: list[str] = []
        for item in content:
            if isinstance(item, dict) and "text" in item:
                parts.append(item["text"])
            elif isinstance(item, str):
                parts.append(item)
        return "".join(parts)
    return str(content)


def extract_response_text(response: BaseMessage) -> str:
    """从 LLM 响应消息中提取纯文本。"""
    return extract_text(response.content)


def strip_code_fence(text: str) -> str:
    """去掉包裹 JSON 的 markdown 代码块（```json ... ``` 或 ``` ... ```）。

    没有代码块或代码块不完整时原样返回（去首尾空白）。
    """
    try:
        if "```json" in text:
            start = text.index("```json") + len("```json")
            end = text.index("```", start)
            return text[start:end].strip()
        if "```" in text:
            start = text.index("```") + 3
            # 跳过可能的语言标记行
            if "\n" in text[start : start + 20]:
                start = text.index("\n", start) + 1
            end = text.index("```", start)
            return text[start:end].strip()
    except ValueError:
        # 代码块标记不完整（只有开头没有结尾）
        pass
    return text.strip()


def extract_json(text: str) -> Any:
    """从 LLM 输出中提取 JSON 数据。

    支持从 markdown 代码块和夹杂说明文字的纯文本中提取。

    Raises:
        json.JSONDecodeError: 无法解析时。
    """
    text = strip_code_fence(text)
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        # 兜底：尝试找到第一个 { 和最后一个 }
        first_brace = text.find("{")
        last_brace = text.rfind("}")
        if first_brace != -1 and last_brace > first_brace:
            return json.loads(text[first_brace : last_brace + 1])
        raise
