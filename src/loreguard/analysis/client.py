"""外部分析客户端：请求整形、调用推理服务、错误归类。

只定义与推理服务的契约，不关心模型内部如何推理。
预期内的失败（限流、额度、网络、凭证）以 AnalysisOutcome 返回，
而不是向调用方抛出异常。
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import httpx
from langchain_core.language_models import BaseChatModel
from langchain_core.messages import BaseMessage, HumanMessage, SystemMessage

from loreguard.analysis.utils import extract_response_text, retry_retryable
from loreguard.config.settings import AnalysisConfig
from loreguard.errors import (
    AnalysisError,
    AuthConfigError,
    QuotaExhaustedError,
    RateLimitError,
    TransportError,
    UnknownError,
)
from loreguard.llm import EmptyCompletionError, init_model
from loreguard.models.job import AnalysisRequest, Track
from loreguard.prompts import ANALYZER_SYSTEM, ANALYZER_USER, format_prompt, load_prompt

logger = logging.getLogger(__name__)

ANALYZER_SYSTEM_PROMPT = load_prompt(ANALYZER_SYSTEM)


@dataclass(frozen=True)
class AnalysisOutcome:
    """一次外部调用的结果：要么是原始回复文本，要么是分类后的错误。"""

    raw_text: str | None = None
    error: AnalysisError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, raw_text: str) -> AnalysisOutcome:
        return cls(raw_text=raw_text)

    @classmethod
    def failure(cls, error: AnalysisError) -> AnalysisOutcome:
        return cls(error=error)

    def unwrap(self) -> str:
        """返回回复文本；失败时抛出携带的错误。"""
        if self.error is not None:
            raise self.error
        return self.raw_text or ""


def map_exception(exc: BaseException) -> AnalysisError:
    """把传输层异常映射到封闭的错误分类。"""
    if isinstance(exc, AnalysisError):
        return exc
    if isinstance(exc, EmptyCompletionError):
        return TransportError(str(exc))

    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
    else:
        # openai 等 SDK 的异常同样带 status_code
        status = getattr(exc, "status_code", None)

    if isinstance(status, int):
        if status == 429:
            return RateLimitError("Rate limit exceeded. Please try again in a moment.")
        if status == 402:
            return QuotaExhaustedError("AI credits exhausted. Please add credits to continue.")
        if status in (401, 403):
            return AuthConfigError(f"Inference service rejected the credential (HTTP {status})")
        return TransportError(f"AI Gateway error: {status}")

    if isinstance(exc, (httpx.HTTPError, ConnectionError, TimeoutError, OSError)):
        return TransportError(f"Inference service unreachable: {str(exc) or type(exc).__name__}")

    return UnknownError(str(exc) or "Unknown error occurred")


class ExternalAnalysisClient:
    """推理服务客户端。

    凭证缺失时在任何网络调用之前以 AuthConfigError 失败。
    """

    def __init__(
        self,
        config: AnalysisConfig | None = None,
        model: BaseChatModel | None = None,
    ) -> None:
        self.config = config or AnalysisConfig()
        self._model = model

    # ------------------------------------------------------------------
    # 请求整形
    # ------------------------------------------------------------------

    def truncate_story(self, content: str) -> str:
        """超过上限时截断故事正文并追加截断标记。"""
        limit = self.config.story_char_limit
        if len(content) <= limit:
            return content
        return content[:limit] + self.config.truncation_marker

    def build_request(
        self,
        story_content: str,
        backstory_content: str,
        track: Track | str = Track.A,
        story_id: str = "story_1",
    ) -> AnalysisRequest:
        """构建请求；背景故事从不截断。"""
        return AnalysisRequest(
            story_content=self.truncate_story(story_content),
            backstory_content=backstory_content,
            track=Track(track),
            story_id=story_id,
        )

    def build_messages(self, request: AnalysisRequest) -> list[BaseMessage]:
        user_prompt = format_prompt(
            ANALYZER_USER,
            track=request.track.value,
            story_id=request.story_id,
            story=request.story_content,
            backstory=request.backstory_content,
        )
        return [
            SystemMessage(content=ANALYZER_SYSTEM_PROMPT),
            HumanMessage(content=user_prompt),
        ]

    # ------------------------------------------------------------------
    # 调用
    # ------------------------------------------------------------------

    async def analyze(self, request: AnalysisRequest) -> AnalysisOutcome:
        """调用推理服务，返回原始回复文本或分类后的错误。"""
        try:
            raw_text = await retry_retryable(
                lambda: self._call(request),
                max_retries=self.config.rate_limit_retries,
                base_delay=self.config.retry_base_delay,
                operation_name="analyze_narrative",
            )
        except AnalysisError as e:
            logger.error("推理服务调用失败 (%s): %s", type(e).__name__, e)
            return AnalysisOutcome.failure(e)
        return AnalysisOutcome.success(raw_text)

    async def analyze_or_raise(self, request: AnalysisRequest) -> str:
        """与 analyze 相同，但失败时直接抛出分类后的错误。"""
        outcome = await self.analyze(request)
        return outcome.unwrap()

    def _resolve_model(self) -> BaseChatModel:
        api_key = self.config.model.resolve_api_key()
        if not api_key:
            raise AuthConfigError(f"{self.config.model.api_key_env} is not configured")
        if self._model is None:
            self._model = init_model(self.config.model, api_key=api_key)
        return self._model

    async def _call(self, request: AnalysisRequest) -> str:
        model = self._resolve_model()
        messages = self.build_messages(request)

        logger.info(
            "分析故事 %s (track=%s): 故事 %d 字符, 背景 %d 字符",
            request.story_id,
            request.track.value,
            len(request.story_content),
            len(request.backstory_content),
        )
        try:
            response = await model.ainvoke(messages)
        except Exception as e:
            raise map_exception(e) from e

        text = extract_response_text(response)
        if not text.strip():
            raise TransportError("No response from AI model")
        logger.debug("模型原始回复: %s", text[:500])
        return text
