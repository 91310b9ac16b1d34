"""OpenAI 兼容推理网关的 LangChain ChatModel 封装。

网关协议：
- 端点: POST {base_url}（默认 https://ai.gateway.lovable.dev/v1/chat/completions）
- 鉴权: Authorization: Bearer <api_key>
- 请求: {"model", "messages", 可选 "temperature" / "max_tokens"}
- 回复文本位于 choices[0].message.content

HTTP 错误原样以 httpx.HTTPStatusError 抛出，由上层映射为错误分类。
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx
from langchain_core.callbacks import (
    AsyncCallbackManagerForLLMRun,
    CallbackManagerForLLMRun,
)
from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage
from langchain_core.outputs import ChatGeneration, ChatResult

logger = logging.getLogger(__name__)

DEFAULT_GATEWAY_URL = "https://ai.gateway.lovable.dev/v1/chat/completions"


class EmptyCompletionError(RuntimeError):
    """网关返回了 200 但没有任何回复内容。"""


class ChatGateway(BaseChatModel):
    """通过 OpenAI 兼容网关调用托管模型。"""

    api_key: str = ""
    model: str = "google/gemini-2.5-pro"
    base_url: str = DEFAULT_GATEWAY_URL
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None

    # ── httpx ──
    timeout: float = 300.0
    # 测试时可注入 httpx.MockTransport
    transport: Any = None

    @property
    def _llm_type(self) -> str:
        return "openai-compatible-gateway"

    @property
    def _identifying_params(self) -> dict[str, Any]:
        return {
            "model": self.model,
            "base_url": self.base_url,
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
        }

    # ------------------------------------------------------------------
    # Message 转换
    # ------------------------------------------------------------------

    def _convert_messages(self, messages: list[BaseMessage]) -> list[dict[str, Any]]:
        """将 LangChain 消息转换为 chat completions 格式。"""
        converted: list[dict[str, Any]] = []
        for msg in messages:
            if isinstance(msg, SystemMessage):
                role = "system"
            elif isinstance(msg, AIMessage):
                role = "assistant"
            elif isinstance(msg, HumanMessage):
                role = "user"
            else:
                # 其他消息类型作为 user 处理
                role = "user"
            converted.append({"role": role, "content": str(msg.content)})
        return converted

    def _build_payload(self, messages: list[BaseMessage]) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": self.model,
            "messages": self._convert_messages(messages),
        }
        if self.temperature is not None:
            payload["temperature"] = self.temperature
        if self.max_tokens is not None:
            payload["max_tokens"] = self.max_tokens
        return payload

    def _headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
        }

    def _client_kwargs(self) -> dict[str, Any]:
        kwargs: dict[str, Any] = {"timeout": self.timeout}
        if self.transport is not None:
            kwargs["transport"] = self.transport
        return kwargs

    # ------------------------------------------------------------------
    # 核心调用
    # ------------------------------------------------------------------

    def _generate(
        self,
        messages: list[BaseMessage],
        stop: Optional[list[str]] = None,
        run_manager: Optional[CallbackManagerForLLMRun] = None,
        **kwargs: Any,
    ) -> ChatResult:
        """同步调用网关。"""
        payload = self._build_payload(messages)
        try:
            with httpx.Client(**self._client_kwargs()) as client:
                resp = client.post(self.base_url, json=payload, headers=self._headers())
                resp.raise_for_status()
                data = resp.json()
        except httpx.HTTPStatusError as e:
            logger.error("Gateway HTTP error: %s - %s", e.response.status_code, e.response.text)
            raise
        except httpx.HTTPError as e:
            logger.error("Gateway call failed: %s", e)
            raise
        return self._to_chat_result(data)

    async def _agenerate(
        self,
        messages: list[BaseMessage],
        stop: Optional[list[str]] = None,
        run_manager: Optional[AsyncCallbackManagerForLLMRun] = None,
        **kwargs: Any,
    ) -> ChatResult:
        """异步调用网关。"""
        payload = self._build_payload(messages)
        try:
            async with httpx.AsyncClient(**self._client_kwargs()) as client:
                resp = await client.post(self.base_url, json=payload, headers=self._headers())
                resp.raise_for_status()
                data = resp.json()
        except httpx.HTTPStatusError as e:
            logger.error("Gateway HTTP error: %s - %s", e.response.status_code, e.response.text)
            raise
        except httpx.HTTPError as e:
            logger.error("Gateway call failed: %s", e)
            raise
        return self._to_chat_result(data)

    def _to_chat_result(self, data: dict[str, Any]) -> ChatResult:
        choices = data.get("choices") or []
        if not choices:
            raise EmptyCompletionError("No response from AI model")

        content = (choices[0].get("message") or {}).get("content") or ""
        if not content:
            raise EmptyCompletionError("No response from AI model")

        usage = data.get("usage", {})
        generation = ChatGeneration(
            message=AIMessage(content=content),
            generation_info={
                "finish_reason": choices[0].get("finish_reason", ""),
                "usage": usage,
            },
        )
        return ChatResult(
            generations=[generation],
            llm_output={
                "model": data.get("model", self.model),
                "usage": usage,
            },
        )
