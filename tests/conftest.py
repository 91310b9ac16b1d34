"""测试夹具。

所有测试均不访问网络：LLM 由 langchain_core 的假模型或 httpx.MockTransport 替代。
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, Optional

import httpx
import pytest
from langchain_core.language_models import BaseChatModel
from langchain_core.messages import AIMessage, BaseMessage
from langchain_core.outputs import ChatGeneration, ChatResult

from loreguard.config.settings import AnalysisConfig, ModelConfig

GATEWAY_URL = "https://gateway.test/v1/chat/completions"


class RecordingChatModel(BaseChatModel):
    """按顺序返回预设回复或抛出预设异常，并记录调用次数。"""

    outcomes: list[Any] = []
    calls: int = 0
    delay: float = 0.0
    last_messages: list[Any] = []

    @property
    def _llm_type(self) -> str:
        return "recording"

    def _next(self, messages: list[BaseMessage]) -> ChatResult:
        self.last_messages = list(messages)
        outcome = self.outcomes[min(self.calls, len(self.outcomes) - 1)]
        self.calls += 1
        if isinstance(outcome, BaseException):
            raise outcome
        return ChatResult(generations=[ChatGeneration(message=AIMessage(content=outcome))])

    def _generate(
        self,
        messages: list[BaseMessage],
        stop: Optional[list[str]] = None,
        run_manager: Any = None,
        **kwargs: Any,
    ) -> ChatResult:
        return self._next(messages)

    async def _agenerate(
        self,
        messages: list[BaseMessage],
        stop: Optional[list[str]] = None,
        run_manager: Any = None,
        **kwargs: Any,
    ) -> ChatResult:
        if self.delay:
            await asyncio.sleep(self.delay)
        return self._next(messages)


def http_status_error(status: int, body: str = "") -> httpx.HTTPStatusError:
    request = httpx.Request("POST", GATEWAY_URL)
    response = httpx.Response(status, request=request, text=body)
    return httpx.HTTPStatusError(f"HTTP {status}", request=request, response=response)


@pytest.fixture
def config() -> AnalysisConfig:
    return AnalysisConfig(
        model=ModelConfig(api_key="test-key", base_url=GATEWAY_URL),
        retry_base_delay=0.0,
    )


@pytest.fixture
def well_formed_payload() -> dict:
    """结构完整的模型回复。"""
    return {
        "prediction": "consistent",
        "confidence": 0.86,
        "rationale": "The backstory matches the narrative.",
        "explanation": "Both claims are backed by explicit passages.",
        "claims": [
            {
                "id": "claim_1",
                "text": "He grew up in a coastal village.",
                "status": "supported",
                "evidence": [
                    {
                        "id": "evidence_1",
                        "excerpt": "The salt-tinged air of his childhood home.",
                        "chapterRef": "Chapter 3",
                        "relevanceScore": 0.92,
                        "analysisNote": "Describes a seaside upbringing.",
                    }
                ],
            },
            {
                "id": "claim_2",
                "text": "He trained with swords.",
                "status": "contradicted",
                "evidence": [
                    {
                        "id": "evidence_2",
                        "excerpt": "He had never held a sword before that day.",
                        "chapterRef": "Chapter 8",
                        "relevanceScore": 0.81,
                    }
                ],
            },
            {
                "id": "claim_3",
                "text": "He feared the sea.",
                "status": "unverified",
                "evidence": [],
            },
        ],
        "constraints": {
            "temporal": {"status": "satisfied", "note": "Ages line up."},
            "spatial": {"status": "satisfied", "note": "Village matches the map."},
            "causal": {"status": "violated", "note": "Sword skill appears from nowhere."},
            "character": {"status": "uncertain", "note": "Temperament is ambiguous."},
            "factual": {"status": "satisfied", "note": "No world-rule breaks."},
        },
    }


@pytest.fixture
def well_formed_reply(well_formed_payload) -> str:
    return "```json\n" + json.dumps(well_formed_payload) + "\n```"
