"""全局配置。"""

from __future__ import annotations

import os
from pathlib import Path

import yaml
from pydantic import BaseModel, Field

DEFAULT_TRUNCATION_MARKER = "\n\n[...truncated for context limits...]"


class ModelConfig(BaseModel):
    """推理服务 / LLM 模型配置。"""

    provider: str = Field(
        default="gateway",
        description="模型提供商: 'gateway'(OpenAI 兼容网关), 'openai', 'google' 等",
    )
    model_name: str = Field(default="google/gemini-2.5-pro", description="模型名称")
    base_url: str = Field(
        default="https://ai.gateway.lovable.dev/v1/chat/completions",
        description="网关的 chat completions 端点",
    )
    temperature: float | None = Field(
        default=None, description="生成温度（None 表示使用服务端默认）"
    )
    max_tokens: int | None = Field(default=None, description="最大 token 数")
    api_key: str = Field(
        default="",
        description="API key（可选，为空时读取 api_key_env 指定的环境变量）",
    )
    api_key_env: str = Field(
        default="LOREGUARD_API_KEY", description="存放服务凭证的环境变量名"
    )
    timeout: float = Field(default=300.0, description="单次 HTTP 请求超时（秒）")

    def resolve_api_key(self) -> str:
        """显式配置优先，其次环境变量；都没有时返回空串。"""
        return self.api_key or os.environ.get(self.api_key_env, "")


class AnalysisConfig(BaseModel):
    """一致性分析全局配置。"""

    # ── 模型配置 ──
    model: ModelConfig = Field(default_factory=ModelConfig)

    # ── 请求整形 ──
    story_char_limit: int = Field(
        default=50_000, gt=0, description="故事正文送入模型前的字符上限"
    )
    truncation_marker: str = Field(
        default=DEFAULT_TRUNCATION_MARKER, description="截断时追加的标记"
    )

    # ── 阶段脚本 ──
    chunk_words: int = Field(default=2000, gt=0, description="每个语义块的词数")
    max_logged_chunks: int = Field(
        default=5, ge=0, description="embedding 阶段逐块记录日志的最大块数"
    )

    # ── 归一化启发式（未定语义，保持可配置）──
    default_claim_confidence: float = Field(
        default=0.7,
        ge=0.0,
        le=1.0,
        description="论断无置信度且无证据时的默认值",
    )
    claim_confidence_from_evidence: bool = Field(
        default=True,
        description="论断无显式置信度时，是否取第一条证据的 relevanceScore",
    )
    related_claims_fallback: int = Field(
        default=2,
        ge=0,
        description="约束未给出关联论断时，按位置取前 N 个论断 id",
    )

    # ── 重试与超时 ──
    rate_limit_retries: int = Field(
        default=0, ge=0, description="遇到限流时的重试次数（0 表示不重试）"
    )
    retry_base_delay: float = Field(
        default=2.0, ge=0.0, description="重试的指数退避基数（秒）"
    )
    deadline_seconds: float | None = Field(
        default=None,
        gt=0,
        description="整个推理调用的截止时间；None 表示不限制",
    )


def load_config(path: str | Path | None = None) -> AnalysisConfig:
    """从 YAML 文件加载配置，未给出的字段使用默认值。"""
    if path is None:
        return AnalysisConfig()
    data = yaml.safe_load(Path(path).read_text(encoding="utf-8")) or {}
    if not isinstance(data, dict):
        raise ValueError(f"配置文件顶层必须是映射: {path}")
    return AnalysisConfig.model_validate(data)
