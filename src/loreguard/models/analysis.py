"""分析结果数据模型：论断、证据、约束分析。

字段在 Python 侧使用 snake_case，序列化时（by_alias=True）输出 camelCase，
与前端及导出格式保持一致。
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import Field, field_validator

from loreguard.models.base import WireModel
from loreguard.models.job import Track


class ClaimStatus(str, Enum):
    """论断核验状态。"""
    SUPPORTED = "supported"
    CONTRADICTED = "contradicted"
    UNVERIFIED = "unverified"


class ConstraintStatus(str, Enum):
    """约束检查状态。"""
    SATISFIED = "satisfied"
    VIOLATED = "violated"
    UNCERTAIN = "uncertain"


class ConstraintType(str, Enum):
    """五个固定的一致性维度，声明顺序即输出顺序。"""
    TEMPORAL = "temporal"  # 时间线
    SPATIAL = "spatial"  # 地点/场景
    CAUSAL = "causal"  # 因果
    CHARACTER = "character"  # 人物性格/动机
    FACTUAL = "factual"  # 世界观事实


class Evidence(WireModel):
    """叙事原文中的一段引文。"""

    id: str
    quote: str = Field(description="原文逐字摘录")
    chapter_ref: str = Field(default="", description="自由文本定位，如 'Chapter 3'")
    relevance_score: float = Field(default=0.5, ge=0.0, le=1.0)
    analysis_note: str | None = Field(default=None, description="该引文与论断的关系")


class Claim(WireModel):
    """从背景故事中抽取的一条待核验论断。"""

    id: str
    text: str
    status: ClaimStatus = ClaimStatus.UNVERIFIED
    confidence: float = Field(default=0.7, ge=0.0, le=1.0)
    evidence: list[Evidence] = Field(default_factory=list)


class ConstraintAnalysis(WireModel):
    """单个维度的约束分析。"""

    id: str
    constraint_type: ConstraintType
    description: str = ""
    status: ConstraintStatus = ConstraintStatus.UNCERTAIN
    related_claims: list[str] = Field(
        default_factory=list, description="关联论断 id（弱引用）"
    )


class AnalysisResult(WireModel):
    """一次分析的最终结构化结果。"""

    id: str
    story_id: str
    consistency_label: int = Field(ge=0, le=1, description="1=一致，0=矛盾")
    overall_confidence: float = Field(ge=0.0, le=1.0)
    rationale: str = Field(default="", description="一句话结论")
    explanation: str = Field(default="", description="详细说明")
    claims: list[Claim] = Field(default_factory=list)
    constraint_analysis: list[ConstraintAnalysis]
    processing_time: int = Field(default=0, ge=0, description="毫秒")
    timestamp: datetime = Field(default_factory=datetime.now)
    track: Track = Track.A

    @field_validator("constraint_analysis")
    @classmethod
    def _one_per_type(cls, value: list[ConstraintAnalysis]) -> list[ConstraintAnalysis]:
        types = [c.constraint_type for c in value]
        if types != list(ConstraintType):
            raise ValueError(
                "constraint_analysis 必须按固定顺序包含每个约束类型各一项: "
                + ", ".join(t.value for t in ConstraintType)
            )
        return value

    @property
    def is_consistent(self) -> bool:
        return self.consistency_label == 1
