"""示意性评估指标。

注意：并非基于真实标注计算，只是占位，等待后续接入评估框架。
"""

from __future__ import annotations

from pydantic import ConfigDict, Field

from loreguard.models.base import WireModel


class ConfusionMatrix(WireModel):
    model_config = ConfigDict(frozen=True)

    true_positive: int = Field(default=0, ge=0)
    true_negative: int = Field(default=0, ge=0)
    false_positive: int = Field(default=0, ge=0)
    false_negative: int = Field(default=0, ge=0)


class Metrics(WireModel):
    """每个完成的任务生成一次，之后不再修改。"""

    model_config = ConfigDict(frozen=True)

    accuracy: float = Field(ge=0.0, le=1.0)
    precision: float = Field(ge=0.0, le=1.0)
    recall: float = Field(ge=0.0, le=1.0)
    f1_score: float = Field(ge=0.0, le=1.0)
    confusion_matrix: ConfusionMatrix = Field(default_factory=ConfusionMatrix)
