"""任务快照：AnalysisJob 的只读可序列化视图，用于导出报告。"""

from __future__ import annotations

from datetime import datetime

from pydantic import ConfigDict, Field

from loreguard.models.analysis import AnalysisResult
from loreguard.models.base import WireModel
from loreguard.models.job import JobStatus, ProcessingLog, Track
from loreguard.models.metrics import Metrics


class JobSnapshot(WireModel):
    model_config = ConfigDict(frozen=True)

    id: str
    status: JobStatus
    progress: int = Field(ge=0, le=100)
    story_file_name: str = ""
    backstory_file_name: str = ""
    story_id: str
    track: Track = Track.A
    logs: list[ProcessingLog] = Field(default_factory=list)
    result: AnalysisResult | None = None
    metrics: Metrics | None = None
    start_time: datetime
    end_time: datetime | None = None
    error: str | None = None
