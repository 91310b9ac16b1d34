"""分析任务相关数据模型：状态、日志、输入与请求。"""

from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum

from pydantic import ConfigDict, Field

from loreguard.models.base import WireModel


def generate_id() -> str:
    """生成短 id。"""
    return uuid.uuid4().hex[:12]


class JobStatus(str, Enum):
    """任务阶段。complete / failed 为终态。"""
    PENDING = "pending"
    CHUNKING = "chunking"
    EMBEDDING = "embedding"
    REASONING = "reasoning"
    COMPLETE = "complete"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETE, JobStatus.FAILED)


# 工作阶段的推进顺序
WORKING_PHASES = (JobStatus.CHUNKING, JobStatus.EMBEDDING, JobStatus.REASONING)


class LogLevel(str, Enum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


class Track(str, Enum):
    """调用方选择的分析模式，原样透传给推理服务。"""
    A = "A"
    B = "B"


class ProcessingLog(WireModel):
    """一条处理日志，追加后不可变。"""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=generate_id)
    timestamp: datetime = Field(default_factory=datetime.now)
    level: LogLevel = LogLevel.INFO
    phase: str
    message: str


class DocumentInput(WireModel):
    """一份提交的文本文件。"""

    name: str = ""
    content: str = ""

    @property
    def is_empty(self) -> bool:
        return not self.content.strip()


class AnalysisRequest(WireModel):
    """发送给推理服务的请求体。"""

    story_content: str
    backstory_content: str
    track: Track = Track.A
    story_id: str
