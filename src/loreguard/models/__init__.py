"""Pydantic 数据模型。"""

from loreguard.models.analysis import (
    AnalysisResult,
    Claim,
    ClaimStatus,
    ConstraintAnalysis,
    ConstraintStatus,
    ConstraintType,
    Evidence,
)
from loreguard.models.job import (
    AnalysisRequest,
    DocumentInput,
    JobStatus,
    LogLevel,
    ProcessingLog,
    Track,
)
from loreguard.models.metrics import ConfusionMatrix, Metrics
from loreguard.models.snapshot import JobSnapshot

__all__ = [
    "AnalysisRequest",
    "AnalysisResult",
    "Claim",
    "ClaimStatus",
    "ConfusionMatrix",
    "ConstraintAnalysis",
    "ConstraintStatus",
    "ConstraintType",
    "DocumentInput",
    "Evidence",
    "JobSnapshot",
    "JobStatus",
    "LogLevel",
    "Metrics",
    "ProcessingLog",
    "Track",
]
