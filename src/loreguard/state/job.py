"""分析任务状态机。

pending -> chunking -> embedding -> reasoning -> {complete | failed}

- complete / failed 为吸收态：进入后 advance / fail / append_log 均为空操作
- progress 只增不减，范围 [0, 100]
- 日志序列只追加，由任务独占
"""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import PurePath

from loreguard.errors import InvalidTransitionError, ValidationError
from loreguard.models.analysis import AnalysisResult
from loreguard.models.job import (
    WORKING_PHASES,
    DocumentInput,
    JobStatus,
    LogLevel,
    ProcessingLog,
    Track,
    generate_id,
)
from loreguard.models.metrics import Metrics
from loreguard.models.snapshot import JobSnapshot
from loreguard.state.log_sequence import LogListener, LogSequence

logger = logging.getLogger(__name__)

DEFAULT_STORY_ID = "story_1"


def derive_story_id(story_id: str | None, story_file_name: str) -> str:
    """调用方给出的 id 优先，否则取故事文件名（去扩展名）。"""
    if story_id and story_id.strip():
        return story_id.strip()
    stem = PurePath(story_file_name).stem if story_file_name else ""
    return stem or DEFAULT_STORY_ID


class AnalysisJob:
    """一次分析运行的全部状态，由单一写者驱动。"""

    def __init__(
        self,
        story_file_name: str,
        backstory_file_name: str,
        story_id: str,
        track: Track = Track.A,
        job_id: str | None = None,
    ) -> None:
        self.id = job_id or generate_id()
        self.story_file_name = story_file_name
        self.backstory_file_name = backstory_file_name
        self.story_id = story_id
        self.track = Track(track)
        self._status = JobStatus.PENDING
        self._progress = 0
        self._logs = LogSequence()
        self._result: AnalysisResult | None = None
        self._metrics: Metrics | None = None
        self._error: str | None = None
        self.start_time = datetime.now()
        self.end_time: datetime | None = None

    @classmethod
    def start(
        cls,
        story: DocumentInput,
        backstory: DocumentInput,
        track: Track | str = Track.A,
        story_id: str | None = None,
    ) -> AnalysisJob:
        """校验输入并创建 pending 任务。

        Raises:
            ValidationError: 任一文档内容为空（此时不创建任何任务）。
        """
        missing = [
            label
            for label, doc in (("story", story), ("backstory", backstory))
            if doc.is_empty
        ]
        if missing:
            raise ValidationError(
                "Both story and backstory content are required "
                f"(empty: {', '.join(missing)})"
            )

        job = cls(
            story_file_name=story.name,
            backstory_file_name=backstory.name,
            story_id=derive_story_id(story_id, story.name),
            track=Track(track),
        )
        job._logs.append(
            ProcessingLog(
                level=LogLevel.SUCCESS, phase="init", message="Analysis job initialized"
            )
        )
        logger.debug("任务 %s 已创建 (story_id=%s, track=%s)", job.id, job.story_id, job.track.value)
        return job

    # ------------------------------------------------------------------
    # 只读视图
    # ------------------------------------------------------------------

    @property
    def status(self) -> JobStatus:
        return self._status

    @property
    def progress(self) -> int:
        return self._progress

    @property
    def logs(self) -> tuple[ProcessingLog, ...]:
        return self._logs.entries

    @property
    def result(self) -> AnalysisResult | None:
        return self._result

    @property
    def metrics(self) -> Metrics | None:
        return self._metrics

    @property
    def error(self) -> str | None:
        return self._error

    @property
    def is_terminal(self) -> bool:
        return self._status.is_terminal

    def subscribe(self, listener: LogListener) -> None:
        """订阅新日志（进度渲染由外部负责）。"""
        self._logs.subscribe(listener)

    def elapsed_ms(self, now: datetime | None = None) -> int:
        end = now or self.end_time or datetime.now()
        return max(0, int((end - self.start_time).total_seconds() * 1000))

    # ------------------------------------------------------------------
    # 状态迁移
    # ------------------------------------------------------------------

    def advance(self, phase: JobStatus | str, progress: int) -> None:
        """进入工作阶段并更新进度，进度不会回退。"""
        if self.is_terminal:
            logger.debug("任务 %s 已处于终态 %s，忽略 advance(%s)", self.id, self._status.value, phase)
            return
        phase = JobStatus(phase)
        if phase not in WORKING_PHASES:
            raise InvalidTransitionError(
                f"advance() 只接受工作阶段 {[p.value for p in WORKING_PHASES]}，收到 {phase.value}"
            )
        if self._status in WORKING_PHASES and WORKING_PHASES.index(phase) < WORKING_PHASES.index(
            self._status
        ):
            raise InvalidTransitionError(
                f"阶段不能回退: {self._status.value} -> {phase.value}"
            )
        self._status = phase
        self._progress = min(100, max(self._progress, int(progress)))

    def append_log(self, level: LogLevel | str, phase: JobStatus | str, message: str) -> ProcessingLog | None:
        """追加一条日志；终态后不再接受写入。"""
        if self.is_terminal:
            logger.debug("任务 %s 已结束，丢弃日志: %s", self.id, message)
            return None
        return self._logs.append(
            ProcessingLog(level=LogLevel(level), phase=_phase_tag(phase), message=message)
        )

    def fail(self, error: str | BaseException) -> None:
        """进入 failed：记录原始错误信息，进度保持不变。"""
        if self.is_terminal:
            return
        message = str(error) or type(error).__name__
        phase = _phase_tag(self._status)
        self._logs.append(ProcessingLog(level=LogLevel.ERROR, phase=phase, message=message))
        self._error = message
        self._status = JobStatus.FAILED
        self.end_time = datetime.now()
        logger.error("任务 %s 在 %s 阶段失败: %s", self.id, phase, message)

    def attach_result(self, result: AnalysisResult, metrics: Metrics | None = None) -> None:
        """挂载归一化结果并进入 complete，仅允许在 reasoning 阶段调用。"""
        if self.is_terminal:
            return
        if self._status is not JobStatus.REASONING:
            raise InvalidTransitionError(
                f"attach_result() 只能在 reasoning 阶段调用，当前为 {self._status.value}"
            )
        verdict = "CONSISTENT" if result.is_consistent else "INCONSISTENT"
        self._logs.append(
            ProcessingLog(
                level=LogLevel.SUCCESS,
                phase=JobStatus.COMPLETE.value,
                message=f"Analysis complete: {verdict}",
            )
        )
        self._result = result
        self._metrics = metrics
        self._progress = 100
        self._status = JobStatus.COMPLETE
        self.end_time = datetime.now()
        logger.info(
            "任务 %s 完成: label=%d, confidence=%.2f",
            self.id,
            result.consistency_label,
            result.overall_confidence,
        )

    # ------------------------------------------------------------------
    # 导出
    # ------------------------------------------------------------------

    def snapshot(self) -> JobSnapshot:
        return JobSnapshot(
            id=self.id,
            status=self._status,
            progress=self._progress,
            story_file_name=self.story_file_name,
            backstory_file_name=self.backstory_file_name,
            story_id=self.story_id,
            track=self.track,
            logs=list(self._logs.entries),
            result=self._result,
            metrics=self._metrics,
            start_time=self.start_time,
            end_time=self.end_time,
            error=self._error,
        )

    def __repr__(self) -> str:
        return (
            f"AnalysisJob(id={self.id!r}, status={self._status.value!r}, "
            f"progress={self._progress}, logs={len(self._logs)})"
        )


def _phase_tag(phase: JobStatus | str) -> str:
    return phase.value if isinstance(phase, JobStatus) else str(phase)
