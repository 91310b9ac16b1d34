"""任务状态机测试。"""

from __future__ import annotations

import pytest

from loreguard.errors import InvalidTransitionError, ValidationError
from loreguard.models.analysis import AnalysisResult, ConstraintAnalysis, ConstraintType
from loreguard.models.job import DocumentInput, JobStatus, LogLevel, ProcessingLog
from loreguard.state.job import AnalysisJob, derive_story_id
from loreguard.state.log_sequence import LogSequence


def _start(**kwargs) -> AnalysisJob:
    return AnalysisJob.start(
        DocumentInput(name="castle_of_otranto.txt", content="Once upon a time."),
        DocumentInput(name="backstory.txt", content="He trained swords."),
        **kwargs,
    )


def _result(label: int = 1) -> AnalysisResult:
    return AnalysisResult(
        id="r1",
        story_id="s1",
        consistency_label=label,
        overall_confidence=0.8,
        constraint_analysis=[
            ConstraintAnalysis(id=t.value, constraint_type=t) for t in ConstraintType
        ],
    )


def test_start_initializes_pending_job_with_init_log():
    job = _start()
    assert job.status is JobStatus.PENDING
    assert job.progress == 0
    assert len(job.logs) == 1
    assert job.logs[0].phase == "init"
    assert job.logs[0].level is LogLevel.SUCCESS
    assert job.start_time is not None
    assert job.end_time is None


@pytest.mark.parametrize(
    "story, backstory",
    [("", "He trained swords."), ("Once.", "   "), ("\n\t", "")],
)
def test_start_rejects_empty_documents(story, backstory):
    with pytest.raises(ValidationError):
        AnalysisJob.start(DocumentInput(content=story), DocumentInput(content=backstory))


def test_story_id_prefers_explicit_value_then_filename():
    assert _start(story_id="custom").story_id == "custom"
    assert _start().story_id == "castle_of_otranto"
    assert derive_story_id(None, "") == "story_1"
    assert derive_story_id("  ", "dir/novel.md") == "novel"


def test_advance_never_regresses_progress():
    job = _start()
    job.advance(JobStatus.CHUNKING, 25)
    job.advance(JobStatus.EMBEDDING, 10)
    assert job.status is JobStatus.EMBEDDING
    assert job.progress == 25
    job.advance(JobStatus.REASONING, 250)
    assert job.progress == 100


def test_advance_rejects_terminal_and_backward_phases():
    job = _start()
    with pytest.raises(InvalidTransitionError):
        job.advance(JobStatus.COMPLETE, 100)
    job.advance(JobStatus.EMBEDDING, 30)
    with pytest.raises(InvalidTransitionError):
        job.advance(JobStatus.CHUNKING, 40)


def test_fail_records_error_and_keeps_progress():
    job = _start()
    job.advance(JobStatus.REASONING, 55)
    job.fail("Rate limit exceeded")

    assert job.status is JobStatus.FAILED
    assert job.error == "Rate limit exceeded"
    assert job.progress == 55
    assert job.end_time is not None
    assert job.logs[-1].level is LogLevel.ERROR
    assert job.logs[-1].phase == "reasoning"


def test_failed_is_absorbing():
    job = _start()
    job.advance(JobStatus.CHUNKING, 10)
    job.fail("boom")
    log_count = len(job.logs)

    job.advance(JobStatus.EMBEDDING, 80)
    job.fail("second failure")
    job.append_log(LogLevel.INFO, JobStatus.EMBEDDING, "late log")
    job.attach_result(_result())

    assert job.status is JobStatus.FAILED
    assert job.error == "boom"
    assert job.progress == 10
    assert len(job.logs) == log_count
    assert job.result is None


def test_attach_result_completes_job():
    job = _start()
    job.advance(JobStatus.REASONING, 90)
    job.attach_result(_result(label=0))

    assert job.status is JobStatus.COMPLETE
    assert job.progress == 100
    assert job.result is not None
    assert job.result.consistency_label == 0
    assert job.logs[-1].phase == "complete"
    assert "INCONSISTENT" in job.logs[-1].message


def test_complete_is_absorbing():
    job = _start()
    job.advance(JobStatus.REASONING, 90)
    job.attach_result(_result())
    job.fail("too late")
    job.advance(JobStatus.REASONING, 95)

    assert job.status is JobStatus.COMPLETE
    assert job.error is None
    assert job.progress == 100


def test_attach_result_requires_reasoning_phase():
    job = _start()
    job.advance(JobStatus.EMBEDDING, 40)
    with pytest.raises(InvalidTransitionError):
        job.attach_result(_result())


def test_logs_are_exposed_read_only():
    job = _start()
    logs = job.logs
    assert isinstance(logs, tuple)
    job.append_log(LogLevel.INFO, JobStatus.PENDING, "second")
    assert len(logs) == 1
    assert [log.message for log in job.logs] == ["Analysis job initialized", "second"]


def test_log_sequence_preserves_order_and_notifies():
    seen: list[str] = []
    seq = LogSequence()
    seq.subscribe(lambda entry: seen.append(entry.message))
    for i in range(3):
        seq.append(ProcessingLog(phase="chunking", message=f"m{i}"))
    seq.append(ProcessingLog(phase="embedding", message="m3"))

    assert [e.message for e in seq] == ["m0", "m1", "m2", "m3"]
    assert seen == ["m0", "m1", "m2", "m3"]
    assert seq.phases() == ["chunking", "embedding"]
    assert seq.last.message == "m3"
    assert isinstance(seq[1:3], tuple)


def test_processing_log_is_frozen():
    entry = ProcessingLog(phase="init", message="hello")
    with pytest.raises(Exception):
        entry.message = "changed"


def test_snapshot_serializes_with_camel_case_aliases():
    job = _start(track="B")
    job.advance(JobStatus.REASONING, 60)
    job.attach_result(_result())
    wire = job.snapshot().to_wire()

    assert wire["status"] == "complete"
    assert wire["track"] == "B"
    assert wire["storyFileName"] == "castle_of_otranto.txt"
    assert wire["result"]["consistencyLabel"] == 1
    assert len(wire["result"]["constraintAnalysis"]) == 5
