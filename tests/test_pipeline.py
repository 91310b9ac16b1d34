"""分析流程端到端测试（假模型，不访问网络）。"""

from __future__ import annotations

import asyncio
import random

import pytest

from loreguard.analysis.client import ExternalAnalysisClient
from loreguard.analysis.normalizer import ResultNormalizer
from loreguard.config.settings import AnalysisConfig
from loreguard.errors import ValidationError
from loreguard.graph.pipeline import AnalysisPipeline
from loreguard.models.analysis import ConstraintStatus, ConstraintType
from loreguard.models.job import DocumentInput, JobStatus, LogLevel, Track
from loreguard.state.job import AnalysisJob

from conftest import RecordingChatModel, http_status_error

STORY = DocumentInput(name="otranto.txt", content="word " * 3000)
BACKSTORY = DocumentInput(name="backstory.txt", content="He trained swords.")


def _pipeline(config: AnalysisConfig, *outcomes) -> tuple[AnalysisPipeline, RecordingChatModel]:
    model = RecordingChatModel(outcomes=list(outcomes))
    client = ExternalAnalysisClient(config, model=model)
    return AnalysisPipeline(config, client=client, rng=random.Random(7)), model


def _phase_order(job: AnalysisJob) -> list[str]:
    order: list[str] = []
    for entry in job.logs:
        if not order or order[-1] != entry.phase:
            order.append(entry.phase)
    return order


def test_successful_run_reaches_complete(config, well_formed_reply):
    pipeline, model = _pipeline(config, well_formed_reply)
    job = asyncio.run(pipeline.run(STORY, BACKSTORY))

    assert job.status is JobStatus.COMPLETE
    assert job.progress == 100
    assert job.error is None
    assert model.calls == 1
    assert _phase_order(job) == ["init", "chunking", "embedding", "reasoning", "complete"]

    assert job.result is not None
    assert job.result.consistency_label == 1
    assert job.result.story_id == "otranto"
    assert [c.constraint_type for c in job.result.constraint_analysis] == list(ConstraintType)
    assert job.metrics is not None
    assert 0.0 <= job.metrics.accuracy <= 1.0


def test_progress_is_monotonic_and_logs_stream_in_order(config, well_formed_reply):
    pipeline, _ = _pipeline(config, well_formed_reply)
    job = AnalysisJob.start(STORY, BACKSTORY)
    observed: list[tuple[int, str]] = []
    job.subscribe(lambda entry: observed.append((job.progress, entry.message)))

    asyncio.run(pipeline.execute(job, STORY.content, BACKSTORY.content))

    progresses = [p for p, _ in observed]
    assert progresses == sorted(progresses)
    messages = [m for _, m in observed]
    assert messages[0] == "Loading story: otranto.txt"
    assert "Story loaded: 3,000 words" in messages
    assert "Splitting into 2 semantic chunks" in messages
    assert "Embedded chunk 2/2" in messages
    assert messages[-1] == "Analysis complete: CONSISTENT"
    assert [m for m in messages] == [e.message for e in job.logs[1:]]


def test_on_log_receives_every_entry(config, well_formed_reply):
    pipeline, _ = _pipeline(config, well_formed_reply)
    received = []
    job = asyncio.run(pipeline.run(STORY, BACKSTORY, on_log=received.append))

    assert received == list(job.logs)
    assert received[0].message == "Analysis job initialized"


def test_embedding_logs_at_most_five_chunks(config, well_formed_reply):
    pipeline, _ = _pipeline(config, well_formed_reply)
    story = DocumentInput(name="long.txt", content="word " * 20_000)
    job = asyncio.run(pipeline.run(story, BACKSTORY))

    embedded = [e.message for e in job.logs if e.message.startswith("Embedded chunk")]
    assert embedded == [f"Embedded chunk {i}/10" for i in range(1, 6)]


def test_rate_limited_run_fails_with_error_last(config):
    pipeline, _ = _pipeline(config, http_status_error(429))
    job = asyncio.run(pipeline.run(STORY, BACKSTORY))

    assert job.status is JobStatus.FAILED
    assert job.error == "Rate limit exceeded. Please try again in a moment."
    assert job.result is None
    assert job.progress == 55
    assert job.logs[-1].level is LogLevel.ERROR
    assert job.logs[-1].phase == "reasoning"
    assert job.end_time is not None
    assert all(e.phase != "complete" for e in job.logs)


def test_unparseable_reply_completes_with_fallback(config):
    raw = "The backstory seems fine, I think."
    pipeline, _ = _pipeline(config, raw)
    job = asyncio.run(pipeline.run(STORY, BACKSTORY))

    assert job.status is JobStatus.COMPLETE
    result = job.result
    assert result.consistency_label == 0
    assert result.overall_confidence == 0.5
    assert result.claims == []
    assert result.explanation == raw
    assert all(c.status is ConstraintStatus.UNCERTAIN for c in result.constraint_analysis)
    assert any(e.level is LogLevel.WARNING for e in job.logs)


def test_truncated_story_logs_warning(config, well_formed_reply):
    config.story_char_limit = 100
    pipeline, model = _pipeline(config, well_formed_reply)
    job = asyncio.run(pipeline.run(STORY, BACKSTORY))

    assert job.status is JobStatus.COMPLETE
    assert any(e.message.startswith("Story truncated") for e in job.logs)
    user_prompt = model.last_messages[1].content
    assert "[...truncated for context limits...]" in user_prompt


def test_track_and_story_id_are_passed_through(config, well_formed_reply):
    pipeline, model = _pipeline(config, well_formed_reply)
    job = asyncio.run(pipeline.run("plain story text", "plain backstory", track="B", story_id="s42"))

    assert job.track is Track.B
    assert job.story_id == "s42"
    assert job.result.track is Track.B
    assert job.result.story_id == "s42"
    assert "s42" in model.last_messages[1].content


def test_empty_document_is_rejected_before_any_call(config, well_formed_reply):
    pipeline, model = _pipeline(config, well_formed_reply)
    with pytest.raises(ValidationError):
        asyncio.run(pipeline.run(STORY, DocumentInput(name="empty.txt", content="  ")))
    assert model.calls == 0


def test_deadline_fails_slow_call(config, well_formed_reply):
    config.deadline_seconds = 0.05
    model = RecordingChatModel(outcomes=[well_formed_reply], delay=1.0)
    pipeline = AnalysisPipeline(config, client=ExternalAnalysisClient(config, model=model))
    job = asyncio.run(pipeline.run(STORY, BACKSTORY))

    assert job.status is JobStatus.FAILED
    assert "deadline" in job.error
    assert job.logs[-1].level is LogLevel.ERROR


def test_concurrent_runs_keep_separate_jobs(config, well_formed_reply):
    pipeline, _ = _pipeline(config, well_formed_reply)

    async def run_both():
        return await asyncio.gather(
            pipeline.run(STORY, BACKSTORY, story_id="first"),
            pipeline.run(STORY, BACKSTORY, story_id="second"),
        )

    first, second = asyncio.run(run_both())
    assert first.id != second.id
    assert first.result.story_id == "first"
    assert second.result.story_id == "second"
    assert not set(e.id for e in first.logs) & set(e.id for e in second.logs)


def test_deeply_nested_reply_completes_with_fallback(config):
    pipeline, _ = _pipeline(config, '{"a":' * 100_000 + "1" + "}" * 100_000)
    job = asyncio.run(pipeline.run(STORY, BACKSTORY))

    assert job.status is JobStatus.COMPLETE
    assert job.result.consistency_label == 0
    assert job.result.claims == []


class ExplodingNormalizer(ResultNormalizer):
    def normalize(self, raw, story_id, track=Track.A, processing_time=0):
        raise RuntimeError("normalizer exploded")


def test_unexpected_error_after_reply_fails_job(config, well_formed_reply):
    model = RecordingChatModel(outcomes=[well_formed_reply])
    pipeline = AnalysisPipeline(
        config,
        client=ExternalAnalysisClient(config, model=model),
        normalizer=ExplodingNormalizer(config),
    )
    job = asyncio.run(pipeline.run(STORY, BACKSTORY))

    assert model.calls == 1
    assert job.status is JobStatus.FAILED
    assert job.error == "normalizer exploded"
    assert job.result is None
    assert job.end_time is not None
    assert job.logs[-1].level is LogLevel.ERROR
    assert job.logs[-1].phase == "reasoning"


def test_unexpected_error_in_finalize_fails_job(config, well_formed_reply, monkeypatch):
    def broken_metrics(rng=None):
        raise RuntimeError("metrics unavailable")

    monkeypatch.setattr("loreguard.graph.pipeline.estimate_metrics", broken_metrics)
    pipeline, _ = _pipeline(config, well_formed_reply)
    job = asyncio.run(pipeline.run(STORY, BACKSTORY))

    assert job.status is JobStatus.FAILED
    assert job.error == "metrics unavailable"
