"""分析流程图定义与编排。

chunking -> embedding -> reasoning -> finalize

整条流程只有一个挂起点：reasoning 节点中对外部分析客户端的 await。
其余节点对任务的日志与进度写入都是同步完成的。
"""

from __future__ import annotations

import asyncio
import logging
import math
import random
from typing import Any, Callable

from langgraph.graph import END, START, StateGraph

from loreguard.analysis.client import AnalysisOutcome, ExternalAnalysisClient
from loreguard.analysis.metrics import estimate_metrics
from loreguard.analysis.normalizer import ResultNormalizer
from loreguard.config.settings import AnalysisConfig
from loreguard.errors import TransportError, UnknownError
from loreguard.graph.routing import route_by_next_action
from loreguard.models.job import DocumentInput, JobStatus, LogLevel, ProcessingLog, Track
from loreguard.state.analysis_state import AnalysisState
from loreguard.state.job import AnalysisJob

logger = logging.getLogger(__name__)

Node = Callable[[AnalysisState], Any]


# ────────────────────────────────────────────
# 阶段一：分块
# ────────────────────────────────────────────


def create_chunking_node(config: AnalysisConfig) -> Node:
    """统计故事词数并按 chunk_words 估算语义块数。"""

    async def chunking_node(state: AnalysisState) -> dict[str, Any]:
        job = state["job"]
        story = state.get("story_content", "")

        job.advance(JobStatus.CHUNKING, 5)
        job.append_log(LogLevel.INFO, JobStatus.CHUNKING, f"Loading story: {job.story_file_name or job.story_id}")

        word_count = len(story.split())
        job.append_log(LogLevel.INFO, JobStatus.CHUNKING, f"Story loaded: {word_count:,} words")

        chunk_count = max(1, math.ceil(word_count / config.chunk_words))
        job.append_log(LogLevel.INFO, JobStatus.CHUNKING, f"Splitting into {chunk_count} semantic chunks")
        job.append_log(LogLevel.SUCCESS, JobStatus.CHUNKING, "Chunking complete")
        job.advance(JobStatus.CHUNKING, 25)

        logger.debug("分块完成: %d 词, %d 块", word_count, chunk_count)
        return {
            "word_count": word_count,
            "chunk_count": chunk_count,
            "next_action": "embedding",
        }

    return chunking_node


# ────────────────────────────────────────────
# 阶段二：向量化
# ────────────────────────────────────────────


def create_embedding_node(config: AnalysisConfig) -> Node:
    """逐块推进进度（最多记录 max_logged_chunks 块）。"""

    async def embedding_node(state: AnalysisState) -> dict[str, Any]:
        job = state["job"]
        chunk_count = state.get("chunk_count", 1)

        job.advance(JobStatus.EMBEDDING, 25)
        job.append_log(LogLevel.INFO, JobStatus.EMBEDDING, "Initializing embedding model")
        job.append_log(LogLevel.INFO, JobStatus.EMBEDDING, f"Processing {chunk_count} chunks...")

        for i in range(min(chunk_count, config.max_logged_chunks)):
            job.advance(JobStatus.EMBEDDING, 25 + (i + 1) * 5)
            job.append_log(LogLevel.INFO, JobStatus.EMBEDDING, f"Embedded chunk {i + 1}/{chunk_count}")

        job.append_log(LogLevel.SUCCESS, JobStatus.EMBEDDING, "Embedding generation complete")
        return {"next_action": "reasoning"}

    return embedding_node


# ────────────────────────────────────────────
# 阶段三：推理（唯一的挂起点）
# ────────────────────────────────────────────


def create_reasoning_node(
    config: AnalysisConfig,
    client: ExternalAnalysisClient,
    normalizer: ResultNormalizer,
) -> Node:
    """调用外部分析客户端并归一化回复。

    客户端返回错误时任务进入 failed，之后不再写入任何阶段日志。
    """

    async def request_analysis(request) -> AnalysisOutcome:
        call = client.analyze(request)
        if config.deadline_seconds is None:
            return await call
        try:
            return await asyncio.wait_for(call, timeout=config.deadline_seconds)
        except asyncio.TimeoutError:
            return AnalysisOutcome.failure(
                TransportError(f"Inference call exceeded deadline of {config.deadline_seconds}s")
            )

    async def reasoning_node(state: AnalysisState) -> dict[str, Any]:
        job = state["job"]

        job.advance(JobStatus.REASONING, 55)
        job.append_log(LogLevel.INFO, JobStatus.REASONING, "Extracting backstory claims")

        story = state.get("story_content", "")
        request = client.build_request(
            story,
            state.get("backstory_content", ""),
            track=job.track,
            story_id=job.story_id,
        )
        if len(request.story_content) != len(story):
            job.append_log(
                LogLevel.WARNING,
                JobStatus.REASONING,
                f"Story truncated to {config.story_char_limit:,} characters for context limits",
            )
        job.append_log(
            LogLevel.INFO,
            JobStatus.REASONING,
            f"Submitting analysis request (track {job.track.value})",
        )

        try:
            outcome = await request_analysis(request)
        except Exception as e:
            logger.exception("推理阶段出现未预期异常")
            outcome = AnalysisOutcome.failure(UnknownError(str(e) or type(e).__name__))

        if not outcome.ok:
            job.fail(outcome.error)
            return {"raw_response": None, "next_action": "end"}

        job.append_log(LogLevel.INFO, JobStatus.REASONING, "Performing constraint analysis")
        job.advance(JobStatus.REASONING, 90)
        job.append_log(LogLevel.INFO, JobStatus.REASONING, "Generating final verdict")

        result = normalizer.normalize(
            outcome.raw_text,
            story_id=job.story_id,
            track=job.track,
            processing_time=job.elapsed_ms(),
        )
        if normalizer.is_fallback(result):
            job.append_log(
                LogLevel.WARNING,
                JobStatus.REASONING,
                "Model reply could not be parsed; returning low-confidence fallback result",
            )
        else:
            job.append_log(
                LogLevel.SUCCESS,
                JobStatus.REASONING,
                f"Evidence linking complete: {len(result.claims)} claims verified",
            )
        return {
            "raw_response": outcome.raw_text,
            "result": result,
            "next_action": "finalize",
        }

    return reasoning_node


# ────────────────────────────────────────────
# 收尾
# ────────────────────────────────────────────


def create_finalize_node(rng: random.Random | None = None) -> Node:
    """估计示意指标并挂载结果，任务进入 complete。"""

    async def finalize_node(state: AnalysisState) -> dict[str, Any]:
        job = state["job"]
        result = state.get("result")
        if result is None:
            job.fail(UnknownError("Reasoning finished without a result"))
            return {"next_action": "end"}
        job.attach_result(result, metrics=estimate_metrics(rng))
        return {"next_action": "end"}

    return finalize_node


# ────────────────────────────────────────────
# 图构建
# ────────────────────────────────────────────


def build_analysis_graph(
    config: AnalysisConfig,
    client: ExternalAnalysisClient,
    normalizer: ResultNormalizer,
    rng: random.Random | None = None,
) -> StateGraph:
    graph = StateGraph(AnalysisState)

    graph.add_node("chunking", create_chunking_node(config))
    graph.add_node("embedding", create_embedding_node(config))
    graph.add_node("reasoning", create_reasoning_node(config, client, normalizer))
    graph.add_node("finalize", create_finalize_node(rng))

    graph.add_edge(START, "chunking")
    for node in ("chunking", "embedding", "reasoning"):
        graph.add_conditional_edges(node, route_by_next_action)
    graph.add_edge("finalize", END)
    return graph


class AnalysisPipeline:
    """分析任务编排器：每次 run 创建并独占一个任务。"""

    def __init__(
        self,
        config: AnalysisConfig | None = None,
        client: ExternalAnalysisClient | None = None,
        normalizer: ResultNormalizer | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.config = config or AnalysisConfig()
        self.client = client or ExternalAnalysisClient(self.config)
        self.normalizer = normalizer or ResultNormalizer(self.config)
        self._graph = build_analysis_graph(self.config, self.client, self.normalizer, rng).compile()

    async def run(
        self,
        story: DocumentInput | str,
        backstory: DocumentInput | str,
        track: Track | str = Track.A,
        story_id: str | None = None,
        on_log: Callable[[ProcessingLog], None] | None = None,
    ) -> AnalysisJob:
        """执行一次完整分析，返回处于终态的任务。

        Raises:
            ValidationError: 任一文档为空（此时不会创建任务）。
        """
        story = _as_document(story)
        backstory = _as_document(backstory)

        job = AnalysisJob.start(story, backstory, track=track, story_id=story_id)
        if on_log is not None:
            for entry in job.logs:
                on_log(entry)
            job.subscribe(on_log)

        return await self.execute(job, story.content, backstory.content)

    async def execute(self, job: AnalysisJob, story_content: str, backstory_content: str) -> AnalysisJob:
        """驱动一个已创建的任务走完流程图。"""
        initial_state: AnalysisState = {
            "job": job,
            "story_content": story_content,
            "backstory_content": backstory_content,
            "next_action": "chunking",
        }
        try:
            await self._graph.ainvoke(initial_state)
        except Exception as e:
            logger.exception("任务 %s 执行中出现未预期异常", job.id)
            job.fail(UnknownError(str(e) or type(e).__name__))
        if not job.is_terminal:
            job.fail(UnknownError("Analysis ended without reaching a final state"))
        logger.info("任务 %s 结束: %s", job.id, job.status.value)
        return job


def _as_document(doc: DocumentInput | str) -> DocumentInput:
    if isinstance(doc, DocumentInput):
        return doc
    return DocumentInput(content=doc)
