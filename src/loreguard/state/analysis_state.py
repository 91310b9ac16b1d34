"""分析流程图的状态定义（LangGraph StateGraph 状态）。"""

from __future__ import annotations

from typing_extensions import TypedDict

from loreguard.models.analysis import AnalysisResult
from loreguard.state.job import AnalysisJob


class AnalysisState(TypedDict, total=False):
    """流程图的状态。

    job 作为显式上下文在节点间传递，不依赖任何全局“当前任务”。
    """

    # ── 任务上下文（由节点就地推进）──
    job: AnalysisJob

    # ── 输入 ──
    story_content: str
    backstory_content: str

    # ── 阶段产物 ──
    word_count: int
    chunk_count: int
    raw_response: str | None
    result: AnalysisResult | None

    # ── 控制流 ──
    next_action: str
