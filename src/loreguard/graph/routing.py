"""条件路由逻辑。"""

from __future__ import annotations

from langgraph.graph import END

from loreguard.state.analysis_state import AnalysisState

# 所有合法的节点名称
VALID_ACTIONS = {
    "chunking",
    "embedding",
    "reasoning",
    "finalize",
    # 终止
    "end",
}


def route_by_next_action(state: AnalysisState) -> str:
    """根据 state['next_action'] 决定下一个节点；任务已结束时直接终止。"""
    job = state.get("job")
    if job is not None and job.is_terminal:
        return END

    action = state.get("next_action", "end")
    if action == "end":
        return END
    if action in VALID_ACTIONS:
        return action
    return END
