"""任务状态机与日志序列。"""

from loreguard.state.analysis_state import AnalysisState
from loreguard.state.job import AnalysisJob, derive_story_id
from loreguard.state.log_sequence import LogSequence

__all__ = ["AnalysisJob", "AnalysisState", "LogSequence", "derive_story_id"]
