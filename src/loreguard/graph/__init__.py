"""LangGraph 分析流程图。"""

from loreguard.graph.pipeline import AnalysisPipeline, build_analysis_graph

__all__ = ["AnalysisPipeline", "build_analysis_graph"]
