"""外部分析客户端、结果归一化与指标估计。"""

from loreguard.analysis.client import AnalysisOutcome, ExternalAnalysisClient, map_exception
from loreguard.analysis.metrics import estimate_metrics
from loreguard.analysis.normalizer import ResultNormalizer
from loreguard.analysis.utils import extract_json, extract_response_text, extract_text, strip_code_fence

__all__ = [
    "AnalysisOutcome",
    "ExternalAnalysisClient",
    "ResultNormalizer",
    "estimate_metrics",
    "extract_json",
    "extract_response_text",
    "extract_text",
    "map_exception",
    "strip_code_fence",
]
