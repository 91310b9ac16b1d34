"""分析流程的错误分类。

封闭的错误集合：
- ValidationError: 缺少必需输入，任务尚未创建即失败
- AuthConfigError: 推理服务凭证缺失或被拒绝
- TransportError: 网络/服务故障
- RateLimitError: 限流（可重试）
- QuotaExhaustedError: 额度耗尽（不可重试）
- MalformedResponseError: 回复无法解析，仅在归一化器内部处理
- UnknownError: 兜底
"""

from __future__ import annotations


class AnalysisError(Exception):
    """所有分析错误的基类。"""

    retryable: bool = False

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__

    def __str__(self) -> str:
        return self.message


class ValidationError(AnalysisError):
    """故事或背景文本为空。"""


class AuthConfigError(AnalysisError):
    """推理服务凭证未配置，在发起任何网络调用前失败。"""


class TransportError(AnalysisError):
    """网络或推理服务故障。"""


class RateLimitError(AnalysisError):
    """推理服务限流（HTTP 429）。"""

    retryable = True


class QuotaExhaustedError(AnalysisError):
    """推理服务额度耗尽（HTTP 402）。"""


class MalformedResponseError(AnalysisError):
    """模型回复不符合预期 JSON 结构。"""


class UnknownError(AnalysisError):
    """无法归类的异常。"""


class InvalidTransitionError(ValueError):
    """非法的任务状态迁移（调用方编程错误）。"""


__all__ = [
    "AnalysisError",
    "AuthConfigError",
    "InvalidTransitionError",
    "MalformedResponseError",
    "QuotaExhaustedError",
    "RateLimitError",
    "TransportError",
    "UnknownError",
    "ValidationError",
]
