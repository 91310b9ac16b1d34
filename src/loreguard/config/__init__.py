"""配置。"""

from loreguard.config.settings import AnalysisConfig, ModelConfig, load_config

__all__ = ["AnalysisConfig", "ModelConfig", "load_config"]
