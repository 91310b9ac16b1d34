"""loreguard：背景故事与长篇叙事的一致性审计。"""

__version__ = "0.1.0"
