"""模型基类。"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    """对外序列化使用 camelCase 别名，构造时两种写法都接受。"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict:
        """导出为 JSON 兼容的 camelCase 字典。"""
        return self.model_dump(mode="json", by_alias=True)
