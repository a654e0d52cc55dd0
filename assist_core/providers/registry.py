"""Provider 与模型配置。

本模块将“逻辑模型名”与“具体厂商模型名”解耦：

- 逻辑名（logical_name）：在代码里使用的统一名称，例如 "page-chat"。
- provider_model：厂商实际提供的模型 ID，例如 "gpt-5"。

上层只关心逻辑名，具体用哪个底层模型由这里集中配置，便于后续升级。"""

from dataclasses import dataclass
from typing import Dict


@dataclass
class ModelConfig:
    """单个逻辑模型的配置。"""

    logical_name: str
    provider_model: str


@dataclass
class ProviderConfig:
    """Provider 的整体配置。"""

    name: str
    base_url: str
    models: Dict[str, ModelConfig]

    def resolve_model(self, logical_name: str) -> ModelConfig:
        try:
            return self.models[logical_name]
        except KeyError:
            raise KeyError(f"Unknown model for provider {self.name}: {logical_name!r}") from None


OPENAI_CONFIG = ProviderConfig(
    name="openai",
    base_url="https://api.openai.com/v1",
    models={
        "page-chat": ModelConfig(
            logical_name="page-chat",
            provider_model="gpt-5",
        )
    },
)
