"""Provider 与模型配置。

本模块将“逻辑模型名”与“具体厂商模型名”解耦：

- 逻辑名（logical_name）：代码里使用的统一名称，"chat" 用于流式对话，
  "distill" 用于一次性的规则提炼（偏好更快更便宜的模型）。
- provider_model：厂商实际提供的模型 ID。
"""

from dataclasses import dataclass
from typing import Dict, Mapping


@dataclass
class ModelConfig:
    """单个逻辑模型的配置。"""

    logical_name: str
    provider_model: str
    max_tokens: int
    default_temperature: float


@dataclass
class ProviderConfig:
    """某个 Provider 的整体配置。"""

    name: str
    base_url: str
    models: Dict[str, ModelConfig]


GLM_CONFIG = ProviderConfig(
    name="glm",
    base_url="https://open.bigmodel.cn/api/paas/v4",
    models={
        "chat": ModelConfig(
            logical_name="chat",
            provider_model="glm-4.6",
            max_tokens=8192,
            default_temperature=0.7,
        ),
        "distill": ModelConfig(
            logical_name="distill",
            provider_model="glm-4.5-flash",
            max_tokens=1024,
            default_temperature=0.3,
        ),
    },
)

KIMI_CONFIG = ProviderConfig(
    name="kimi",
    base_url="https://api.moonshot.cn/v1",
    models={
        "chat": ModelConfig(
            logical_name="chat",
            provider_model="kimi-k2-turbo-preview",
            max_tokens=8192,
            default_temperature=0.7,
        ),
        "distill": ModelConfig(
            logical_name="distill",
            provider_model="moonshot-v1-8k",
            max_tokens=1024,
            default_temperature=0.3,
        ),
    },
)


PROVIDER_REGISTRY: Mapping[str, ProviderConfig] = {
    "glm": GLM_CONFIG,
    "kimi": KIMI_CONFIG,
}


def get_provider_config(name: str) -> ProviderConfig:
    """根据名称获取 ProviderConfig，名称不区分大小写。"""

    key = name.lower()
    for k, cfg in PROVIDER_REGISTRY.items():
        if k.lower() == key:
            return cfg
    raise KeyError(f"Unknown provider: {name!r}")
