"""LLM Provider 集成层。

该包下的模块负责：
- 定义生成源 / 提炼源协议 (base)。
- 维护 Provider 与模型配置 (registry)。
- 提供 chat/completions 兼容端点的具体实现 (completions_client)。
"""

from typing import Optional

from listening_core.config.settings import settings
from listening_core.providers.base import DistillationSource, GenerationSource
from listening_core.providers.completions_client import CompletionsClient


def create_provider(name: Optional[str] = None) -> CompletionsClient:
    """根据名称创建 Provider 实例，默认取配置中的 provider。"""

    provider_name = (name or getattr(settings, "default_provider", "glm")).lower()
    if provider_name == "kimi":
        return CompletionsClient("kimi", settings)
    return CompletionsClient("glm", settings)


__all__ = ["CompletionsClient", "DistillationSource", "GenerationSource", "create_provider"]
