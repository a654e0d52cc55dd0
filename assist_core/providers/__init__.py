"""LLM Provider 集成层。

该包下的模块负责：
- 定义 Transport 抽象接口 (base)。
- 维护 Provider 与模型配置 (registry)。
- 流式响应解析 (sse) 与 OpenAI 实现 (openai_client)。
"""

from assist_core.config.settings import settings
from assist_core.domain.credentials import CredentialStore
from assist_core.providers.base import Transport
from assist_core.providers.openai_client import OpenAITransport


def create_transport(credentials: CredentialStore, cfg=None) -> Transport:
    """根据配置创建 Transport 实例。"""

    return OpenAITransport(credentials, cfg or settings)
