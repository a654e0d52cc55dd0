"""对外消息接口模块。

前端壳通过 MessageRouter.handle(message, sender) 与后台交互，
消息格式与浏览器扩展的 runtime message 一致：{"kind": ..., ...}。
"""

from dataclasses import dataclass
from typing import Any, Mapping, Optional

from assist_core.agents.dispatcher import Dispatcher
from assist_core.config.settings import settings
from assist_core.domain.credentials import CredentialStore
from assist_core.domain.exceptions import BusinessError
from assist_core.domain.models import Destination, DispatchRequest
from assist_core.infrastructure.channels.memory_channel import InMemoryChannel
from assist_core.infrastructure.logging.logger import logger
from assist_core.infrastructure.storage.credential_store import SessionCredentialStore
from assist_core.providers import create_transport
from assist_core.scheduling import AdmissionQueue, RateBudget


@dataclass(frozen=True)
class Sender:
    """消息发送方：所在标签页 id 与页面 URL。"""

    tab_id: Optional[Destination] = None
    url: str = ""


class MessageRouter:
    def __init__(self, dispatcher: Dispatcher, credentials: CredentialStore):
        self._dispatcher = dispatcher
        self._credentials = credentials

    def handle(self, message: Mapping[str, Any], sender: Sender) -> Any:
        """处理一条前端消息并返回应答。

        Returns:
            SET_API_KEY / HAS_API_KEY / CLEAR_API_KEY: 当前是否持有密钥。
            GET_STATUS: 队列与限流窗口状态字典。
            ASK_LLM: 请求是否已被接受（结果通过通知通道异步送达）。
            未知或格式错误的消息: None。
        """
        if not isinstance(message, Mapping):
            logger.info("Ignored malformed message", extra={"extra": {"type": type(message).__name__}})
            return None
        kind = message.get("kind")
        try:
            if kind == "SET_API_KEY":
                return self._credentials.set(message.get("key"))
            if kind == "HAS_API_KEY":
                return self._credentials.get() is not None
            if kind == "CLEAR_API_KEY":
                self._credentials.clear()
                return False
            if kind == "GET_STATUS":
                return self._dispatcher.status().to_dict()
            if kind == "ASK_LLM":
                return self._ask(message, sender)
        except BusinessError as e:
            logger.error(f"Message handling failed: {e.message}", extra={"extra": {
                "kind": kind,
                "code": e.code,
                "error": e.message,
            }})
            return False
        logger.info("Ignored unknown message", extra={"extra": {"kind": kind}})
        return None

    def _ask(self, message: Mapping[str, Any], sender: Sender) -> bool:
        if sender.tab_id is None:
            return False
        request = DispatchRequest.from_payload(
            message.get("payload") or {},
            destination=sender.tab_id,
            source_url=sender.url,
        )
        self._dispatcher.dispatch(request)
        return True


_router: Optional[MessageRouter] = None
_channel: Optional[InMemoryChannel] = None
_queue: Optional[AdmissionQueue] = None


def build_router(channel: InMemoryChannel, cfg=settings, credentials: Optional[CredentialStore] = None):
    """按配置组装 RateBudget / AdmissionQueue / Transport / Dispatcher。

    返回 (router, queue)；queue 尚未启动，由调用方决定 start() 还是 drain()。
    """
    credentials = credentials or SessionCredentialStore(cfg.storage_root, initial_key=cfg.openai_api_key)
    budget = RateBudget(
        max_requests=cfg.rate_max_requests,
        max_tokens=cfg.rate_max_tokens,
        window_seconds=cfg.rate_window_seconds,
    )
    queue = AdmissionQueue(
        budget,
        min_interval=cfg.min_request_interval,
        safety_margin=cfg.rate_safety_margin,
    )
    dispatcher = Dispatcher(create_transport(credentials, cfg), queue, channel, credentials, cfg)
    return MessageRouter(dispatcher, credentials), queue


def get_default_router() -> MessageRouter:
    """获取默认的 MessageRouter 实例（单例），后台队列线程随之启动。"""
    global _router, _channel, _queue
    if _router is None:
        _channel = InMemoryChannel()
        _router, _queue = build_router(_channel)
        _queue.start()
    return _router


def get_default_channel() -> InMemoryChannel:
    get_default_router()
    return _channel
