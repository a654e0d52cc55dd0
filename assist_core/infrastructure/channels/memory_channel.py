"""进程内通知通道。

前端壳（面板/弹窗）不在本项目范围内，这里提供一个最小的 Notifier 实现：
每个目标一个事件列表，可选注册监听函数用于实时渲染。
示例脚本和测试都通过它观察 Dispatcher 的输出。
"""

import threading
from typing import Callable, Dict, List, Optional

from assist_core.domain.events import OutboundEvent
from assist_core.domain.exceptions import DestinationUnavailable
from assist_core.domain.models import Destination


Listener = Callable[[OutboundEvent], None]


class InMemoryChannel:
    def __init__(self):
        self._lock = threading.Lock()
        self._events: Dict[Destination, List[OutboundEvent]] = {}
        self._listeners: Dict[Destination, Listener] = {}
        self._closed: set = set()

    def open(self, destination: Destination, listener: Optional[Listener] = None) -> None:
        with self._lock:
            self._closed.discard(destination)
            self._events.setdefault(destination, [])
            if listener is not None:
                self._listeners[destination] = listener

    def close(self, destination: Destination) -> None:
        with self._lock:
            self._closed.add(destination)
            self._listeners.pop(destination, None)

    def events(self, destination: Destination) -> List[OutboundEvent]:
        with self._lock:
            return list(self._events.get(destination, []))

    def notify(self, destination: Destination, event: OutboundEvent) -> None:
        with self._lock:
            if destination in self._closed or destination not in self._events:
                raise DestinationUnavailable(
                    code="DESTINATION_UNAVAILABLE",
                    message=f"destination {destination!r} is not open",
                    destination=destination,
                )
            self._events[destination].append(event)
            listener = self._listeners.get(destination)
        if listener is not None:
            listener(event)
