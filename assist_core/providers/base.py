"""Transport 抽象接口。

Dispatcher 不直接依赖具体厂商的 HTTP 细节，而是依赖此协议：

- send(body, on_delta): 发送一次流式请求，返回完整回答文本，
  每解析出一段增量就回调 on_delta；重试耗尽时抛出 DispatchFailed。
- build_body(messages): 按厂商格式组装请求体（模型名在这里解析）。
"""

from typing import Any, Callable, Dict, List, Optional, Protocol


class Transport(Protocol):
    name: str

    def build_body(self, messages: List[Dict[str, str]], model: Optional[str] = None) -> Dict[str, Any]:
        ...

    def send(self, body: Dict[str, Any], on_delta: Optional[Callable[[str], None]] = None) -> str:
        ...
