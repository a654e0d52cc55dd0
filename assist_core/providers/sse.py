"""Chat Completions 流式响应（server-sent events）解析。

事件之间以空行分隔，每行形如 `data: <json>`，`data: [DONE]` 表示流结束。
单个事件 JSON 损坏时跳过该事件，不中断整个流；流结束时残留的未终结事件
通过 flush() 取出。
"""

import json
from typing import Any, Callable, List, Optional


DONE_SENTINEL = "[DONE]"


def extract_delta(payload: Any) -> Optional[str]:
    """取出 choices[0].delta.content，结构不符时返回 None。"""

    if not isinstance(payload, dict):
        return None
    choices = payload.get("choices")
    if not isinstance(choices, list) or not choices:
        return None
    first = choices[0]
    if not isinstance(first, dict):
        return None
    delta = first.get("delta")
    if not isinstance(delta, dict):
        return None
    content = delta.get("content")
    return content if isinstance(content, str) else None


class SSEDecoder:
    """增量解析器：feed() 接收任意切分的文本块，返回本次完整事件里的增量文本。"""

    def __init__(self) -> None:
        self._buffer = ""
        self.done = False

    def feed(self, text: str) -> List[str]:
        if self.done:
            return []
        self._buffer = (self._buffer + text).replace("\r\n", "\n")
        deltas: List[str] = []
        while not self.done:
            idx = self._buffer.find("\n\n")
            if idx < 0:
                break
            chunk = self._buffer[:idx]
            self._buffer = self._buffer[idx + 2:]
            deltas.extend(self._parse_event(chunk))
        return deltas

    def flush(self) -> List[str]:
        if self.done or not self._buffer:
            self._buffer = ""
            return []
        chunk, self._buffer = self._buffer, ""
        return self._parse_event(chunk)

    def _parse_event(self, chunk: str) -> List[str]:
        out: List[str] = []
        for raw_line in chunk.split("\n"):
            line = raw_line.strip()
            if not line.startswith("data:"):
                continue
            data = line[5:].strip()
            if data == DONE_SENTINEL:
                self.done = True
                break
            try:
                payload = json.loads(data)
            except json.JSONDecodeError:
                continue
            token = extract_delta(payload)
            if token:
                out.append(token)
        return out


class StreamAccumulator:
    """单次请求的回答缓冲区，每追加一段非空增量就通知观察者。"""

    def __init__(self, on_delta: Optional[Callable[[str], None]] = None) -> None:
        self._parts: List[str] = []
        self._on_delta = on_delta

    def append(self, delta: str) -> None:
        if not delta:
            return
        self._parts.append(delta)
        if self._on_delta is not None:
            self._on_delta(delta)

    @property
    def text(self) -> str:
        return "".join(self._parts)
