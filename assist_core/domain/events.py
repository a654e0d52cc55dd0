from dataclasses import dataclass, field
from typing import Any, Dict, Literal, Protocol

from .models import ActionDirective, Destination


EventKind = Literal["LLM_DELTA", "LLM_DONE", "LLM_ACTION", "LLM_ERROR"]


@dataclass(frozen=True)
class OutboundEvent:
    """发往前端会话的一条通知。"""

    kind: EventKind
    payload: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def delta(cls, text: str) -> "OutboundEvent":
        return cls("LLM_DELTA", {"delta": text})

    @classmethod
    def done(cls, full_text: str) -> "OutboundEvent":
        return cls("LLM_DONE", {"fullText": full_text})

    @classmethod
    def action(cls, directive: ActionDirective) -> "OutboundEvent":
        return cls("LLM_ACTION", {"action": directive.to_payload()})

    @classmethod
    def error(cls, message: str) -> "OutboundEvent":
        return cls("LLM_ERROR", {"error": message})

    def to_message(self) -> Dict[str, Any]:
        return {"kind": self.kind, **self.payload}


class Notifier(Protocol):
    """前端通知通道。

    目标已不存在时实现方应抛出 DestinationUnavailable，Dispatcher 会丢弃该投递。
    """

    def notify(self, destination: Destination, event: OutboundEvent) -> None:
        ...
