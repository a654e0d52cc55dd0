"""分发请求与动作指令的数据模型。

本模块定义了 Dispatcher 各组件之间共享的标准数据结构：

- ChatTurn / DispatchRequest: 前端发来的一次提问（不可变）。
- QueuedTask: 排队等待准入的分发任务，带成本估算与回调。
- RateWindow / StatusSnapshot: 限流窗口状态及其只读投影。
- HighlightTarget / ActionDirective: 从回答中提取出的结构化动作。

外部元素定位器只消费 ActionDirective.to_payload() 的结果，
这里不做任何页面相关的校验。
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Literal, Mapping, Optional, Tuple, Union
from uuid import uuid4

from assist_core.domain.exceptions import ValidationError


Role = Literal["system", "user", "assistant"]
ROLES = ("system", "user", "assistant")

# 标签页 id（整数）或任意会话标识
Destination = Union[int, str]


@dataclass(frozen=True)
class ChatTurn:
    role: Role
    content: str

    def to_payload(self) -> Dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass(frozen=True)
class DispatchRequest:
    """一次完整的提问请求。

    - turns: 对话消息序列（不含系统提示词，系统提示词由 Dispatcher 拼接）。
    - context: 页面相关的自由格式提示信息，原样序列化后发给模型。
    - destination: 结果要通知到的前端会话/标签页。
    - source_url: 发起请求的页面 URL，仅用于选择系统提示词。
    """

    turns: Tuple[ChatTurn, ...]
    context: Mapping[str, Any]
    destination: Destination
    source_url: str = ""

    @classmethod
    def from_payload(
        cls,
        payload: Mapping[str, Any],
        destination: Destination,
        source_url: str = "",
    ) -> "DispatchRequest":
        """由 ASK_LLM 消息体构造请求，结构或角色不合法时抛出 ValidationError。"""

        if not isinstance(payload, Mapping):
            raise ValidationError(code="INVALID_PAYLOAD", message="payload must be an object")
        raw_turns = payload.get("messages") or []
        if not isinstance(raw_turns, list):
            raise ValidationError(code="INVALID_MESSAGES", message="messages must be a list")
        turns: List[ChatTurn] = []
        for idx, item in enumerate(raw_turns):
            if not isinstance(item, Mapping):
                raise ValidationError(code="INVALID_TURN", message=f"turn {idx} is not an object")
            role = item.get("role")
            if role not in ROLES:
                raise ValidationError(code="INVALID_TURN", message=f"turn {idx} has unknown role {role!r}")
            turns.append(ChatTurn(role=role, content=str(item.get("content") or "")))
        context = payload.get("context")
        if context is None:
            context = {}
        elif not isinstance(context, Mapping):
            context = {"value": context}
        return cls(turns=tuple(turns), context=dict(context), destination=destination, source_url=source_url or "")

    def last_user_text(self) -> str:
        for turn in reversed(self.turns):
            if turn.role == "user":
                return turn.content
        return ""


class DispatchState(str, Enum):
    """单个请求的生命周期状态。"""

    ESTIMATED = "estimated"
    QUEUED = "queued"
    IN_FLIGHT = "in_flight"
    COMPLETED = "completed"
    FAILED_WITH_FALLBACK = "failed_with_fallback"
    FAILED_NO_FALLBACK = "failed_no_fallback"


@dataclass
class QueuedTask:
    """准入队列中的一个任务。

    run 在任务被准入后由队列 worker 调用且只调用一次。
    """

    request: DispatchRequest
    cost: int
    run: Callable[[], None]
    id: str = field(default_factory=lambda: f"t-{uuid4().hex}")
    state: DispatchState = DispatchState.ESTIMATED


@dataclass(frozen=True)
class RateWindow:
    ends_at: float
    requests_remaining: int
    tokens_remaining: int


@dataclass(frozen=True)
class StatusSnapshot:
    queue_depth: int
    requests_remaining: int
    requests_max: int
    tokens_remaining: int
    tokens_max: int
    ms_until_reset: int

    def to_dict(self) -> Dict[str, int]:
        return {
            "queue_depth": self.queue_depth,
            "requests_remaining": self.requests_remaining,
            "requests_max": self.requests_max,
            "tokens_remaining": self.tokens_remaining,
            "tokens_max": self.tokens_max,
            "ms_until_reset": self.ms_until_reset,
        }


@dataclass(frozen=True)
class HighlightTarget:
    text: Optional[str] = None
    role: Optional[str] = None
    # 其他未识别字段原样透传给元素定位器
    extra: Mapping[str, Any] = field(default_factory=dict)

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = dict(self.extra)
        if self.text is not None:
            payload["text"] = self.text
        if self.role is not None:
            payload["role"] = self.role
        return payload


ActionKind = Literal["highlight"]


@dataclass(frozen=True)
class ActionDirective:
    """模型回答中嵌入的结构化指令，目前只有 highlight 一种。"""

    kind: ActionKind
    targets: Tuple[HighlightTarget, ...] = ()

    def to_payload(self) -> Dict[str, Any]:
        return {"action": self.kind, "targets": [t.to_payload() for t in self.targets]}
