"""请求分发核心模块。

负责一次提问的完整生命周期：估算成本、进入准入队列、调用 Transport、
提取动作指令，并把结果（或错误）通知到发起请求的前端会话。

状态流转：ESTIMATED -> QUEUED -> IN_FLIGHT ->
{COMPLETED | FAILED_WITH_FALLBACK | FAILED_NO_FALLBACK}。
"""

import json
import logging
import math
from functools import partial
from typing import Any, Dict, List, Optional

from assist_core.actions import extract, fallback_action
from assist_core.config.settings import settings
from assist_core.domain.credentials import CredentialStore
from assist_core.domain.events import Notifier, OutboundEvent
from assist_core.domain.exceptions import BusinessError, ConfigurationError, DestinationUnavailable
from assist_core.domain.models import (
    Destination,
    DispatchRequest,
    DispatchState,
    QueuedTask,
    StatusSnapshot,
)
from assist_core.infrastructure.logging.logger import logger
from assist_core.prompts import build_system_prompt
from assist_core.providers.base import Transport
from assist_core.scheduling.admission_queue import AdmissionQueue


def estimate_cost(request: DispatchRequest, chars_per_unit: int = 4, turn_overhead: int = 4) -> int:
    """按字符数粗略估算 token 成本：约 4 字符 1 个单位，另加每条消息的固定开销。"""

    chars = sum(len(turn.content) for turn in request.turns)
    chars += len(json.dumps(request.context, ensure_ascii=False, default=str))
    return math.ceil(chars / max(1, chars_per_unit)) + turn_overhead * len(request.turns)


class Dispatcher:
    def __init__(
        self,
        transport: Transport,
        queue: AdmissionQueue,
        notifier: Notifier,
        credentials: CredentialStore,
        cfg=settings,
    ):
        self._transport = transport
        self._queue = queue
        self._notifier = notifier
        self._credentials = credentials
        self._settings = cfg

    def dispatch(self, request: DispatchRequest) -> Optional[QueuedTask]:
        """接收一次提问并放入准入队列。

        没有凭据时立即通知 LLM_ERROR 并返回 None，不会重试。
        """

        log_ctx: Dict[str, Any] = {"destination": request.destination}
        if not self._credentials.get():
            self._log(logging.WARNING, "Rejected request without API key", log_ctx)
            self._deliver(request.destination, OutboundEvent.error("Missing API key"))
            return None

        cost = estimate_cost(
            request,
            chars_per_unit=getattr(self._settings, "cost_chars_per_unit", 4),
            turn_overhead=getattr(self._settings, "cost_turn_overhead", 4),
        )
        task = QueuedTask(request=request, cost=cost, run=lambda: None)
        task.run = partial(self._execute, task)
        self._queue.enqueue(task)
        return task

    def status(self) -> StatusSnapshot:
        budget = self._queue.budget
        window = budget.snapshot()
        return StatusSnapshot(
            queue_depth=self._queue.depth(),
            requests_remaining=window.requests_remaining,
            requests_max=budget.max_requests,
            tokens_remaining=window.tokens_remaining,
            tokens_max=budget.max_tokens,
            ms_until_reset=int(round(budget.seconds_until_reset() * 1000)),
        )

    def build_messages(self, request: DispatchRequest) -> List[Dict[str, str]]:
        """系统提示词 + 对话消息 + 序列化后的页面上下文。"""

        messages = [{"role": "system", "content": build_system_prompt(request.source_url)}]
        messages.extend(turn.to_payload() for turn in request.turns)
        messages.append(
            {
                "role": "system",
                "content": json.dumps({"context": request.context}, ensure_ascii=False, default=str),
            }
        )
        return messages

    def _execute(self, task: QueuedTask) -> None:
        request = task.request
        dest = request.destination
        log_ctx: Dict[str, Any] = {"task_id": task.id, "destination": dest}
        task.state = DispatchState.IN_FLIGHT

        on_delta = None
        if getattr(self._settings, "emit_deltas", True):
            on_delta = lambda delta: self._deliver(dest, OutboundEvent.delta(delta))

        try:
            body = self._transport.build_body(self.build_messages(request))
            full_text = self._transport.send(body, on_delta=on_delta)
        except ConfigurationError as e:
            # 凭据在排队期间被清除：照实报告，不做模拟动作
            self._deliver(dest, OutboundEvent.error(e.message))
            task.state = DispatchState.FAILED_NO_FALLBACK
            self._log(logging.WARNING, "Dispatch failed", log_ctx, code=e.code, error=e.message, state=task.state.value)
            return
        except BusinessError as e:
            self._fail(task, str(e.message), log_ctx, code=e.code)
            return
        except Exception as e:
            logger.exception("Unexpected dispatch failure", extra={"extra": log_ctx})
            self._fail(task, str(e) or e.__class__.__name__, log_ctx, code="UNEXPECTED")
            return

        self._deliver(dest, OutboundEvent.done(full_text))
        directive = extract(full_text)
        if directive is not None:
            self._deliver(dest, OutboundEvent.action(directive))
        task.state = DispatchState.COMPLETED
        self._log(
            logging.INFO,
            "Dispatch completed",
            log_ctx,
            chars=len(full_text),
            action=directive.kind if directive else None,
        )

    def _fail(self, task: QueuedTask, reason: str, log_ctx: Dict[str, Any], code: str) -> None:
        dest = task.request.destination
        guess = fallback_action(task.request.last_user_text())
        if guess is not None:
            self._deliver(dest, OutboundEvent.action(guess))
            self._deliver(dest, OutboundEvent.error(f"Network error, simulated action. ({reason})"))
            task.state = DispatchState.FAILED_WITH_FALLBACK
        else:
            self._deliver(dest, OutboundEvent.error(reason))
            task.state = DispatchState.FAILED_NO_FALLBACK
        self._log(logging.WARNING, "Dispatch failed", log_ctx, code=code, error=reason, state=task.state.value)

    def _deliver(self, destination: Destination, event: OutboundEvent) -> None:
        try:
            self._notifier.notify(destination, event)
        except DestinationUnavailable:
            # 前端会话已关闭：丢弃，不重试
            self._log(logging.INFO, "Dropped delivery", {"destination": destination}, kind=event.kind)

    @staticmethod
    def _log(level: int, message: str, log_ctx: Dict[str, Any], **fields: Any) -> None:
        payload = dict(log_ctx)
        payload.update(fields)
        logger.log(level, message, extra={"extra": payload})
