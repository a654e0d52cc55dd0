"""OpenAI Chat Completions 流式 Transport。

本模块负责：

1. 携带 Bearer 凭据调用 {base_url}/chat/completions（stream=true）。
2. 把 SSE 流解析成增量文本并累加成完整回答。
3. 借助 tenacity 对限流（429）、非 2xx、空响应体、网络错误做指数退避重试；
   服务端给出 Retry-After 时本次等待以它为准。

用尽重试次数后抛出 DispatchFailed，交给 Dispatcher 做统一处理。
"""

import time
from email.utils import parsedate_to_datetime
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

import httpx
from tenacity import (
    RetryCallState,
    RetryError,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)
from tenacity.wait import wait_base

from assist_core.config.settings import settings
from assist_core.domain.credentials import CredentialStore
from assist_core.domain.exceptions import (
    ApiError,
    BusinessError,
    ConfigurationError,
    DispatchFailed,
    NetworkError,
    RateLimitError,
)
from assist_core.infrastructure.logging.logger import logger
from assist_core.providers.registry import OPENAI_CONFIG
from assist_core.providers.sse import SSEDecoder, StreamAccumulator


DeltaCallback = Callable[[str], None]


def parse_retry_after(value: Optional[str]) -> Optional[float]:
    """解析 Retry-After 头：支持秒数与 HTTP 日期两种格式，无法解析时返回 None。"""

    if not value:
        return None
    value = value.strip()
    try:
        seconds = float(value)
    except ValueError:
        try:
            when = parsedate_to_datetime(value)
        except (TypeError, ValueError):
            return None
        if when.tzinfo is None:
            when = when.replace(tzinfo=timezone.utc)
        seconds = (when - datetime.now(timezone.utc)).total_seconds()
    return max(0.0, seconds)


class wait_retry_after(wait_base):
    """429 带 Retry-After 时按服务端提示等待，否则交给 fallback 策略。"""

    def __init__(self, fallback: wait_base):
        self.fallback = fallback

    def __call__(self, retry_state: RetryCallState) -> float:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        if isinstance(error, RateLimitError):
            hint = error.extra.get("retry_after")
            if hint is not None:
                return float(hint)
        return self.fallback(retry_state)


class OpenAITransport:
    """流式 Chat Completions 客户端。

    - name: Provider 名称（供日志使用）。
    - send: 发送请求体，返回完整回答文本；on_delta 会收到每一段增量。
    """

    name = "openai"

    def __init__(
        self,
        credentials: CredentialStore,
        cfg=settings,
        sleeper: Callable[[float], None] = time.sleep,
    ):
        self._settings = cfg
        self._credentials = credentials
        self._sleep = sleeper

    def build_body(self, messages: list, model: Optional[str] = None) -> Dict[str, Any]:
        logical = model or getattr(self._settings, "default_model", "page-chat")
        model_cfg = OPENAI_CONFIG.resolve_model(logical)
        return {"model": model_cfg.provider_model, "messages": messages, "stream": True}

    def send(self, body: Dict[str, Any], on_delta: Optional[DeltaCallback] = None) -> str:
        api_key = self._credentials.get()
        if not api_key:
            raise ConfigurationError(code="MISSING_API_KEY", message="Missing API key")

        attempts = max(1, int(getattr(self._settings, "transport_max_attempts", 3)))
        backoff = float(getattr(self._settings, "transport_initial_backoff", 1.5))
        retrying = Retrying(
            stop=stop_after_attempt(attempts),
            wait=wait_retry_after(wait_exponential(multiplier=backoff, exp_base=2)),
            retry=retry_if_exception_type((RateLimitError, NetworkError, ApiError)),
            sleep=self._sleep,
            before_sleep=self._log_retry,
        )
        try:
            return retrying(self._attempt, body, api_key, on_delta)
        except RetryError as e:
            last_error: BusinessError = e.last_attempt.exception()
            logger.warning(
                "Upstream attempts exhausted",
                extra={"extra": {
                    "provider": self.name,
                    "attempts": attempts,
                    "code": last_error.code,
                    "error": last_error.message,
                }},
            )
            raise DispatchFailed(
                code="DISPATCH_FAILED",
                message=last_error.message,
                http_status=502,
                attempts=attempts,
                last_error=last_error,
            )

    def _log_retry(self, retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception()
        logger.warning(
            "Upstream attempt failed",
            extra={"extra": {
                "provider": self.name,
                "attempt": retry_state.attempt_number,
                "code": error.code,
                "error": error.message,
                "wait_seconds": retry_state.next_action.sleep,
            }},
        )

    def _attempt(self, body: Dict[str, Any], api_key: str, on_delta: Optional[DeltaCallback]) -> str:
        base = getattr(self._settings, "openai_base_url", None) or OPENAI_CONFIG.base_url
        accumulator = StreamAccumulator(on_delta)
        decoder = SSEDecoder()
        try:
            with httpx.Client(timeout=self._settings.http_timeout, trust_env=False) as client:
                with client.stream(
                    "POST",
                    f"{base}/chat/completions",
                    json=body,
                    headers={
                        "Authorization": f"Bearer {api_key}",
                        "Content-Type": "application/json",
                    },
                ) as resp:
                    if resp.status_code == 429:
                        raise RateLimitError(
                            code="RATE_LIMIT",
                            message="429 rate limit",
                            http_status=429,
                            retry_after=parse_retry_after(resp.headers.get("retry-after")),
                        )
                    if resp.status_code < 200 or resp.status_code >= 300 or resp.status_code == 204:
                        # 204 等没有响应体的情况同样按可重试错误处理
                        raise ApiError(
                            code="API_ERROR",
                            message=f"{resp.status_code} {resp.reason_phrase}".strip(),
                            http_status=resp.status_code,
                        )
                    for text in resp.iter_text():
                        for delta in decoder.feed(text):
                            accumulator.append(delta)
                        if decoder.done:
                            break
                    for delta in decoder.flush():
                        accumulator.append(delta)
        except httpx.RequestError as e:
            raise NetworkError(code="NETWORK_ERROR", message=str(e) or e.__class__.__name__)
        return accumulator.text
