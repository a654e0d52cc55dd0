"""Assist Core 顶层包。

浏览器页面助手的后台请求分发核心：限流预算、串行准入队列、
流式 Transport（带退避重试）、动作指令提取以及面向前端的消息接口。
"""

from assist_core.agents.dispatcher import Dispatcher
from assist_core.domain.models import ChatTurn, DispatchRequest

__all__ = ["ChatTurn", "Dispatcher", "DispatchRequest"]
