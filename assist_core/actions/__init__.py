"""动作指令提取（extractor）与请求失败时的兜底猜测。"""

from assist_core.actions.extractor import extract, fallback_action

__all__ = ["extract", "fallback_action"]
