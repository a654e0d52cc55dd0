"""从模型回答中提取结构化动作指令。

模型被要求在需要定位页面元素时输出一个 JSON 块：

    {"action": "highlight", "targets": [{"text": "...", "role": "button"}]}

这里只做形状检查：解析失败、缺少可识别的 action 或 targets 不是列表时
返回 None，这是常态而不是错误。target 里的 text/role 原样透传给元素定位器。
"""

import json
import re
from typing import Any, List, Optional

from assist_core.domain.models import ActionDirective, HighlightTarget


# 第一个 "{" 到最后一个 "}"（贪婪匹配）
_BLOCK_RE = re.compile(r"\{[\s\S]*\}")
# 请求失败时的兜底：用户最后一句形如 "highlight <短语>"
_HIGHLIGHT_RE = re.compile(r"highlight\s+([\w\s\-/]+)$", re.IGNORECASE)

RECOGNIZED_ACTIONS = ("highlight",)
FALLBACK_ROLE = "button"


def extract(full_text: str) -> Optional[ActionDirective]:
    m = _BLOCK_RE.search(full_text or "")
    if not m:
        return None
    try:
        obj = json.loads(m.group(0))
    except json.JSONDecodeError:
        return None
    return parse_directive(obj)


def parse_directive(obj: Any) -> Optional[ActionDirective]:
    if not isinstance(obj, dict):
        return None
    kind = obj.get("action")
    if kind not in RECOGNIZED_ACTIONS:
        return None
    raw_targets = obj.get("targets")
    if not isinstance(raw_targets, list):
        return None
    targets: List[HighlightTarget] = []
    for item in raw_targets:
        if not isinstance(item, dict):
            continue
        extra = {k: v for k, v in item.items() if k not in ("text", "role")}
        targets.append(
            HighlightTarget(
                text=_optional_str(item.get("text")),
                role=_optional_str(item.get("role")),
                extra=extra,
            )
        )
    return ActionDirective(kind=kind, targets=tuple(targets))


def fallback_action(user_text: str) -> Optional[ActionDirective]:
    """网络失败时根据用户原话猜一个 highlight 动作，匹配不到返回 None。"""

    m = _HIGHLIGHT_RE.search((user_text or "").strip())
    if not m:
        return None
    phrase = m.group(1).strip()
    if not phrase:
        return None
    return ActionDirective(kind="highlight", targets=(HighlightTarget(text=phrase, role=FALLBACK_ROLE),))


def _optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    return value if isinstance(value, str) else str(value)
