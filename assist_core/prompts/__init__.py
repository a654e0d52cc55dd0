"""系统提示词加载工具。

根据发起请求的页面 URL 选择提示词风格（aws / google / generic），
从本目录读取对应的 Markdown 文本，用于构造 role="system" 的首条消息。
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal
from urllib.parse import urlparse


PROMPTS_DIR = Path(__file__).resolve().parent

PromptMode = Literal["aws", "google", "generic"]


def detect_mode(url: str) -> PromptMode:
    try:
        host = (urlparse(url or "").hostname or "").lower()
    except ValueError:
        return "generic"
    if "console.aws.amazon.com" in host or host.endswith("amazonaws.cn"):
        return "aws"
    if "google." in host:
        return "google"
    return "generic"


@lru_cache(maxsize=None)
def load_system_prompt(mode: PromptMode) -> str:
    fname = PROMPTS_DIR / f"{mode}.md"
    return fname.read_text(encoding="utf-8").strip()


def build_system_prompt(url: str) -> str:
    """按页面 URL 返回系统提示词文本。"""

    return load_system_prompt(detect_mode(url))
