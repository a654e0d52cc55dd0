"""配置管理模块。

支持从环境变量、.env 以及 config.yaml 加载配置，优先级依次降低。
"""

import os
import warnings
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _load_config_from_yaml() -> Dict[str, Any]:
    """从 config.yaml 加载配置（若存在）。"""
    candidates = []
    explicit = os.getenv("ASSIST_CONFIG_FILE")
    if explicit:
        candidates.append(Path(explicit).expanduser())
    candidates.extend([
        Path.cwd() / "config.yaml",
        Path(__file__).resolve().parents[2] / "config.yaml",
    ])

    seen: set[Path] = set()
    for path in candidates:
        if path in seen:
            continue
        seen.add(path)
        try:
            if path.exists():
                data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
                if isinstance(data, dict):
                    return data
                warnings.warn(f"Config file {path} is not a mapping, ignored")
        except (OSError, yaml.YAMLError) as exc:
            warnings.warn(f"Failed to read config file {path}: {exc}")
    return {}


class AssistSettings(BaseSettings):
    """配置设置（使用 Pydantic）。"""

    # ---- Provider ----
    openai_api_key: Optional[str] = Field(default=None, description="OpenAI API 密钥，作为会话凭据的初始值")
    openai_base_url: str = Field(
        default="https://api.openai.com/v1",
        description="Chat Completions 接口基础URL",
    )
    default_model: str = Field(
        default="page-chat",
        description="逻辑模型名，由 registry 映射为具体厂商模型",
    )
    http_timeout: float = Field(default=30.0, ge=1.0, description="HTTP 超时时间（秒）")

    # ---- 存储与日志 ----
    storage_root: str = Field(default=".storage", description="存储根目录（会话凭据）")
    log_dir: str = Field(default="logs", description="日志目录")
    log_redact_content: bool = Field(default=False, description="是否脱敏日志内容")

    # ---- 限流窗口 ----
    rate_window_seconds: float = Field(default=60.0, gt=0, description="限流窗口长度（秒）")
    rate_max_requests: int = Field(default=20, ge=1, description="每个窗口最大请求数")
    rate_max_tokens: int = Field(default=40000, ge=1, description="每个窗口最大估算 token 数")
    min_request_interval: float = Field(default=1.2, ge=0, description="相邻请求开始时间的最小间隔（秒）")
    rate_safety_margin: float = Field(default=0.25, ge=0, description="等待窗口重置时额外的安全余量（秒）")

    # ---- 重试 ----
    transport_max_attempts: int = Field(default=3, ge=1, le=10, description="单次请求最大尝试次数")
    transport_initial_backoff: float = Field(default=1.5, ge=0, description="初始退避时间（秒），每次失败后翻倍")

    # ---- 分发 ----
    emit_deltas: bool = Field(default=True, description="是否向前端逐段推送 LLM_DELTA")
    cost_chars_per_unit: int = Field(default=4, ge=1, description="估算成本时每个 token 对应的字符数")
    cost_turn_overhead: int = Field(default=4, ge=0, description="每条消息额外的固定成本")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @staticmethod
    def _config_source() -> Dict[str, Any]:
        return _load_config_from_yaml()

    @field_validator("openai_api_key")
    @classmethod
    def validate_api_key(cls, v: Optional[str]) -> Optional[str]:
        if v is not None:
            v = v.strip() or None
        if v and len(v) < 10:
            raise ValueError("API key seems too short")
        return v

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            cls._config_source,
            file_secret_settings,
        )


settings = AssistSettings()

# 类型别名，让外部代码可以使用 Settings 类型
Settings = AssistSettings
