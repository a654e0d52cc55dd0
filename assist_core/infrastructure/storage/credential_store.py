import json
import os
import threading
from pathlib import Path
from typing import Optional

from assist_core.config.settings import settings
from assist_core.domain.exceptions import BusinessError, ValidationError


class SessionCredentialStore:
    """会话级 API 密钥存储。

    内存缓存优先，缓存未命中时从 <root>/session/credentials.json 读取。
    清除时同时删除内存与文件中的值。
    """

    def __init__(self, root: str | Path | None = None, initial_key: Optional[str] = None):
        self._root = Path(root or settings.storage_root).resolve()
        self._path = self._root / "session" / "credentials.json"
        self._lock = threading.Lock()
        self._cached: Optional[str] = None
        if initial_key:
            self.set(initial_key)

    @property
    def path(self) -> Path:
        return self._path

    def get(self) -> Optional[str]:
        with self._lock:
            if self._cached is None:
                self._cached = self._read()
            return self._cached

    def set(self, key: Optional[str]) -> bool:
        if key is not None and not isinstance(key, str):
            raise ValidationError(code="INVALID_API_KEY", message="api key must be a string")
        value = (key or "").strip() or None
        with self._lock:
            self._cached = value
            if value:
                self._write(value)
            else:
                self._remove()
        return value is not None

    def clear(self) -> None:
        self.set(None)

    def _read(self) -> Optional[str]:
        if not self._path.exists():
            return None
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise BusinessError(code="STORE_READ_ERROR", message=str(e))
        key = data.get("api_key") if isinstance(data, dict) else None
        return key or None

    def _write(self, key: str) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self._path.with_suffix(".tmp")
        tmp.unlink(missing_ok=True)
        # 密钥文件仅当前用户可读写
        fd = os.open(tmp, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(json.dumps({"api_key": key}))
        tmp.replace(self._path)

    def _remove(self) -> None:
        if self._path.exists():
            self._path.unlink()
