from typing import Optional, Protocol


class CredentialStore(Protocol):
    def get(self) -> Optional[str]:
        ...

    def set(self, key: Optional[str]) -> bool:
        ...

    def clear(self) -> None:
        ...
