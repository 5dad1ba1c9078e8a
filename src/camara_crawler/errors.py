from dataclasses import dataclass
from typing import Any, Optional


class ConfigError(RuntimeError):
    pass


class FetchError(RuntimeError):
    retryable = False

    def __init__(self, message: str, url: str = "", status: Optional[int] = None):
        super().__init__(message)
        self.url = url
        self.status = status

    def __str__(self) -> str:
        base = super().__str__()
        parts = [base]
        if self.status is not None:
            parts.append(f"status={self.status}")
        if self.url:
            parts.append(f"url={self.url}")
        return " ".join(parts)


class TransientNetworkError(FetchError):
    retryable = True


class FatalFormatError(FetchError):
    retryable = False


@dataclass
class PersistenceConflictError(Exception):
    entity: str
    key: Any
    reason: str

    def __str__(self) -> str:
        return f"PersistenceConflictError(entity={self.entity}, key={self.key}, reason={self.reason})"


def is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, FetchError) and exc.retryable
