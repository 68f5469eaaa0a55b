from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from tagrelay.core.errors import RelayError
from tagrelay.core.logging import one_line


@dataclass(frozen=True)
class StepResult:
    ok: bool
    value: Any = None
    skipped: bool = False
    error_code: Optional[str] = None     # short code, safe to log and compare
    error_detail: Optional[str] = None   # one-line detail, log only

    @classmethod
    def success(cls, value: Any = None) -> "StepResult":
        return cls(ok=True, value=value)

    @classmethod
    def skip(cls, reason: str) -> "StepResult":
        return cls(ok=True, skipped=True, error_code=reason)

    @classmethod
    def failure(cls, exc: BaseException) -> "StepResult":
        code = exc.code if isinstance(exc, RelayError) else f"unexpected:{type(exc).__name__}"
        return cls(ok=False, error_code=code, error_detail=one_line(str(exc)))
