"""Data models used across the pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class FetchResult:
    """Outcome of one authority request: either a table or an error marker."""

    authority: str
    url: str
    headers: list[str] = field(default_factory=list)
    rows: list[dict[str, Any]] | None = None
    error_code: str | None = None
    error_message: str | None = None
    duration_ms: int | None = None

    @property
    def ok(self) -> bool:
        return self.rows is not None and self.error_code is None

    def summary(self) -> dict[str, Any]:
        return {
            "authority": self.authority,
            "ok": self.ok,
            "rows": len(self.rows) if self.rows is not None else 0,
            "error_code": self.error_code,
            "error_message": self.error_message,
            "duration_ms": self.duration_ms,
        }
