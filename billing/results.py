"""Structured outcomes for lifecycle mutations."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

from .exceptions import BillingError


@dataclass(frozen=True)
class ErrorDetail:
    kind: str
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind, "message": self.message}


@dataclass(frozen=True)
class OperationResult:
    """Outcome of a subscription mutation.

    Truthy on success so callers can keep writing ``if provider.cancel_subscription():``.
    """

    ok: bool
    error: Optional[ErrorDetail] = None

    def __bool__(self) -> bool:
        return self.ok

    @classmethod
    def success(cls) -> "OperationResult":
        return cls(ok=True)

    @classmethod
    def failure(cls, exc: Exception) -> "OperationResult":
        kind = exc.code if isinstance(exc, BillingError) else type(exc).__name__
        return cls(ok=False, error=ErrorDetail(kind=kind, message=str(exc)))
