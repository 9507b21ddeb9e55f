"""
Result Envelopes.

Every request submitted to the engine produces exactly one ResultEnvelope,
whatever happened along the way. Failures are data, not exceptions.

Design Principle:
    Envelopes are immutable once returned. ``meta.attempts`` records every
    route the engine considered, in order, so a failed request can be
    explained without re-running it.

Usage:
    envelope = await execute_task(TaskRequest("repo.view", {...}), context)

    if envelope.ok:
        print(envelope.data)
    else:
        print(f"{envelope.error.code}: {envelope.error.message}")

    json.dumps(envelope.to_dict())
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .errors import ErrorCode, is_retryable_code


class RouteSource(str, Enum):
    """Transport a capability can be executed over."""

    CLI = "cli"
    GRAPHQL = "graphql"
    REST = "rest"


class RouteReason(str, Enum):
    """Why the engine picked the route it reports in ``meta.route_used``."""

    CARD_PREFERRED = "CARD_PREFERRED"
    CARD_FALLBACK = "CARD_FALLBACK"
    SUITABILITY_RULE = "SUITABILITY_RULE"
    DEFAULT_POLICY = "DEFAULT_POLICY"
    CALLER_OVERRIDE = "CALLER_OVERRIDE"


class AttemptStatus(str, Enum):
    OK = "ok"
    ERROR = "error"
    SKIPPED = "skipped"


class BatchStatus(str, Enum):
    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class ResultError:
    """Normalised error carried by a failed envelope."""

    code: ErrorCode
    message: str
    retryable: bool = False
    details: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_code(
        cls,
        code: ErrorCode,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> ResultError:
        return cls(
            code=code,
            message=message,
            retryable=is_retryable_code(code),
            details=details or {},
        )

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "code": self.code.value,
            "message": self.message,
            "retryable": self.retryable,
        }
        if self.details:
            result["details"] = self.details
        return result


@dataclass(frozen=True, slots=True)
class AttemptRecord:
    """One route considered while executing a request."""

    route: RouteSource
    status: AttemptStatus
    error_code: ErrorCode | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"route": self.route.value, "status": self.status.value}
        if self.error_code is not None:
            result["error_code"] = self.error_code.value
        return result


@dataclass(frozen=True, slots=True)
class ResultMeta:
    capability_id: str
    route_used: RouteSource | None = None
    reason: str | None = None
    attempts: tuple[AttemptRecord, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "capability_id": self.capability_id,
            "route_used": self.route_used.value if self.route_used else None,
        }
        if self.reason is not None:
            result["reason"] = self.reason
        if self.attempts:
            result["attempts"] = [attempt.to_dict() for attempt in self.attempts]
        return result


@dataclass(frozen=True, slots=True)
class ResultEnvelope:
    """
    Uniform result of one capability request.

    Exactly one of ``data`` (when ok) or ``error`` (when not ok) is
    meaningful.
    """

    ok: bool
    meta: ResultMeta
    data: Any = None
    error: ResultError | None = None

    @classmethod
    def success(
        cls,
        data: Any,
        capability_id: str,
        route_used: RouteSource | None,
        *,
        reason: str | None = None,
        attempts: tuple[AttemptRecord, ...] = (),
    ) -> ResultEnvelope:
        return cls(
            ok=True,
            data=data,
            meta=ResultMeta(capability_id, route_used, reason, attempts),
        )

    @classmethod
    def failure(
        cls,
        code: ErrorCode,
        message: str,
        capability_id: str,
        route_used: RouteSource | None,
        *,
        reason: str | None = None,
        details: dict[str, Any] | None = None,
        attempts: tuple[AttemptRecord, ...] = (),
    ) -> ResultEnvelope:
        return cls(
            ok=False,
            error=ResultError.from_code(code, message, details),
            meta=ResultMeta(capability_id, route_used, reason, attempts),
        )

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"ok": self.ok}
        if self.ok:
            result["data"] = self.data
        else:
            result["error"] = self.error.to_dict() if self.error else None
        result["meta"] = self.meta.to_dict()
        return result


@dataclass(frozen=True, slots=True)
class BatchMeta:
    route_used: RouteSource
    total: int
    succeeded: int
    failed: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "route_used": self.route_used.value,
            "total": self.total,
            "succeeded": self.succeeded,
            "failed": self.failed,
        }


@dataclass(frozen=True, slots=True)
class BatchResultEnvelope:
    """Results of a multi-request batch, one envelope per request in input order."""

    status: BatchStatus
    results: tuple[ResultEnvelope, ...]
    meta: BatchMeta

    @classmethod
    def from_results(
        cls,
        results: list[ResultEnvelope] | tuple[ResultEnvelope, ...],
        route_used: RouteSource,
    ) -> BatchResultEnvelope:
        succeeded = sum(1 for result in results if result.ok)
        failed = len(results) - succeeded
        if results and failed == 0:
            status = BatchStatus.SUCCESS
        elif succeeded == 0:
            status = BatchStatus.FAILED
        else:
            status = BatchStatus.PARTIAL
        return cls(
            status=status,
            results=tuple(results),
            meta=BatchMeta(route_used, len(results), succeeded, failed),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "results": [result.to_dict() for result in self.results],
            "meta": self.meta.to_dict(),
        }
