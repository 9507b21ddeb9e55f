"""
Request and step types for the execution pipeline.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from collections.abc import Mapping
from typing import Any

from ..errors import CaprouteError, ErrorCode
from ..registry.schemas import OperationCard


@dataclass(frozen=True, slots=True)
class TaskRequest:
    """One capability invocation: capability id plus input parameters."""

    task: str
    input: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def coerce(cls, request: TaskRequest | Mapping[str, Any]) -> TaskRequest:
        """
        Accept a TaskRequest or a ``{"task": ..., "input": ...}`` mapping.

        Raises:
            CaprouteError: VALIDATION when the request or its input is not a mapping
        """
        if isinstance(request, TaskRequest):
            return request
        if not isinstance(request, Mapping):
            raise CaprouteError(
                f"Invalid request: expected a mapping, got {type(request).__name__}",
                code=ErrorCode.VALIDATION,
            )
        params = request.get("input") or {}
        if not isinstance(params, Mapping):
            raise CaprouteError(
                f"Invalid request: input must be a mapping, got {type(params).__name__}",
                code=ErrorCode.VALIDATION,
            )
        return cls(task=str(request.get("task", "")), input=dict(params))

    @staticmethod
    def task_name(request: Any) -> str:
        """Best-effort capability id of a possibly malformed request."""
        if isinstance(request, TaskRequest):
            return request.task
        if isinstance(request, Mapping):
            return str(request.get("task", ""))
        return ""


class StepRoute(str, Enum):
    """How a classified step will execute inside a batch."""

    CLI = "cli"
    GQL_QUERY = "gql-query"
    GQL_MUTATION = "gql-mutation"


@dataclass(frozen=True, slots=True)
class ClassifiedStep:
    """A request that passed preflight, with its card and batch position."""

    route: StepRoute
    card: OperationCard
    index: int
    request: TaskRequest

    @property
    def alias(self) -> str:
        return f"step{self.index}"
