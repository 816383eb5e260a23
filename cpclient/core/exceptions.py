# cpclient/core/exceptions.py
"""Client-level exceptions used across the modeling, protocol and session layers.

Every exception carries a machine friendly ``code`` and an optional context
dict so that sessions and the benchmark driver can log and serialize failures
uniformly.
"""
from __future__ import annotations

from typing import Optional, Any, Dict
from datetime import datetime, timezone


class CPClientError(Exception):
    """Base exception with structured metadata.

    Attributes
    ----------
    message
        Human readable message.
    code
        Machine friendly error code (snake_case).
    details
        Arbitrary extra data useful for debugging (raw engine line, exit code).
    timestamp
        UTC ISO timestamp when the exception was created.
    cause
        Optional underlying exception instance.
    context
        Optional lightweight context dict (model name, command, node id).
    """

    code: str = "cpclient_error"

    def __init__(
        self,
        message: str = "A client error occurred",
        *,
        details: Optional[Any] = None,
        cause: Optional[BaseException] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details
        self.cause = cause
        self.context = context or {}
        self.timestamp = datetime.now(timezone.utc).isoformat()

    def __str__(self) -> str:
        base = f"{self.__class__.__name__}({self.code}): {self.message}"
        if self.context:
            base += f" | context={self.context}"
        if self.details is not None:
            base += f" | details={self.details}"
        return base

    def to_dict(self) -> Dict[str, Any]:
        """Return a serializable representation for result files and logs."""
        return {
            "error": {
                "type": self.__class__.__name__,
                "code": self.code,
                "message": self.message,
                "details": self.details,
                "context": self.context,
                "timestamp": self.timestamp,
            }
        }

    def with_context(self, **ctx: Any) -> "CPClientError":
        """Return self after extending the context dict.

        Example:
        raise err.with_context(model=model.name)
        """
        self.context.update({k: v for k, v in ctx.items() if v is not None})
        return self

    @classmethod
    def from_exception(
        cls, exc: BaseException, message: Optional[str] = None
    ) -> "CPClientError":
        """Wrap a generic exception preserving the cause."""
        return cls(message or str(exc), cause=exc)


class ConstructionError(CPClientError, ValueError):
    """Invalid modeling call: bad arity, out of range bound, malformed matrix."""

    code = "construction_error"


class SolutionError(CPClientError, ValueError):
    """Invalid solution value or a write to a solution that was already sent."""

    code = "solution_error"


class ProtocolError(CPClientError):
    """Malformed or unexpected wire message, or an id unknown to the model."""

    code = "protocol_error"


class TransportError(CPClientError):
    """The engine process could not be started or its stream closed early."""

    code = "transport_error"


class EngineError(CPClientError):
    """Fatal error reported by the engine itself (including failed verification)."""

    code = "engine_error"


class SessionStateError(CPClientError):
    """A session was asked to run a second command."""

    code = "session_state_error"


class BenchmarkUsageError(CPClientError):
    """Benchmark invoked with unusable arguments (no inputs, conflicting flags)."""

    code = "benchmark_usage_error"
