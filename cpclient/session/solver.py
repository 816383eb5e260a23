# cpclient/session/solver.py

"""
Solver session: one engine process, one command, a stream of events.

A ``Solver`` goes through ``IDLE -> RUNNING -> FINISHED | ERRORED`` exactly
once. While running it decodes engine lines in arrival order and fans every
message out to one channel; ``summary`` is the last data event and ``close``
the very last event, emitted once whatever happens.
"""

import asyncio
import logging
import sys
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, TextIO

from pydantic import ValidationError

from ..config import resolve_nb_workers
from ..core.exceptions import (
    CPClientError,
    EngineError,
    ProtocolError,
    SessionStateError,
    SolutionError,
    TransportError,
)
from ..core.model import Model
from ..core.parameters import Parameters
from ..core.solution import Solution
from ..protocol.codec import (
    EngineMessage,
    decode_domains,
    decode_message,
    decode_solution,
    encode_command,
    encode_solution_message,
    encode_stop,
)
from ..protocol.framing import LineBuffer
from .results import (
    LowerBoundEvent,
    PropagationResult,
    SolutionEvent,
    SolveResult,
    SolveSummary,
)
from .transport import EngineTransport, SubprocessTransport

logger = logging.getLogger(__name__)
engine_logger = logging.getLogger("cpclient.engine")

CHANNELS = (
    "log",
    "trace",
    "warning",
    "error",
    "solution",
    "lower_bound",
    "summary",
    "domains",
    "close",
)

TransportFactory = Callable[[Parameters], EngineTransport]


def _number(data: Dict[str, Any], key: str, default: Optional[float] = None) -> float:
    """Numeric field of an engine message; anything else is a protocol error."""
    value = data.get(key, default)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ProtocolError(f"Field '{key}' must be a number", details=data)
    return float(value)


class SolverState(Enum):
    """Lifecycle of a solver session"""

    IDLE = "idle"
    RUNNING = "running"
    FINISHED = "finished"
    ERRORED = "errored"


class Solver:
    """Asynchronous session with the engine for a single command.

    Listeners registered with ``on`` are plain callables invoked in message
    order. Registering any ``error`` listener turns failures into events: the
    command then returns its partial result instead of raising.
    """

    def __init__(self, transport_factory: Optional[TransportFactory] = None):
        self._transport_factory = transport_factory or SubprocessTransport.from_parameters
        self._listeners: Dict[str, List[Callable[..., Any]]] = {c: [] for c in CHANNELS}
        self.state = SolverState.IDLE
        self._transport: Optional[EngineTransport] = None
        self._model: Optional[Model] = None
        self._output: Optional[TextIO] = None
        self._write_lock = asyncio.Lock()
        self._started = False
        self._stop_sent = False
        self._pending_stop: Optional[str] = None
        self._pending_solutions: List[Solution] = []
        self._background: List[asyncio.Task] = []

        self._result = SolveResult()
        self._propagation: Optional[PropagationResult] = None
        self._text: Optional[str] = None
        self._summary_seen = False

    def __repr__(self) -> str:
        return f"Solver(state={self.state.value})"

    # ------------------------------------------------------------------
    # Channels
    # ------------------------------------------------------------------

    def on(self, channel: str, listener: Callable[..., Any]) -> "Solver":
        if channel not in self._listeners:
            raise ValueError(f"Unknown channel '{channel}', expected one of {CHANNELS}")
        self._listeners[channel].append(listener)
        return self

    def off(self, channel: str, listener: Callable[..., Any]) -> "Solver":
        if channel not in self._listeners:
            raise ValueError(f"Unknown channel '{channel}', expected one of {CHANNELS}")
        if listener in self._listeners[channel]:
            self._listeners[channel].remove(listener)
        return self

    def _emit(self, channel: str, *payload: Any) -> None:
        for listener in list(self._listeners[channel]):
            try:
                listener(*payload)
            except Exception as e:
                logger.warning(f"Listener on '{channel}' failed: {e}")

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def solve(
        self,
        model: Model,
        params: Optional[Parameters] = None,
        warm_start: Optional[Solution] = None,
        output: Optional[TextIO] = None,
    ) -> SolveResult:
        """Solve ``model`` and return the result once the engine is done.

        A ``warm_start`` naming ids that are not variables of ``model`` fails
        the command like any other error, before the engine is started.
        """
        await self._execute("solve", model, params, warm_start, output)
        return self._result

    async def propagate(
        self, model: Model, params: Optional[Parameters] = None
    ) -> PropagationResult:
        """Run constraint propagation only and return the resulting domains."""
        await self._execute("propagate", model, params, None, None)
        if self._propagation is None:
            return PropagationResult(domains=None, infeasible=False)
        return self._propagation

    async def to_text(self, model: Model, params: Optional[Parameters] = None) -> str:
        """Engine's text rendering of the model."""
        await self._execute("toText", model, params, None, None)
        return self._text or ""

    async def _execute(
        self,
        command: str,
        model: Model,
        params: Optional[Parameters],
        warm_start: Optional[Solution],
        output: Optional[TextIO],
    ) -> None:
        if self.state != SolverState.IDLE:
            raise SessionStateError(
                f"Session already used (state {self.state.value})",
                context={"command": command},
            )
        self.state = SolverState.RUNNING
        self._model = model
        params = resolve_nb_workers(params)
        self._output = output if output is not None else (sys.stdout if params.print_log else None)
        logger.info(f"Starting '{command}' on model '{model.name}'")

        error: Optional[CPClientError] = None
        try:
            if warm_start is not None:
                self._check_solution_ids(model, warm_start)
            line = encode_command(command, model, params, warm_start)
            self._transport = self._transport_factory(params)
            await self._transport.start()
            await self._write(line)
            self._started = True
            await self._flush_pending()
            await self._read_until_done()
        except CPClientError as e:
            error = e.with_context(command=command, model=model.name)
        except BaseException:
            # Cancellation or a bug: still release the engine and close
            await self._shutdown()
            self.state = SolverState.ERRORED
            self._emit("close")
            raise
        await self._shutdown()

        if error is None:
            self.state = SolverState.FINISHED
            logger.info(f"'{command}' on model '{model.name}' finished")
        else:
            self.state = SolverState.ERRORED
            logger.error(f"'{command}' on model '{model.name}' failed: {error}")
            if self._listeners["error"]:
                self._emit("error", error)
                error = None
        self._emit("close")
        if error is not None:
            raise error

    async def _shutdown(self) -> None:
        for task in self._background:
            if not task.done():
                task.cancel()
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)
            self._background = []
        if self._transport is not None:
            try:
                await self._transport.close()
            except OSError as e:
                logger.warning(f"Error while closing engine transport: {e}")

    async def _write(self, line: str) -> None:
        async with self._write_lock:
            await self._transport.write_line(line)

    async def _flush_pending(self) -> None:
        solutions, self._pending_solutions = self._pending_solutions, []
        for solution in solutions:
            await self._write(encode_solution_message(solution))
        if self._pending_stop is not None:
            await self._send_stop(self._pending_stop)

    # ------------------------------------------------------------------
    # Incoming messages
    # ------------------------------------------------------------------

    async def _read_until_done(self) -> None:
        buffer = LineBuffer()
        while True:
            chunk = await self._transport.read_chunk()
            lines = buffer.feed(chunk) if chunk else buffer.flush()
            for line in lines:
                if self._dispatch(decode_message(line)):
                    return
            if not chunk:
                exit_code = await self._transport.close()
                raise TransportError(
                    f"Engine stream closed before the command finished (exit code {exit_code})",
                    details={"exit_code": exit_code, "stderr": self._transport.diagnostics()},
                )

    def _dispatch(self, message: EngineMessage) -> bool:
        """Route one message; returns True on the terminal marker."""
        kind, data = message.kind, message.data
        if kind == "done":
            return True
        if self._summary_seen and kind in ("solution", "lowerBound", "summary", "domains"):
            raise ProtocolError(f"'{kind}' message received after the summary")

        if kind in ("log", "trace", "warning"):
            text = data if isinstance(data, str) else str(data)
            if kind == "warning":
                engine_logger.warning(text)
            else:
                engine_logger.debug(text)
            self._tee(text)
            self._emit(kind, text)
        elif kind == "error":
            raise EngineError(f"Engine error: {data}", details=data)
        elif kind == "solution":
            self._on_solution(data)
        elif kind == "lowerBound":
            self._on_lower_bound(data)
        elif kind == "summary":
            self._on_summary(data)
        elif kind == "domains":
            self._on_domains(data)
        elif kind == "text":
            self._text = (self._text or "") + (data if isinstance(data, str) else str(data))
        return False

    def _on_solution(self, data: Any) -> None:
        if not isinstance(data, dict) or "solution" not in data:
            raise ProtocolError("Malformed solution message", details=data)
        valid = data.get("valid")
        if valid is False:
            raise EngineError("Solution verification failed", details=data)
        solution = decode_solution(data["solution"], self._model)
        solution.freeze()
        event = SolutionEvent(
            solve_time=_number(data, "solveTime", 0.0),
            solution=solution,
            valid=True if valid else None,
        )
        result = self._result
        result.objective_history.append(event)
        result.best_solution = solution
        result.best_solution_time = event.solve_time
        result.best_solution_valid = event.valid
        self._emit("solution", event)

    def _on_lower_bound(self, data: Any) -> None:
        if not isinstance(data, dict) or "value" not in data:
            raise ProtocolError("Malformed lowerBound message", details=data)
        event = LowerBoundEvent(
            solve_time=_number(data, "solveTime", 0.0), value=_number(data, "value")
        )
        self._result.lower_bound_history.append(event)
        self._result.best_lb_time = event.solve_time
        self._emit("lower_bound", event)

    def _on_summary(self, data: Any) -> None:
        if not isinstance(data, dict):
            raise ProtocolError("Malformed summary message", details=data)
        try:
            summary = SolveSummary.model_validate(data)
        except ValidationError as e:
            raise ProtocolError("Invalid summary message", details=data, cause=e) from e
        self._summary_seen = True
        self._result.summary = summary
        self._emit("summary", summary)

    def _on_domains(self, data: Any) -> None:
        if not isinstance(data, dict):
            raise ProtocolError("Malformed domains message", details=data)
        infeasible = bool(data.get("infeasible", False))
        domains = None
        if not infeasible and data.get("domains") is not None:
            domains = decode_domains(data["domains"], self._model)
        self._propagation = PropagationResult(
            domains=domains,
            infeasible=infeasible,
            limit_hit=bool(data.get("limitHit", False)),
            duration=_number(data, "duration", 0.0),
        )
        self._emit("domains", self._propagation)

    def _tee(self, text: str) -> None:
        if self._output is None:
            return
        try:
            self._output.write(text + "\n")
            self._output.flush()
        except (OSError, ValueError) as e:
            logger.warning(f"Output sink failed ({e}), stopping the engine")
            self._output = None
            self._background.append(asyncio.ensure_future(self.stop("output closed")))

    # ------------------------------------------------------------------
    # Control
    # ------------------------------------------------------------------

    async def stop(self, reason: str = "stop requested") -> None:
        """Ask the engine to finish early. No-op once the session has ended."""
        if self.state in (SolverState.FINISHED, SolverState.ERRORED):
            return
        if not self._started:
            logger.debug(f"Queueing stop until the engine starts: {reason}")
            self._pending_stop = reason
            return
        await self._send_stop(reason)

    async def _send_stop(self, reason: str) -> None:
        if self._stop_sent:
            return
        self._stop_sent = True
        logger.info(f"Stopping engine: {reason}")
        try:
            await self._write(encode_stop(reason))
        except TransportError as e:
            logger.warning(f"Could not deliver stop request: {e}")

    def _check_solution_ids(self, model: Model, solution: Solution) -> None:
        for node_id, _ in solution:
            if not model.is_variable_id(node_id):
                raise SolutionError(
                    f"Solution refers to id {node_id} which is not a variable of the model",
                    context={"model": model.name},
                )

    async def send_solution(self, solution: Solution) -> None:
        """Offer an external solution to the running engine.

        The solution is validated and frozen. No-op once the session has ended.
        """
        if self.state in (SolverState.FINISHED, SolverState.ERRORED):
            return
        if self._model is None:
            raise SessionStateError("No command is running")
        self._check_solution_ids(self._model, solution)
        solution.freeze()
        if not self._started:
            self._pending_solutions.append(solution)
            return
        await self._write(encode_solution_message(solution))
