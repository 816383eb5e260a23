# cpclient/session/transport.py

"""
Byte transports between a solver session and the engine.

The session only needs to write lines and read chunks; ``SubprocessTransport``
runs the engine as a child process and talks to it over stdin/stdout.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from collections import deque
from typing import Deque, List, Optional

from ..config import EngineSettings, get_settings
from ..core.exceptions import TransportError
from ..core.parameters import Parameters

logger = logging.getLogger(__name__)
engine_logger = logging.getLogger("cpclient.engine")

READ_CHUNK_SIZE = 64 * 1024
STDERR_TAIL_LINES = 20


class EngineTransport(ABC):
    """Bidirectional byte stream to one engine instance."""

    @abstractmethod
    async def start(self) -> None:
        """Open the stream (spawn the process, connect...)."""

    @abstractmethod
    async def write_line(self, line: str) -> None:
        """Send one message; raises TransportError when the peer is gone."""

    @abstractmethod
    async def read_chunk(self) -> bytes:
        """Next chunk of output; ``b""`` at end of stream."""

    @abstractmethod
    async def close(self) -> Optional[int]:
        """Release the stream and return the engine exit code if known. Idempotent."""

    def diagnostics(self) -> List[str]:
        """Recent diagnostic output of the engine, if any."""
        return []


class SubprocessTransport(EngineTransport):
    """Runs the engine executable and speaks JSON lines over its stdin/stdout."""

    def __init__(
        self,
        executable: str,
        args: Optional[List[str]] = None,
        close_timeout: float = 5.0,
    ):
        self.executable = executable
        self.args = list(args or [])
        self.close_timeout = close_timeout
        self._process: Optional[asyncio.subprocess.Process] = None
        self._stderr_task: Optional[asyncio.Task] = None
        self._stderr_tail: Deque[str] = deque(maxlen=STDERR_TAIL_LINES)

    @classmethod
    def from_parameters(
        cls, params: Optional[Parameters], settings: Optional[EngineSettings] = None
    ) -> "SubprocessTransport":
        """Transport for the engine named by ``params.solver`` or ``CPCLIENT_SOLVER``."""
        settings = settings or get_settings()
        executable = (params.solver if params is not None else None) or settings.SOLVER
        if not executable:
            raise TransportError(
                "No engine executable configured: set parameters.solver or CPCLIENT_SOLVER"
            )
        return cls(executable, settings.solver_args())

    @property
    def pid(self) -> Optional[int]:
        return self._process.pid if self._process is not None else None

    async def start(self) -> None:
        try:
            self._process = await asyncio.create_subprocess_exec(
                self.executable,
                *self.args,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise TransportError(
                f"Cannot start engine '{self.executable}': {e}",
                cause=e,
                context={"executable": self.executable},
            ) from e
        self._stderr_task = asyncio.create_task(self._drain_stderr())
        logger.debug(f"Started engine '{self.executable}' (pid {self._process.pid})")

    async def _drain_stderr(self) -> None:
        assert self._process is not None and self._process.stderr is not None
        while True:
            line = await self._process.stderr.readline()
            if not line:
                return
            text = line.decode("utf-8", errors="replace").rstrip()
            self._stderr_tail.append(text)
            engine_logger.debug(f"[stderr] {text}")

    async def write_line(self, line: str) -> None:
        if self._process is None or self._process.stdin is None:
            raise TransportError("Engine is not running")
        try:
            self._process.stdin.write(line.encode("utf-8") + b"\n")
            await self._process.stdin.drain()
        except (BrokenPipeError, ConnectionResetError) as e:
            raise TransportError(
                "Engine closed its input",
                cause=e,
                details={"stderr": self.diagnostics()},
            ) from e

    async def read_chunk(self) -> bytes:
        if self._process is None or self._process.stdout is None:
            raise TransportError("Engine is not running")
        return await self._process.stdout.read(READ_CHUNK_SIZE)

    async def close(self) -> Optional[int]:
        process = self._process
        if process is None:
            return None
        if process.stdin is not None and not process.stdin.is_closing():
            process.stdin.close()
        if process.returncode is None:
            try:
                await asyncio.wait_for(process.wait(), timeout=self.close_timeout)
            except asyncio.TimeoutError:
                logger.warning(f"Engine pid {process.pid} did not exit, killing it")
                process.kill()
                await process.wait()
        if self._stderr_task is not None:
            await self._stderr_task
            self._stderr_task = None
        return process.returncode

    def diagnostics(self) -> List[str]:
        return list(self._stderr_tail)
