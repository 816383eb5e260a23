# cpclient/tests/conftest.py

"""
Pytest configuration and fixtures for cpclient tests.
"""

import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, List, Optional

import pytest

from cpclient.config import get_settings
from cpclient.core.exceptions import TransportError
from cpclient.core.model import Model
from cpclient.session.solver import Solver
from cpclient.session.transport import EngineTransport

# Configure logging for tests
logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

FAKE_ENGINE = Path(__file__).parent / "fake_engine.py"


class FakeTransport(EngineTransport):
    """In-memory engine: replays scripted output and records what the client wrote.

    Script items are message dicts, raw ``str``/``bytes`` chunks, or an
    ``asyncio.Event`` to wait on before producing the rest.
    """

    def __init__(self, script=(), exit_code: Optional[int] = 0, fail_writes: bool = False):
        self.script: List[Any] = list(script)
        self.exit_code = exit_code
        self.fail_writes = fail_writes
        self.written: List[str] = []
        self.started = False
        self.close_calls = 0

    async def start(self) -> None:
        self.started = True

    async def write_line(self, line: str) -> None:
        if self.fail_writes:
            raise TransportError("Engine closed its input")
        self.written.append(line)

    async def read_chunk(self) -> bytes:
        # Let tasks scheduled by listeners run between chunks
        await asyncio.sleep(0)
        while self.script:
            item = self.script.pop(0)
            if isinstance(item, asyncio.Event):
                await item.wait()
                continue
            if isinstance(item, dict):
                return (json.dumps(item) + "\n").encode("utf-8")
            if isinstance(item, str):
                return item.encode("utf-8")
            return item
        return b""

    async def close(self) -> Optional[int]:
        self.close_calls += 1
        return self.exit_code

    def diagnostics(self) -> List[str]:
        return ["fake engine stderr"]

    @property
    def messages(self) -> List[dict]:
        return [json.loads(line) for line in self.written]


@pytest.fixture(autouse=True)
def clear_settings_cache():
    """Settings are read from the environment; reset the cache around each test."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def make_solver():
    """Factory returning ``(solver, transport)`` wired to a scripted FakeTransport."""

    def factory(*script, **kwargs):
        transport = FakeTransport(script, **kwargs)
        solver = Solver(transport_factory=lambda params: transport)
        return solver, transport

    return factory


@pytest.fixture
def fake_engine_command():
    """Executable and arguments running the fake engine script."""
    return sys.executable, [str(FAKE_ENGINE)]


@pytest.fixture
def jobshop_model():
    """Two tasks on one machine, minimizing the end of the second."""
    model = Model("jobshop")
    x = model.interval_var(length=10, name="x")
    y = model.interval_var(length=10, name="y")
    model.end_before_start(x, y)
    model.minimize(model.end_of(y))
    return model, x, y
