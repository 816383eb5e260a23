# cpclient/tests/unit/test_transport.py

"""
Tests for the subprocess transport, using a stand-in engine script.
"""

import pytest

from cpclient.config import EngineSettings
from cpclient.core.exceptions import TransportError
from cpclient.core.parameters import Parameters
from cpclient.session.solver import Solver
from cpclient.session.transport import SubprocessTransport


def solver_for(executable, args):
    return Solver(transport_factory=lambda params: SubprocessTransport(executable, args))


class TestFromParameters:
    """Tests for engine executable resolution"""

    def test_parameters_take_precedence(self):
        """Test that parameters.solver overrides the environment"""
        settings = EngineSettings(SOLVER="/opt/engine", SOLVER_ARGS="--port 0 --quiet")
        transport = SubprocessTransport.from_parameters(Parameters(solver="/usr/bin/engine"), settings)

        assert transport.executable == "/usr/bin/engine"
        assert transport.args == ["--port", "0", "--quiet"]

    def test_environment_fallback(self):
        """Test that CPCLIENT_SOLVER is used when parameters do not name one"""
        settings = EngineSettings(SOLVER="/opt/engine")
        transport = SubprocessTransport.from_parameters(Parameters(), settings)
        assert transport.executable == "/opt/engine"

    def test_no_executable(self):
        """Test that a missing engine is reported before spawning"""
        with pytest.raises(TransportError):
            SubprocessTransport.from_parameters(None, EngineSettings(SOLVER=None))


@pytest.mark.slow
class TestSubprocessTransport:
    """Tests running the fake engine as a child process"""

    @pytest.mark.asyncio
    async def test_solve(self, fake_engine_command, jobshop_model):
        """Test a full solve over stdin/stdout"""
        model, x, y = jobshop_model
        solver = solver_for(*fake_engine_command)
        logs = []
        solver.on("log", logs.append)

        result = await solver.solve(model)

        assert logs == ["solving jobshop"]
        assert result.nb_solutions == 1
        assert result.best_solution.get_start(x) == 0
        assert result.best_solution.get_end(y) == 10
        assert result.objective is None

    @pytest.mark.asyncio
    async def test_to_text(self, fake_engine_command, jobshop_model):
        """Test the toText command over a real pipe"""
        model, _, _ = jobshop_model
        executable, args = fake_engine_command

        text = await solver_for(executable, args).to_text(model)

        assert text == "model jobshop with 3 refs\n"

    @pytest.mark.asyncio
    async def test_crash(self, fake_engine_command, jobshop_model):
        """Test that an engine exiting early reports its exit code and stderr"""
        model, _, _ = jobshop_model
        executable, args = fake_engine_command
        solver = solver_for(executable, args + ["--crash"])

        with pytest.raises(TransportError) as exc_info:
            await solver.solve(model)

        assert exc_info.value.details["exit_code"] == 3
        assert "fake engine: simulated crash" in exc_info.value.details["stderr"]

    @pytest.mark.asyncio
    async def test_missing_executable(self, jobshop_model, tmp_path):
        """Test that a non existent engine is a transport error"""
        model, _, _ = jobshop_model
        solver = solver_for(str(tmp_path / "no-such-engine"), [])

        with pytest.raises(TransportError):
            await solver.solve(model)

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self, fake_engine_command):
        """Test that closing twice returns the same exit code without a command"""
        executable, args = fake_engine_command
        transport = SubprocessTransport(executable, args)
        await transport.start()

        first = await transport.close()
        second = await transport.close()

        assert first == second == 1
