# cpclient/tests/unit/test_solver.py

"""
Tests for the solver session against a scripted in-memory engine.
"""

import asyncio
import io

import pytest

from cpclient.core.exceptions import (
    EngineError,
    ProtocolError,
    SessionStateError,
    SolutionError,
    TransportError,
)
from cpclient.core.parameters import Parameters
from cpclient.core.solution import Solution
from cpclient.session.solver import SolverState

JOBSHOP_VALUES = {"0": {"start": 0, "end": 10}, "1": {"start": 10, "end": 20}}


def msg(kind, data=None):
    return {"msg": kind, "data": data}


def solution_msg(objective=20, solve_time=0.1, **extra):
    return msg(
        "solution",
        {"solveTime": solve_time, "solution": {"values": JOBSHOP_VALUES, "objective": objective}, **extra},
    )


def summary_msg(**fields):
    data = {"nbSolutions": 1, "proof": True, "duration": 0.5, "objective": 20}
    data.update(fields)
    return msg("summary", data)


def record_events(solver):
    """Subscribe to every data channel and return the list of received events."""
    events = []
    for channel in ("log", "trace", "warning", "solution", "lower_bound", "summary", "domains"):
        solver.on(channel, lambda payload, channel=channel: events.append((channel, payload)))
    solver.on("close", lambda: events.append(("close", None)))
    return events


class TestSolve:
    """Tests for the solve command"""

    @pytest.mark.asyncio
    async def test_events_in_order(self, make_solver, jobshop_model):
        """Test that events are delivered in arrival order and close comes last"""
        model, x, y = jobshop_model
        solver, transport = make_solver(
            msg("log", "starting"),
            msg("trace", "branching on x"),
            solution_msg(),
            msg("lowerBound", {"solveTime": 0.2, "value": 20}),
            summary_msg(),
            msg("done"),
        )
        events = record_events(solver)

        result = await solver.solve(model, Parameters(time_limit=10))

        assert [channel for channel, _ in events] == [
            "log",
            "trace",
            "solution",
            "lower_bound",
            "summary",
            "close",
        ]
        assert events[1] == ("trace", "branching on x")
        assert solver.state == SolverState.FINISHED
        assert result.best_solution.get_start(y) == 10
        assert result.best_solution.frozen
        assert result.objective == 20
        assert result.lower_bound == 20
        assert result.best_lb_time == 0.2
        assert result.proof is True
        assert result.nb_solutions == 1
        assert transport.close_calls == 1

    @pytest.mark.asyncio
    async def test_command_is_first_line(self, make_solver, jobshop_model):
        """Test that the command with the full problem is sent first"""
        model, _, _ = jobshop_model
        solver, transport = make_solver(summary_msg(), msg("done"))

        await solver.solve(model, Parameters(time_limit=10))

        first = transport.messages[0]
        assert first["msg"] == "solve"
        assert first["data"]["parameters"]["timeLimit"] == 10
        assert first["data"]["model"]["name"] == "jobshop"

    @pytest.mark.asyncio
    async def test_nb_workers_from_environment(self, make_solver, jobshop_model, monkeypatch):
        """Test that an unset worker count is taken from the environment"""
        monkeypatch.setenv("CPCLIENT_NB_WORKERS", "3")
        model, _, _ = jobshop_model
        solver, transport = make_solver(msg("done"))

        await solver.solve(model)

        assert transport.messages[0]["data"]["parameters"]["nbWorkers"] == 3

    @pytest.mark.asyncio
    async def test_lines_split_across_chunks(self, make_solver, jobshop_model):
        """Test that partial lines are buffered until complete"""
        model, _, _ = jobshop_model
        solver, _ = make_solver('{"msg": "lo', 'g", "data": "hi"}\n{"msg"', ': "done"}\n')
        logs = []
        solver.on("log", logs.append)

        await solver.solve(model)

        assert logs == ["hi"]

    @pytest.mark.asyncio
    async def test_session_is_single_use(self, make_solver, jobshop_model):
        """Test that a second command raises"""
        model, _, _ = jobshop_model
        solver, _ = make_solver(msg("done"))
        await solver.solve(model)

        with pytest.raises(SessionStateError):
            await solver.solve(model)

    @pytest.mark.asyncio
    async def test_warm_start(self, make_solver, jobshop_model):
        """Test that the warm start is sent with the command"""
        model, x, y = jobshop_model
        warm = Solution()
        warm.set_value(x, 0, 10)
        warm.set_value(y, 12, 22)
        solver, transport = make_solver(msg("done"))

        await solver.solve(model, warm_start=warm)

        assert transport.messages[0]["data"]["warmStart"]["values"]["1"] == {"start": 12, "end": 22}

    @pytest.mark.asyncio
    async def test_warm_start_with_unknown_id(self, make_solver, jobshop_model):
        """Test that warm starts are checked against the model before sending"""
        model, _, _ = jobshop_model
        warm = Solution()
        warm.set_raw(42, 1)
        solver, transport = make_solver(msg("done"))
        closes = []
        solver.on("close", lambda: closes.append(True))

        with pytest.raises(SolutionError):
            await solver.solve(model, warm_start=warm)
        assert transport.written == []
        assert transport.started is False
        assert solver.state == SolverState.ERRORED
        assert closes == [True]

    @pytest.mark.asyncio
    async def test_warm_start_error_goes_to_listener(self, make_solver, jobshop_model):
        """Test that an invalid warm start is delivered to the error listener"""
        model, _, _ = jobshop_model
        warm = Solution()
        warm.set_raw(42, 1)
        solver, _ = make_solver(msg("done"))
        errors = []
        solver.on("error", errors.append)

        result = await solver.solve(model, warm_start=warm)

        assert len(errors) == 1
        assert isinstance(errors[0], SolutionError)
        assert errors[0].context["command"] == "solve"
        assert result.best_solution is None


class TestFailures:
    """Tests for error propagation"""

    @pytest.mark.asyncio
    async def test_stream_closed_before_done(self, make_solver, jobshop_model):
        """Test that a missing terminal marker is a transport error"""
        model, _, _ = jobshop_model
        solver, transport = make_solver(msg("log", "working"), exit_code=3)
        closes = []
        solver.on("close", lambda: closes.append(True))

        with pytest.raises(TransportError) as exc_info:
            await solver.solve(model)

        assert exc_info.value.details["exit_code"] == 3
        assert exc_info.value.details["stderr"] == ["fake engine stderr"]
        assert solver.state == SolverState.ERRORED
        assert closes == [True]

    @pytest.mark.asyncio
    async def test_engine_error_is_fatal(self, make_solver, jobshop_model):
        """Test that an engine error message fails the command"""
        model, _, _ = jobshop_model
        solver, _ = make_solver(msg("error", "out of memory"), msg("done"))

        with pytest.raises(EngineError):
            await solver.solve(model)

    @pytest.mark.asyncio
    async def test_error_listener_receives_error(self, make_solver, jobshop_model):
        """Test that an error listener turns failures into events"""
        model, _, _ = jobshop_model
        solver, _ = make_solver(solution_msg(), msg("error", "boom"), msg("done"))
        errors = []
        solver.on("error", errors.append)

        result = await solver.solve(model)

        assert len(errors) == 1
        assert isinstance(errors[0], EngineError)
        assert errors[0].context["command"] == "solve"
        assert result.best_solution is not None
        assert solver.state == SolverState.ERRORED

    @pytest.mark.asyncio
    async def test_failed_verification(self, make_solver, jobshop_model):
        """Test that a solution the engine could not verify is an engine error"""
        model, _, _ = jobshop_model
        solver, _ = make_solver(solution_msg(valid=False), msg("done"))

        with pytest.raises(EngineError):
            await solver.solve(model)

    @pytest.mark.asyncio
    async def test_solution_after_summary(self, make_solver, jobshop_model):
        """Test that the summary is the last data event"""
        model, _, _ = jobshop_model
        solver, _ = make_solver(summary_msg(), solution_msg(), msg("done"))

        with pytest.raises(ProtocolError):
            await solver.solve(model)

    @pytest.mark.asyncio
    async def test_unknown_variable_in_solution(self, make_solver, jobshop_model):
        """Test that solutions naming unknown ids are protocol errors"""
        model, _, _ = jobshop_model
        solver, _ = make_solver(
            msg("solution", {"solveTime": 0.1, "solution": {"values": {"9": 1}}}), msg("done")
        )

        with pytest.raises(ProtocolError):
            await solver.solve(model)

    @pytest.mark.asyncio
    async def test_malformed_line(self, make_solver, jobshop_model):
        """Test that garbage on the stream is a protocol error"""
        model, _, _ = jobshop_model
        solver, transport = make_solver("not json\n", msg("done"))

        with pytest.raises(ProtocolError):
            await solver.solve(model)
        assert transport.close_calls == 1

    @pytest.mark.parametrize(
        "line",
        [
            b'{"msg": "log", "data": "\xff\xfe"}\n',
            '{"msg": [1]}\n',
            msg("lowerBound", {"solveTime": None, "value": 3}),
            msg("lowerBound", {"solveTime": 0.1, "value": "high"}),
            solution_msg(solve_time="soon"),
            msg("domains", {"duration": [1]}),
        ],
    )
    @pytest.mark.asyncio
    async def test_malformed_message_goes_to_error_listener(self, make_solver, jobshop_model, line):
        """Test that undecodable lines and badly typed fields are protocol error events"""
        model, _, _ = jobshop_model
        solver, transport = make_solver(line, msg("done"))
        errors = []
        closes = []
        solver.on("error", errors.append)
        solver.on("close", lambda: closes.append(True))

        await solver.solve(model)

        assert len(errors) == 1
        assert isinstance(errors[0], ProtocolError)
        assert solver.state == SolverState.ERRORED
        assert closes == [True]
        assert transport.close_calls == 1

    @pytest.mark.asyncio
    async def test_invalid_utf8_is_protocol_error(self, make_solver, jobshop_model):
        """Test that a line that does not decode rejects the command"""
        model, _, _ = jobshop_model
        solver, _ = make_solver(b"\xc3\x28\n", msg("done"))

        with pytest.raises(ProtocolError):
            await solver.solve(model)

    @pytest.mark.asyncio
    async def test_listener_failure_does_not_abort(self, make_solver, jobshop_model):
        """Test that exceptions raised by listeners are contained"""
        model, _, _ = jobshop_model
        solver, _ = make_solver(solution_msg(), summary_msg(), msg("done"))

        def broken(event):
            raise RuntimeError("listener bug")

        solver.on("solution", broken)
        result = await solver.solve(model)

        assert result.nb_solutions == 1
        assert solver.state == SolverState.FINISHED

    @pytest.mark.asyncio
    async def test_cancellation_closes_session(self, make_solver, jobshop_model):
        """Test that cancelling a running solve releases the engine"""
        model, _, _ = jobshop_model
        never = asyncio.Event()
        solver, transport = make_solver(never)
        closes = []
        solver.on("close", lambda: closes.append(True))

        task = asyncio.ensure_future(solver.solve(model))
        for _ in range(5):
            await asyncio.sleep(0)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert transport.close_calls == 1
        assert closes == [True]
        assert solver.state == SolverState.ERRORED


class TestControl:
    """Tests for stop requests and external solutions"""

    @pytest.mark.asyncio
    async def test_stop_before_start_is_queued(self, make_solver, jobshop_model):
        """Test that an early stop is sent once the command is written"""
        model, _, _ = jobshop_model
        solver, transport = make_solver(msg("done"))
        await solver.stop("early")
        await solver.stop("earlier")

        await solver.solve(model)

        kinds = [m["msg"] for m in transport.messages]
        assert kinds == ["solve", "stop"]

    @pytest.mark.asyncio
    async def test_stop_is_sent_once(self, make_solver, jobshop_model):
        """Test that repeated stop requests during a run produce one message"""
        model, _, _ = jobshop_model
        solver, transport = make_solver(
            solution_msg(solve_time=0.1),
            solution_msg(objective=19, solve_time=0.2),
            summary_msg(),
            msg("done"),
        )
        solver.on("solution", lambda event: asyncio.ensure_future(solver.stop("enough")))

        await solver.solve(model)

        stops = [m for m in transport.messages if m["msg"] == "stop"]
        assert stops == [{"msg": "stop", "data": {"reason": "enough"}}]

    @pytest.mark.asyncio
    async def test_stop_after_finish_is_noop(self, make_solver, jobshop_model):
        """Test that stopping a finished session does nothing"""
        model, _, _ = jobshop_model
        solver, transport = make_solver(msg("done"))
        await solver.solve(model)

        await solver.stop("late")

        assert [m["msg"] for m in transport.messages] == ["solve"]

    @pytest.mark.asyncio
    async def test_send_solution_during_run(self, make_solver, jobshop_model):
        """Test that an external solution is forwarded and frozen"""
        model, x, y = jobshop_model
        external = Solution()
        external.set_value(x, 0, 10)
        external.set_value(y, 11, 21)
        solver, transport = make_solver(msg("log", "searching"), summary_msg(), msg("done"))
        solver.on("log", lambda text: asyncio.ensure_future(solver.send_solution(external)))

        await solver.solve(model)

        sent = [m for m in transport.messages if m["msg"] == "solution"]
        assert sent[0]["data"]["values"]["1"] == {"start": 11, "end": 21}
        assert external.frozen

    @pytest.mark.asyncio
    async def test_send_solution_without_command(self, make_solver):
        """Test that an idle session has no model to check against"""
        solver, _ = make_solver()
        with pytest.raises(SessionStateError):
            await solver.send_solution(Solution())

    @pytest.mark.asyncio
    async def test_stop_with_closed_engine_input(self, make_solver, jobshop_model):
        """Test that a failed stop delivery is logged, not raised"""
        model, _, _ = jobshop_model
        solver, transport = make_solver(msg("done"))
        solver._started = True
        solver._model = model
        solver.state = SolverState.RUNNING
        solver._transport = transport
        transport.fail_writes = True

        await solver.stop("now")

        assert transport.written == []


class TestOutput:
    """Tests for the log output sink"""

    @pytest.mark.asyncio
    async def test_log_lines_are_copied(self, make_solver, jobshop_model):
        """Test that log and warning lines are written to the sink"""
        model, _, _ = jobshop_model
        solver, _ = make_solver(msg("log", "one"), msg("warning", "two"), msg("done"))
        output = io.StringIO()

        await solver.solve(model, output=output)

        assert output.getvalue() == "one\ntwo\n"

    @pytest.mark.asyncio
    async def test_closed_sink_stops_engine(self, make_solver, jobshop_model):
        """Test that a failing sink requests a stop and the solve still completes"""
        model, _, _ = jobshop_model
        solver, transport = make_solver(
            msg("log", "one"), msg("log", "two"), summary_msg(), msg("done")
        )
        output = io.StringIO()
        output.close()

        result = await solver.solve(model, output=output)

        stops = [m for m in transport.messages if m["msg"] == "stop"]
        assert stops == [{"msg": "stop", "data": {"reason": "output closed"}}]
        assert result.summary is not None


class TestOtherCommands:
    """Tests for propagate and toText"""

    @pytest.mark.asyncio
    async def test_propagate(self, make_solver, jobshop_model):
        """Test that propagation returns the reduced domains"""
        model, x, y = jobshop_model
        solver, transport = make_solver(
            msg(
                "domains",
                {
                    "domains": {"0": {"startMin": 0, "startMax": 5}, "1": {"startMin": 10}},
                    "duration": 0.05,
                },
            ),
            msg("done"),
        )

        result = await solver.propagate(model)

        assert transport.messages[0]["msg"] == "propagate"
        assert not result.infeasible
        assert result.domains.get_start_max(x) == 5
        assert result.domains.get_start_min(y) == 10
        assert result.duration == 0.05

    @pytest.mark.asyncio
    async def test_propagate_infeasible(self, make_solver, jobshop_model):
        """Test that an infeasible model has no domains"""
        model, _, _ = jobshop_model
        solver, _ = make_solver(msg("domains", {"infeasible": True}), msg("done"))

        result = await solver.propagate(model)

        assert result.infeasible
        assert result.domains is None

    @pytest.mark.asyncio
    async def test_to_text(self, make_solver, jobshop_model):
        """Test that text chunks are concatenated"""
        model, _, _ = jobshop_model
        solver, transport = make_solver(msg("text", "line 1\n"), msg("text", "line 2\n"), msg("done"))

        text = await solver.to_text(model)

        assert transport.messages[0]["msg"] == "toText"
        assert text == "line 1\nline 2\n"


class TestChannels:
    """Tests for listener registration"""

    def test_unknown_channel(self, make_solver):
        """Test that only known channels can be subscribed"""
        solver, _ = make_solver()
        with pytest.raises(ValueError):
            solver.on("progress", print)
        with pytest.raises(ValueError):
            solver.off("progress", print)

    @pytest.mark.asyncio
    async def test_off_removes_listener(self, make_solver, jobshop_model):
        """Test that removed listeners are not called"""
        model, _, _ = jobshop_model
        solver, _ = make_solver(msg("log", "hi"), msg("done"))
        logs = []
        solver.on("log", logs.append)
        solver.off("log", logs.append)

        await solver.solve(model)

        assert logs == []
