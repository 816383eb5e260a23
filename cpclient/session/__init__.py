# cpclient/session/__init__.py

"""Engine sessions: transport, command state machine and result types."""

from .results import (
    LowerBoundEvent,
    PropagationResult,
    SolutionEvent,
    SolveResult,
    SolveSummary,
)
from .solver import CHANNELS, Solver, SolverState
from .transport import EngineTransport, SubprocessTransport
