# cpclient/__init__.py

"""
cpclient: build constraint programming models in Python and solve them with
an external engine process.

    model = cpclient.Model("jobshop")
    task = model.interval_var(length=5, name="task")
    model.minimize(model.end_of(task))
    result = asyncio.run(cpclient.Solver().solve(model, cpclient.Parameters(time_limit=10)))
"""

from .benchmark import (
    BenchmarkResult,
    aggregate_results,
    benchmark,
    expand_pattern,
)
from .core import (
    FLOAT_VAR_MAX,
    FLOAT_VAR_MIN,
    INT_VAR_MAX,
    INT_VAR_MIN,
    INTERVAL_MAX,
    INTERVAL_MIN,
    LENGTH_MAX,
    UNDEFINED_OBJECTIVE,
    BenchmarkParameters,
    BenchmarkUsageError,
    BoolExpr,
    BoolVar,
    Constraint,
    ConstructionError,
    CPClientError,
    CumulExpr,
    EngineError,
    FloatExpr,
    FloatVar,
    IntervalValue,
    IntervalVar,
    IntExpr,
    IntVar,
    Model,
    ModelDomains,
    ModelElement,
    Objective,
    Parameters,
    PresenceStatus,
    ProtocolError,
    SequenceVar,
    SessionStateError,
    Solution,
    SolutionError,
    StepFunction,
    TransportError,
    WorkerParameters,
    combine,
    copy_parameters,
    effective_worker_parameters,
)
from .core.evaluator import Violation, check_solution, evaluate, is_feasible
from .protocol import ProblemDefinition, json_to_problem, problem_to_json, problem_to_python
from .session import (
    EngineTransport,
    LowerBoundEvent,
    PropagationResult,
    SolutionEvent,
    Solver,
    SolverState,
    SolveResult,
    SolveSummary,
    SubprocessTransport,
)

__version__ = "1.0.0"
