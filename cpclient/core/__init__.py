# cpclient/core/__init__.py

"""Modeling layer: expression graph, model, parameters and solutions."""

from .exceptions import (
    BenchmarkUsageError,
    ConstructionError,
    CPClientError,
    EngineError,
    ProtocolError,
    SessionStateError,
    SolutionError,
    TransportError,
)
from .expressions import (
    BoolExpr,
    BoolVar,
    Constraint,
    CumulExpr,
    FloatExpr,
    FloatVar,
    IntExpr,
    IntervalVar,
    IntVar,
    ModelElement,
    Objective,
    SequenceVar,
    StepFunction,
)
from .model import Model
from .nodes import (
    FLOAT_VAR_MAX,
    FLOAT_VAR_MIN,
    INT_VAR_MAX,
    INT_VAR_MIN,
    INTERVAL_MAX,
    INTERVAL_MIN,
    LENGTH_MAX,
    PresenceStatus,
)
from .parameters import (
    BenchmarkParameters,
    Parameters,
    WorkerParameters,
    combine,
    copy_parameters,
    effective_worker_parameters,
)
from .solution import UNDEFINED_OBJECTIVE, IntervalValue, ModelDomains, Solution
