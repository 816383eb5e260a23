# cpclient/session/results.py

"""
Result and event types produced by a solver session.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from ..core.solution import UNDEFINED_OBJECTIVE, ModelDomains, Solution


@dataclass(frozen=True)
class SolutionEvent:
    """A new solution reported during the search."""

    solve_time: float
    solution: Solution
    valid: Optional[bool] = None

    @property
    def objective(self) -> Any:
        return self.solution.get_objective()


@dataclass(frozen=True)
class LowerBoundEvent:
    """A new proven bound on the objective."""

    solve_time: float
    value: float


class SolveSummary(BaseModel):
    """Final statistics sent by the engine when the search ends."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
        frozen=True,
    )

    nb_solutions: int = 0
    proof: bool = False
    duration: float = 0.0
    nb_branches: int = 0
    nb_fails: int = 0
    nb_lns_steps: int = 0
    nb_restarts: int = 0
    memory_used: int = 0
    objective: Optional[float] = None
    lower_bound: Optional[float] = None
    objective_sense: Optional[str] = None
    nb_workers: int = 0
    nb_int_vars: int = 0
    nb_interval_vars: int = 0
    nb_constraints: int = 0
    solver: Optional[str] = None
    cpu: Optional[str] = None


@dataclass
class SolveResult:
    """Everything a solve produced: histories, best solution and summary.

    Filled while the session runs; complete once ``solve`` returns.
    """

    summary: Optional[SolveSummary] = None
    best_solution: Optional[Solution] = None
    best_solution_time: Optional[float] = None
    best_solution_valid: Optional[bool] = None
    best_lb_time: Optional[float] = None
    objective_history: List[SolutionEvent] = field(default_factory=list)
    lower_bound_history: List[LowerBoundEvent] = field(default_factory=list)

    @property
    def nb_solutions(self) -> int:
        if self.summary is not None:
            return self.summary.nb_solutions
        return len(self.objective_history)

    @property
    def objective(self) -> Any:
        if self.best_solution is None:
            return UNDEFINED_OBJECTIVE if self.summary is None else self.summary.objective
        return self.best_solution.get_objective()

    @property
    def lower_bound(self) -> Optional[float]:
        if self.summary is not None and self.summary.lower_bound is not None:
            return self.summary.lower_bound
        if self.lower_bound_history:
            return self.lower_bound_history[-1].value
        return None

    @property
    def proof(self) -> bool:
        return self.summary.proof if self.summary is not None else False

    @property
    def duration(self) -> Optional[float]:
        return self.summary.duration if self.summary is not None else None

    def to_dict(self) -> Dict[str, Any]:
        """JSON friendly view used by benchmark result files."""
        objective = self.objective
        return {
            "nbSolutions": self.nb_solutions,
            "objective": None if objective is UNDEFINED_OBJECTIVE else objective,
            "lowerBound": self.lower_bound,
            "proof": self.proof,
            "duration": self.duration,
            "bestSolutionTime": self.best_solution_time,
            "bestLBTime": self.best_lb_time,
            "objectiveHistory": [
                {"solveTime": e.solve_time, "objective": None if e.objective is UNDEFINED_OBJECTIVE else e.objective}
                for e in self.objective_history
            ],
            "lowerBoundHistory": [
                {"solveTime": e.solve_time, "value": e.value} for e in self.lower_bound_history
            ],
            "summary": self.summary.model_dump(by_alias=True) if self.summary is not None else None,
        }


@dataclass(frozen=True)
class PropagationResult:
    """Outcome of a ``propagate`` command."""

    domains: Optional[ModelDomains]
    infeasible: bool = False
    limit_hit: bool = False
    duration: float = 0.0
