# cpclient/core/parameters.py

"""
Solver parameters.

Parameters are pydantic models with snake_case attributes and camelCase
aliases, the names used on the wire, in problem JSON files and on the command
line. Every field defaults to ``None`` meaning "engine default"; only fields
that were explicitly set are ever transmitted. Unknown fields (for example the
engine's ``internal*`` tunables) are kept as extras and passed through as is.
"""

import copy
import logging
from typing import Any, Dict, List, Literal, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

logger = logging.getLogger(__name__)

P = TypeVar("P", bound="WorkerParameters")

# Fields that only configure the client and never reach the engine
CLIENT_ONLY_FIELDS = frozenset({"solver", "print_log"})


class WorkerParameters(BaseModel):
    """Tunables that can be overridden for an individual worker."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
        validate_assignment=True,
    )

    search_type: Optional[Literal["LNS", "FDS", "FDSDual", "SetTimes"]] = Field(
        default=None, description="Search strategy used by the worker"
    )
    random_seed: Optional[int] = Field(default=None, ge=0, le=2**31 - 1)
    fail_limit: Optional[int] = Field(default=None, ge=0)
    no_overlap_propagation_level: Optional[int] = Field(default=None, ge=1, le=4)
    cumul_propagation_level: Optional[int] = Field(default=None, ge=1, le=3)
    reservoir_propagation_level: Optional[int] = Field(default=None, ge=1, le=2)
    position_propagation_level: Optional[int] = Field(default=None, ge=1, le=3)
    step_function_sum_propagation_level: Optional[int] = Field(default=None, ge=1, le=2)
    use_precedence_energy: Optional[int] = Field(default=None, ge=0, le=1)
    pack_propagation_level: Optional[int] = Field(default=None, ge=0, le=2)

    # Large neighborhood search
    lns_first_fail_limit: Optional[int] = Field(default=None, ge=1)
    lns_fail_limit_growth: Optional[float] = Field(default=None, ge=1.0)
    lns_fail_limit_max: Optional[int] = Field(default=None, ge=1)
    lns_restart_limit: Optional[int] = Field(default=None, ge=0)
    lns_use_warm_start_only: Optional[bool] = None

    # Failure directed search
    fds_initial_rating: Optional[float] = Field(default=None, ge=0.0)
    fds_reduction_weight: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    fds_restart_strategy: Optional[Literal["Geometric", "Nested", "Luby"]] = None


class Parameters(WorkerParameters):
    """Global solver parameters with optional per-worker overlays."""

    time_limit: Optional[float] = Field(default=None, ge=0, description="Seconds")
    solution_limit: Optional[int] = Field(default=None, ge=0)
    nb_workers: Optional[int] = Field(
        default=None, ge=0, description="Number of workers, 0 means auto detect"
    )
    preset: Optional[Literal["Default", "Large"]] = None
    log_level: Optional[int] = Field(default=None, ge=0, le=3)
    warning_level: Optional[int] = Field(default=None, ge=0, le=3)
    log_period: Optional[float] = Field(default=None, ge=0)
    verify_solutions: Optional[bool] = None
    allocation_block_size: Optional[int] = Field(default=None, ge=4096)
    absolute_gap_tolerance: Optional[float] = Field(default=None, ge=0)
    relative_gap_tolerance: Optional[float] = Field(default=None, ge=0)
    color: Optional[Literal["Never", "Auto", "Always"]] = None

    workers: Optional[List[WorkerParameters]] = None

    # Client side only
    solver: Optional[str] = Field(default=None, description="Engine executable")
    print_log: Optional[bool] = Field(
        default=None, description="Echo engine log to standard output"
    )


class BenchmarkParameters(Parameters):
    """Parameters of a benchmark run: solver parameters plus driver options.

    Output options are filename patterns expanded per run with ``{name}``,
    ``{seed}`` and ``{flat_name}``.
    """

    nb_parallel_runs: int = Field(default=1, ge=1)
    nb_seeds: int = Field(default=1, ge=1)
    output: Optional[str] = Field(default=None, description="JSON file with all results")
    summary: Optional[str] = Field(default=None, description="CSV summary file")
    log: Optional[str] = Field(default=None, description="Per-run log file pattern")
    export_json: Optional[str] = None
    export_txt: Optional[str] = None
    export_python: Optional[str] = None
    dont_solve: bool = False

    def solve_parameters(self) -> Parameters:
        """The subset of fields that configure the solve itself."""
        benchmark_only = set(type(self).model_fields) - set(Parameters.model_fields)
        data = {k: v for k, v in explicit_fields(self).items() if k not in benchmark_only}
        return Parameters.model_validate(copy.deepcopy(data))


def explicit_fields(record: BaseModel) -> Dict[str, Any]:
    """Fields that were explicitly set on ``record``, plus pass-through extras."""
    known = type(record).model_fields
    data = {
        name: getattr(record, name)
        for name in record.model_fields_set
        if name in known
    }
    data.update(record.model_extra or {})
    return data


def _merge_workers(
    base: List[WorkerParameters], overlay: List[WorkerParameters]
) -> List[WorkerParameters]:
    merged = []
    for i in range(max(len(base), len(overlay))):
        first = base[i] if i < len(base) else None
        second = overlay[i] if i < len(overlay) else None
        if first is not None and second is not None:
            data = {**explicit_fields(first), **explicit_fields(second)}
            merged.append(WorkerParameters.model_validate(copy.deepcopy(data)))
        else:
            merged.append((first or second).model_copy(deep=True))
    return merged


def combine(a: P, b: WorkerParameters) -> P:
    """Merge two parameter records; fields explicitly set in ``b`` win.

    Worker overlays are merged index by index. Neither input is modified.
    """
    data = explicit_fields(a)
    overlay = explicit_fields(b)
    workers_a = data.pop("workers", None) or []
    workers_b = overlay.pop("workers", None) or []
    data.update(overlay)
    if workers_a or workers_b:
        data["workers"] = _merge_workers(workers_a, workers_b)
    return type(a).model_validate(copy.deepcopy(data))


def copy_parameters(params: P) -> P:
    return params.model_copy(deep=True)


def effective_worker_parameters(params: Parameters, index: int) -> WorkerParameters:
    """Values seen by worker ``index``: its overlay on top of the global record."""
    global_only = set(type(params).model_fields) - set(WorkerParameters.model_fields)
    data = {k: v for k, v in explicit_fields(params).items() if k not in global_only}
    if params.workers and index < len(params.workers):
        data.update(explicit_fields(params.workers[index]))
    return WorkerParameters.model_validate(copy.deepcopy(data))


def _wire_record(record: BaseModel, allowed) -> Dict[str, Any]:
    fields = {name for name in record.model_fields_set if name in allowed}
    data = record.model_dump(by_alias=True, include=fields, exclude_none=True)
    known = type(record).model_fields
    for key, value in (record.model_extra or {}).items():
        if key not in known and value is not None:
            data[key] = value
    return data


def wire_parameters(params: Optional[Parameters]) -> Dict[str, Any]:
    """camelCase dict of explicitly set, engine-facing fields."""
    if params is None:
        return {}
    allowed = set(Parameters.model_fields) - CLIENT_ONLY_FIELDS - {"workers"}
    data = _wire_record(params, allowed)
    if params.workers:
        data["workers"] = [
            _wire_record(worker, set(WorkerParameters.model_fields))
            for worker in params.workers
        ]
    return data
