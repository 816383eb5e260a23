# cpclient/benchmark/orchestrator.py

"""
Benchmark orchestrator.

Runs every input once per seed, keeping at most ``nb_parallel_runs`` solver
sessions alive at the same time. A failing run is recorded in its
``BenchmarkResult`` and never aborts the others.
"""

import asyncio
import inspect
import logging
from collections import deque
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Awaitable, Callable, Deque, Dict, List, Optional, Sequence, Tuple, Union

from ..core.exceptions import BenchmarkUsageError
from ..core.model import Model
from ..core.parameters import BenchmarkParameters, Parameters, combine
from ..protocol.codec import ProblemDefinition, problem_to_json
from ..protocol.source_export import problem_to_python
from ..session.solver import Solver
from .patterns import expand_pattern
from .reports import BenchmarkResult, write_csv_summary, write_json_results

logger = logging.getLogger(__name__)

Problem = Union[Model, ProblemDefinition]
ProblemGenerator = Callable[[Any], Union[Problem, Awaitable[Problem]]]
SessionFactory = Callable[[], Solver]


def _seeds(params: BenchmarkParameters) -> List[Optional[int]]:
    if params.nb_seeds > 1:
        return list(range(1, params.nb_seeds + 1))
    return [None]


def _write_file(pattern: str, name: str, seed: Optional[int], text: str) -> Path:
    target = Path(expand_pattern(pattern, name, seed))
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(text, encoding="utf-8")
    logger.debug(f"Wrote {target}")
    return target


async def _load_problem(problem_generator: ProblemGenerator, source: Any) -> ProblemDefinition:
    problem = problem_generator(source)
    if inspect.isawaitable(problem):
        problem = await problem
    if isinstance(problem, Model):
        problem = ProblemDefinition(problem)
    return problem


async def _run_one(
    problem_generator: ProblemGenerator,
    source: Any,
    seed: Optional[int],
    params: BenchmarkParameters,
    session_factory: SessionFactory,
) -> BenchmarkResult:
    solve_date = datetime.now(timezone.utc)
    name = str(source)
    run_params: Parameters = params.solve_parameters()
    try:
        problem = await _load_problem(problem_generator, source)
        model = problem.model
        name = model.name or name
        # Command line parameters override the ones stored with the problem
        run_params = combine(problem.parameters, params.solve_parameters())
        if seed is not None:
            run_params = combine(run_params, Parameters(random_seed=seed))

        if params.export_json:
            _write_file(
                params.export_json, name, seed,
                problem_to_json(model, run_params, problem.warm_start),
            )
        if params.export_python:
            _write_file(
                params.export_python, name, seed,
                problem_to_python(model, run_params, problem.warm_start),
            )
        if params.export_txt:
            text = await session_factory().to_text(model, run_params)
            _write_file(params.export_txt, name, seed, text)

        if params.dont_solve:
            logger.info(f"Skipping solve of '{name}'")
            return BenchmarkResult(name, seed, solve_date, run_params)

        session = session_factory()
        if params.log:
            log_path = Path(expand_pattern(params.log, name, seed))
            log_path.parent.mkdir(parents=True, exist_ok=True)
            with open(log_path, "w", encoding="utf-8") as log_file:
                result = await session.solve(model, run_params, problem.warm_start, output=log_file)
        else:
            result = await session.solve(model, run_params, problem.warm_start)
    except Exception as e:
        logger.error(f"Run of '{name}' (seed {seed}) failed: {e}")
        return BenchmarkResult(name, seed, solve_date, run_params, error=str(e))

    logger.info(
        f"'{name}' (seed {seed}): {result.nb_solutions} solutions, "
        f"objective {result.objective}, lower bound {result.lower_bound}, "
        f"duration {result.duration}"
    )
    return BenchmarkResult(name, seed, solve_date, run_params, result=result)


async def benchmark(
    problem_generator: ProblemGenerator,
    inputs: Sequence[Any],
    params: Optional[BenchmarkParameters] = None,
    session_factory: SessionFactory = Solver,
) -> List[BenchmarkResult]:
    """Solve every input with every seed and collect the results.

    ``problem_generator`` turns one input into a ``Model`` or a
    ``ProblemDefinition`` (it may be a coroutine function). Results come back
    ordered by input, then by seed, whatever the completion order.
    """
    params = params or BenchmarkParameters()
    if not inputs:
        raise BenchmarkUsageError("No input problems given")

    work: Deque[Tuple[int, Any, Optional[int]]] = deque()
    for source in inputs:
        for seed in _seeds(params):
            work.append((len(work), source, seed))
    results: List[Optional[BenchmarkResult]] = [None] * len(work)
    logger.info(
        f"Benchmark of {len(inputs)} inputs x {len(_seeds(params))} seeds, "
        f"{params.nb_parallel_runs} in parallel"
    )

    running: Dict[asyncio.Task, int] = {}
    try:
        while work or running:
            while work and len(running) < params.nb_parallel_runs:
                index, source, seed = work.popleft()
                task = asyncio.create_task(
                    _run_one(problem_generator, source, seed, params, session_factory)
                )
                running[task] = index
            done, _ = await asyncio.wait(set(running), return_when=asyncio.FIRST_COMPLETED)
            for task in done:
                results[running.pop(task)] = task.result()
    finally:
        for task in running:
            task.cancel()
        if running:
            # Let cancelled sessions release their engines before unwinding
            await asyncio.gather(*running, return_exceptions=True)

    final = [r for r in results if r is not None]
    if params.output:
        write_json_results(params.output, final)
    if params.summary:
        write_csv_summary(params.summary, final)
    return final
