# cpclient/benchmark/reports.py

"""
Benchmark results and the files written from them.
"""

import csv
import io
import json
import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

import numpy as np

from ..core.parameters import Parameters, wire_parameters
from ..core.solution import UNDEFINED_OBJECTIVE
from ..session.results import SolveResult

logger = logging.getLogger(__name__)

SUMMARY_FIELDS = [
    "modelName",
    "seed",
    "status",
    "objective",
    "lowerBound",
    "nbSolutions",
    "proof",
    "duration",
    "bestSolutionTime",
    "solveDate",
    "error",
]


@dataclass(frozen=True)
class BenchmarkResult:
    """Outcome of one (input, seed) run. ``result`` is None when the run failed."""

    model_name: str
    seed: Optional[int]
    solve_date: datetime
    parameters: Parameters
    error: Optional[str] = None
    result: Optional[SolveResult] = None

    @property
    def status(self) -> str:
        if self.error is not None:
            return "error"
        if self.result is None:
            return "skipped"
        if self.result.proof:
            return "optimal" if self.result.nb_solutions else "infeasible"
        return "solved" if self.result.nb_solutions else "unknown"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "modelName": self.model_name,
            "seed": self.seed,
            "solveDate": self.solve_date.isoformat(),
            "parameters": wire_parameters(self.parameters),
            "status": self.status,
            "error": self.error,
            "result": self.result.to_dict() if self.result is not None else None,
        }

    def summary_row(self) -> Dict[str, Any]:
        row: Dict[str, Any] = {
            "modelName": self.model_name,
            "seed": self.seed,
            "status": self.status,
            "solveDate": self.solve_date.isoformat(),
            "error": self.error,
        }
        if self.result is not None:
            data = self.result.to_dict()
            for key in ("objective", "lowerBound", "nbSolutions", "proof", "duration", "bestSolutionTime"):
                row[key] = data[key]
        return row


class CSVSummaryExporter:
    """Exports benchmark results to CSV format."""

    def __init__(self, fieldnames: Optional[List[str]] = None):
        self.fieldnames = fieldnames or SUMMARY_FIELDS

    def export(self, results: List[BenchmarkResult]) -> str:
        """Return CSV text for the given results."""
        output = io.StringIO()
        writer = csv.DictWriter(output, fieldnames=self.fieldnames)
        writer.writeheader()
        for result in results:
            row = result.summary_row()
            writer.writerow({k: row.get(k) for k in self.fieldnames})
        return output.getvalue()


def _ensure_parent(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def write_json_results(path: str, results: List[BenchmarkResult]) -> None:
    target = Path(path)
    _ensure_parent(target)
    target.write_text(
        json.dumps([r.to_dict() for r in results], indent=2, allow_nan=False),
        encoding="utf-8",
    )
    logger.info(f"Wrote {len(results)} results to {target}")


def write_csv_summary(path: str, results: List[BenchmarkResult]) -> None:
    target = Path(path)
    _ensure_parent(target)
    target.write_text(CSVSummaryExporter().export(results), encoding="utf-8", newline="")
    logger.info(f"Wrote CSV summary to {target}")


def _objective_sense(results: List[BenchmarkResult]) -> str:
    for r in results:
        if r.result is not None and r.result.summary is not None and r.result.summary.objective_sense:
            return r.result.summary.objective_sense
    return "minimize"


def aggregate_results(results: List[BenchmarkResult]) -> Dict[str, Dict[str, Any]]:
    """Per model statistics: run counts, duration spread and best objective."""
    by_model: Dict[str, List[BenchmarkResult]] = {}
    for r in results:
        by_model.setdefault(r.model_name, []).append(r)

    statistics: Dict[str, Dict[str, Any]] = {}
    for name, runs in by_model.items():
        solved = [r for r in runs if r.result is not None]
        durations = np.array(
            [r.result.duration for r in solved if r.result.duration is not None], dtype=float
        )
        objectives = np.array(
            [
                r.result.objective
                for r in solved
                if r.result.objective is not None and r.result.objective is not UNDEFINED_OBJECTIVE
            ],
            dtype=float,
        )
        best = None
        if objectives.size:
            sense = _objective_sense(solved)
            best = float(objectives.max() if sense == "maximize" else objectives.min())
        statistics[name] = {
            "runs": len(runs),
            "errors": sum(1 for r in runs if r.error is not None),
            "with_solution": sum(1 for r in solved if r.result.nb_solutions > 0),
            "proved": sum(1 for r in solved if r.result.proof),
            "mean_duration": float(durations.mean()) if durations.size else None,
            "min_duration": float(durations.min()) if durations.size else None,
            "max_duration": float(durations.max()) if durations.size else None,
            "best_objective": best,
        }
    return statistics
