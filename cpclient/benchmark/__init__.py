# cpclient/benchmark/__init__.py

"""Benchmark driver: parallel runs over inputs and seeds, reports and CLI."""

from .orchestrator import benchmark
from .patterns import expand_pattern, flat_name
from .reports import (
    BenchmarkResult,
    CSVSummaryExporter,
    aggregate_results,
    write_csv_summary,
    write_json_results,
)
