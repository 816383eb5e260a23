# cpclient/benchmark/cli.py

"""
Command line benchmark driver.

    cpclient [OPTIONS] INPUT_FILE1.json [INPUT_FILE2.json] ..

Every parameter has one camelCase flag (``--timeLimit 60``). Worker tunables
can be restricted to one worker with ``--worker3.searchType FDS`` or to a
range of workers with ``--worker0-2.failLimit 1000``.
"""

import argparse
import asyncio
import logging
import re
import sys
import typing
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from pydantic import ValidationError
from pydantic.alias_generators import to_camel

from ..config import setup_logging
from ..core.exceptions import BenchmarkUsageError
from ..core.parameters import BenchmarkParameters, Parameters, WorkerParameters
from ..protocol.codec import ProblemDefinition, json_to_problem
from .orchestrator import benchmark
from .reports import aggregate_results

logger = logging.getLogger(__name__)

PROG = "cpclient"
USAGE = f"{PROG} [OPTIONS] INPUT_FILE1.json [INPUT_FILE2.json] .."

_BOOL_VALUES = {
    "true": True,
    "yes": True,
    "on": True,
    "1": True,
    "false": False,
    "no": False,
    "off": False,
    "0": False,
}

_WORKER_FLAG = re.compile(r"^--worker(\d+)(?:-(\d+))?\.([A-Za-z][A-Za-z0-9]*)(?:=(.*))?$")


def _parse_bool(text: str) -> bool:
    try:
        return _BOOL_VALUES[text.lower()]
    except KeyError:
        raise argparse.ArgumentTypeError(f"invalid boolean value: '{text}'")


class _FlagSpec(typing.NamedTuple):
    field: str
    flag: str
    convert: Callable[[str], Any]
    choices: Optional[List[str]]
    is_bool: bool
    help: Optional[str]


def _flag_spec(name: str, field) -> Optional[_FlagSpec]:
    """How a parameter field is read from the command line, None if it cannot be."""
    annotation = field.annotation
    if typing.get_origin(annotation) is typing.Union:
        annotation = next(a for a in typing.get_args(annotation) if a is not type(None))
    choices = None
    if typing.get_origin(annotation) is typing.Literal:
        choices = [str(c) for c in typing.get_args(annotation)]
        convert: Callable[[str], Any] = str
    elif annotation is bool:
        convert = _parse_bool
    elif annotation in (int, float, str):
        convert = annotation
    else:
        return None
    return _FlagSpec(name, f"--{to_camel(name)}", convert, choices, annotation is bool, field.description)


def _specs(model) -> Dict[str, _FlagSpec]:
    specs = {}
    for name, field in model.model_fields.items():
        spec = _flag_spec(name, field)
        if spec is not None:
            specs[spec.flag] = spec
    return specs


_ALL_FLAGS = _specs(BenchmarkParameters)
_WORKER_FIELDS = {spec.flag[2:]: spec for spec in _specs(WorkerParameters).values()}


class _ArgumentParser(argparse.ArgumentParser):
    """argparse parser that exits with status 1 on usage errors."""

    def error(self, message):
        self.print_usage(sys.stderr)
        self.exit(1, f"{self.prog}: error: {message}\n")


def build_parser(usage: Optional[str] = None) -> argparse.ArgumentParser:
    parser = _ArgumentParser(
        prog=PROG,
        usage=usage or USAGE,
        description="Solve the given problem files and report the results.",
        epilog=(
            "Worker parameters can target workers by index: --workerN.NAME VALUE "
            "or --workerN-M.NAME VALUE (for example --worker0-1.searchType FDS)."
        ),
        allow_abbrev=False,
    )
    groups = {
        "worker": parser.add_argument_group("Worker parameters"),
        "solver": parser.add_argument_group("Solver parameters"),
        "benchmark": parser.add_argument_group("Benchmark options"),
    }
    for spec in _ALL_FLAGS.values():
        if spec.field in WorkerParameters.model_fields:
            group = groups["worker"]
        elif spec.field in Parameters.model_fields:
            group = groups["solver"]
        else:
            group = groups["benchmark"]
        kwargs: Dict[str, Any] = {
            "dest": spec.field,
            "type": spec.convert,
            "default": argparse.SUPPRESS,
            "help": spec.help,
        }
        if spec.choices:
            kwargs["choices"] = spec.choices
        group.add_argument(spec.flag, **kwargs)
    return parser


def _normalize_bool_flags(argv: Sequence[str]) -> List[str]:
    """Give bare boolean flags an explicit ``true`` value."""
    result = []
    for i, token in enumerate(argv):
        spec = _ALL_FLAGS.get(token)
        if spec is not None and spec.is_bool:
            following = argv[i + 1] if i + 1 < len(argv) else None
            if following is None or following.lower() not in _BOOL_VALUES:
                token = f"{token}=true"
        result.append(token)
    return result


def _extract_worker_args(
    parser: argparse.ArgumentParser, argv: Sequence[str], strict: bool
) -> Tuple[List[str], Dict[int, Dict[str, Any]]]:
    rest: List[str] = []
    overrides: Dict[int, Dict[str, Any]] = {}
    i = 0
    while i < len(argv):
        token = argv[i]
        i += 1
        match = _WORKER_FLAG.match(token)
        if match is None:
            rest.append(token)
            continue
        first, last, name, value = match.groups()
        spec = _WORKER_FIELDS.get(name)
        if spec is None:
            if strict:
                parser.error(f"unrecognized arguments: {token}")
            rest.append(token)
            continue
        if value is None:
            if i >= len(argv):
                if not spec.is_bool:
                    parser.error(f"argument {token}: expected one argument")
                value = "true"
            elif spec.is_bool and argv[i].lower() not in _BOOL_VALUES:
                value = "true"
            else:
                value = argv[i]
                i += 1
        lo = int(first)
        hi = int(last) if last is not None else lo
        if hi < lo:
            parser.error(f"argument {token}: empty worker range {lo}-{hi}")
        try:
            converted = spec.convert(value)
        except (argparse.ArgumentTypeError, ValueError):
            parser.error(f"argument {token}: invalid value '{value}'")
        if spec.choices and converted not in spec.choices:
            parser.error(f"argument {token}: invalid choice '{value}' (choose from {spec.choices})")
        for index in range(lo, hi + 1):
            overrides.setdefault(index, {})[spec.field] = converted
    return rest, overrides


def _validation_message(error: ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}" for err in error.errors()
    )


def _parse(
    argv: Optional[Sequence[str]], usage: Optional[str], strict: bool
) -> Tuple[BenchmarkParameters, List[str]]:
    parser = build_parser(usage)
    argv = list(sys.argv[1:] if argv is None else argv)
    argv, overrides = _extract_worker_args(parser, _normalize_bool_flags(argv), strict)
    namespace, extras = parser.parse_known_args(argv)
    if strict:
        unknown = [arg for arg in extras if arg.startswith("-") and arg != "-"]
        if unknown:
            parser.error(f"unrecognized arguments: {' '.join(unknown)}")

    data = dict(vars(namespace))
    if overrides:
        data["workers"] = [
            WorkerParameters.model_validate(overrides.get(i, {}))
            for i in range(max(overrides) + 1)
        ]
    try:
        params = BenchmarkParameters.model_validate(data)
    except ValidationError as e:
        parser.error(_validation_message(e))
    return params, extras


def parse_parameters(
    argv: Optional[Sequence[str]] = None, usage: Optional[str] = None
) -> Tuple[BenchmarkParameters, List[str]]:
    """Parse options and return them with the input files.

    ``--help`` prints the help and exits with 0, an unknown option exits with 1.
    """
    return _parse(argv, usage, strict=True)


def parse_some_parameters(
    argv: Optional[Sequence[str]] = None, usage: Optional[str] = None
) -> Tuple[BenchmarkParameters, List[str]]:
    """Like ``parse_parameters`` but unknown options are returned with the inputs."""
    return _parse(argv, usage, strict=False)


def model_name_from_filename(filename: str) -> str:
    path = Path(filename)
    if path.suffix.lower() == ".json":
        return path.stem
    return path.name


def read_problem(filename: str) -> ProblemDefinition:
    """Load a problem JSON file; the model is named after the file if unnamed."""
    try:
        text = Path(filename).read_text(encoding="utf-8")
    except OSError as e:
        raise BenchmarkUsageError(f"Cannot read '{filename}': {e}", cause=e) from e
    problem = json_to_problem(text)
    if not problem.model.name:
        problem.model.name = model_name_from_filename(filename)
    return problem


def _report(results) -> None:
    for name, stats in aggregate_results(results).items():
        duration = stats["mean_duration"]
        print(
            f"{name}: {stats['runs']} runs, {stats['errors']} errors, "
            f"{stats['with_solution']} with solution, {stats['proved']} proved, "
            f"best objective {stats['best_objective']}, "
            f"mean duration {'-' if duration is None else f'{duration:.2f}s'}"
        )


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Entry point of the ``cpclient`` command. Returns the exit status."""
    argv = list(sys.argv[1:] if argv is None else argv)
    if not argv:
        argv = ["--help"]
    params, inputs = parse_parameters(argv)
    setup_logging()

    try:
        results = asyncio.run(benchmark(read_problem, inputs, params))
    except BenchmarkUsageError as e:
        print(f"{PROG}: error: {e.message}", file=sys.stderr)
        return 1

    _report(results)
    failed = [r for r in results if r.error is not None]
    if failed:
        logger.error(f"{len(failed)} of {len(results)} runs failed")
        return 1
    return 0


def run() -> None:
    sys.exit(main())


if __name__ == "__main__":
    run()
