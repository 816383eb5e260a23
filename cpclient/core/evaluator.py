# cpclient/core/evaluator.py

"""
Local evaluation of a model against a solution.

The evaluator gives every node its three-valued meaning: a concrete value or
``None`` for absent. It is used to check solutions on the client side (tests,
warm starts, engine output spot checks); it does not search.

A constraint is violated only when it evaluates to ``False``; ``None`` counts
as satisfied.
"""

import logging
import operator
from dataclasses import dataclass
from itertools import groupby
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union

from .exceptions import CPClientError
from .expressions import ModelElement
from .model import Model
from .nodes import ArgRef, Node, PresenceStatus
from .solution import IntervalValue, Solution

logger = logging.getLogger(__name__)

CumulEvents = List[Tuple[int, int]]


@dataclass(frozen=True)
class Violation:
    """A constraint or domain restriction the solution does not satisfy."""

    func: str
    node_id: Optional[int]
    message: str


def _step_value(table: Sequence[Sequence[int]], x: int) -> int:
    value = 0
    for bx, bv in table:
        if bx > x:
            break
        value = bv
    return value


def _step_points(table: Sequence[Sequence[int]], start: int, end: int) -> List[Tuple[int, int, int]]:
    """Constant pieces ``(lo, hi, value)`` of the function over ``[start, end)``."""
    cuts = [start] + [bx for bx, _ in table if start < bx < end] + [end]
    return [(lo, hi, _step_value(table, lo)) for lo, hi in zip(cuts, cuts[1:]) if lo < hi]


def _all_present(*values) -> bool:
    return all(v is not None for v in values)


_ARITH: Dict[str, Callable] = {
    "Plus": operator.add,
    "Minus": operator.sub,
    "Times": operator.mul,
    "Min2": min,
    "Max2": max,
}
_UNARY: Dict[str, Callable] = {
    "Neg": operator.neg,
    "Abs": abs,
    "Square": lambda x: x * x,
}
_COMPARE: Dict[str, Callable] = {
    "eq": operator.eq,
    "ne": operator.ne,
    "lt": operator.lt,
    "le": operator.le,
    "gt": operator.gt,
    "ge": operator.ge,
}
_PRECEDENCES: Dict[str, Tuple[str, str, Callable]] = {
    "endBeforeStart": ("end", "start", operator.le),
    "endBeforeEnd": ("end", "end", operator.le),
    "startBeforeStart": ("start", "start", operator.le),
    "startBeforeEnd": ("start", "end", operator.le),
    "endAtStart": ("end", "start", operator.eq),
    "endAtEnd": ("end", "end", operator.eq),
    "startAtStart": ("start", "start", operator.eq),
    "startAtEnd": ("start", "end", operator.eq),
}


class Evaluator:
    """Evaluates nodes of ``model`` under ``solution``, memoizing per node."""

    def __init__(self, model: Model, solution: Solution):
        self.model = model
        self.solution = solution
        self._cache: Dict[Node, Any] = {}

    def value(self, target: Union[ModelElement, Node]) -> Any:
        node = target.node if isinstance(target, ModelElement) else target
        if node not in self._cache:
            self._cache[node] = self._evaluate(node)
        return self._cache[node]

    def _arg(self, arg: Any) -> Any:
        if isinstance(arg, ArgRef):
            return self.value(arg.node)
        if isinstance(arg, list):
            return [self._arg(a) for a in arg]
        return arg

    def _evaluate(self, node: Node) -> Any:
        func = node.func
        if node.is_variable:
            return self.solution.get_value(node.id)
        if func in ("boolConst", "intConst", "floatConst"):
            return node.args[0]
        args = [self._arg(a) for a in node.args]

        if func.startswith(("int", "float")):
            op = func[3:] if func.startswith("int") else func[5:]
            if op in _ARITH:
                a, b = args
                return _ARITH[op](a, b) if _all_present(a, b) else None
            if op in _UNARY:
                return _UNARY[op](args[0]) if args[0] is not None else None
            if op == "Div":
                a, b = args
                if not _all_present(a, b) or b == 0:
                    return None
                return a / b
            if op == "Guard":
                return args[1] if args[0] is None else args[0]
            if op in ("Sum", "Min", "Max"):
                present = [v for v in args[0] if v is not None]
                if op == "Sum":
                    return sum(present, 0.0 if func.startswith("float") else 0)
                if not present:
                    return None
                return min(present) if op == "Min" else max(present)
        handler = getattr(self, f"_eval_{func}", None)
        if handler is not None:
            return handler(node, args)
        if func in _COMPARE:
            a, b = args
            return _COMPARE[func](a, b) if _all_present(a, b) else None
        if func in _PRECEDENCES:
            return self._precedence(func, *args)
        raise CPClientError(f"Cannot evaluate operator '{func}'", context={"id": node.id})

    # ------------------------------------------------------------------
    # Booleans
    # ------------------------------------------------------------------

    def _eval_boolGuard(self, node, args):
        return args[1] if args[0] is None else args[0]

    def _eval_identity(self, node, args):
        a, b = args
        if a is None or b is None:
            return a is None and b is None
        return a == b

    def _eval_inRange(self, node, args):
        x, lb, ub = args
        return None if x is None else lb <= x <= ub

    def _eval_not(self, node, args):
        return None if args[0] is None else not args[0]

    def _eval_and(self, node, args):
        a, b = args
        return bool(a and b) if _all_present(a, b) else None

    def _eval_or(self, node, args):
        a, b = args
        return bool(a or b) if _all_present(a, b) else None

    def _eval_implies(self, node, args):
        a, b = args
        return bool(not a or b) if _all_present(a, b) else None

    def _eval_presenceOf(self, node, args):
        return args[0] is not None

    # ------------------------------------------------------------------
    # Interval accessors
    # ------------------------------------------------------------------

    def _eval_startOf(self, node, args):
        return None if args[0] is None else args[0].start

    def _eval_endOf(self, node, args):
        return None if args[0] is None else args[0].end

    def _eval_lengthOf(self, node, args):
        return None if args[0] is None else args[0].length

    def _eval_startOr(self, node, args):
        return args[1] if args[0] is None else args[0].start

    def _eval_endOr(self, node, args):
        return args[1] if args[0] is None else args[0].end

    def _eval_lengthOr(self, node, args):
        return args[1] if args[0] is None else args[0].length

    def _precedence(self, func: str, a: IntervalValue, b: IntervalValue, delay) -> Optional[bool]:
        if not _all_present(a, b, delay):
            return None
        first, second, compare = _PRECEDENCES[func]
        return compare(getattr(a, first) + delay, getattr(b, second))

    # ------------------------------------------------------------------
    # Interval constraints
    # ------------------------------------------------------------------

    def _eval_alternative(self, node, args):
        main, options = args
        present = [o for o in options if o is not None]
        if main is None:
            return not present
        return len(present) == 1 and present[0] == main

    def _eval_span(self, node, args):
        main, covered = args
        present = [c for c in covered if c is not None]
        if main is None:
            return not present
        if not present:
            return False
        return main.start == min(c.start for c in present) and main.end == max(c.end for c in present)

    def _eval_sequenceVar(self, node, args):
        intervals = args[0]
        types = args[1] if len(args) > 1 else list(range(len(intervals)))
        return list(zip(intervals, types))

    def _eval_noOverlap(self, node, args):
        items = args[0]
        matrix = node.values
        for i in range(len(items)):
            a, ta = items[i]
            if a is None:
                continue
            for j in range(i + 1, len(items)):
                b, tb = items[j]
                if b is None:
                    continue
                gap_ab = matrix[ta][tb] if matrix else 0
                gap_ba = matrix[tb][ta] if matrix else 0
                if not (a.end + gap_ab <= b.start or b.end + gap_ba <= a.start):
                    return False
        return True

    # ------------------------------------------------------------------
    # Cumulative functions
    # ------------------------------------------------------------------

    def _eval_pulse(self, node, args):
        interval, height = args
        if interval is None or height is None:
            return []
        return [(interval.start, height), (interval.end, -height)]

    def _eval_stepAtStart(self, node, args):
        interval, height = args
        if interval is None or height is None:
            return []
        return [(interval.start, height)]

    def _eval_stepAtEnd(self, node, args):
        interval, height = args
        if interval is None or height is None:
            return []
        return [(interval.end, height)]

    def _eval_stepAt(self, node, args):
        return [(args[0], args[1])]

    def _eval_cumulPlus(self, node, args):
        return args[0] + args[1]

    def _eval_cumulNeg(self, node, args):
        return [(t, -h) for t, h in args[0]]

    def _eval_cumulMinus(self, node, args):
        return args[0] + [(t, -h) for t, h in args[1]]

    def _eval_cumulSum(self, node, args):
        return [event for events in args[0] for event in events]

    @staticmethod
    def _cumul_levels(events: CumulEvents) -> List[int]:
        levels = [0]
        level = 0
        for _, group in groupby(sorted(events), key=lambda e: e[0]):
            level += sum(h for _, h in group)
            levels.append(level)
        return levels

    def _eval_cumulLe(self, node, args):
        events, capacity = args
        return max(self._cumul_levels(events)) <= capacity

    def _eval_cumulGe(self, node, args):
        events, minimum = args
        return min(self._cumul_levels(events)) >= minimum

    # ------------------------------------------------------------------
    # Step functions
    # ------------------------------------------------------------------

    def _eval_stepFunction(self, node, args):
        return node.values or []

    def _eval_stepFunctionEval(self, node, args):
        table, x = args
        return None if x is None else _step_value(table, x)

    def _eval_stepFunctionSum(self, node, args):
        table, interval = args
        if interval is None:
            return None
        return sum((hi - lo) * v for lo, hi, v in _step_points(table, interval.start, interval.end))

    def _eval_stepFunctionSumInRange(self, node, args):
        table, interval, lb, ub = args
        if interval is None:
            return None
        total = sum((hi - lo) * v for lo, hi, v in _step_points(table, interval.start, interval.end))
        return lb <= total <= ub

    def _eval_forbidExtent(self, node, args):
        interval, table = args
        if interval is None:
            return None
        end = max(interval.end, interval.start + 1)
        return all(v != 0 for _, _, v in _step_points(table, interval.start, end))

    def _eval_forbidStart(self, node, args):
        interval, table = args
        return None if interval is None else _step_value(table, interval.start) != 0

    def _eval_forbidEnd(self, node, args):
        interval, table = args
        return None if interval is None else _step_value(table, interval.end - 1) != 0

    # ------------------------------------------------------------------
    # Objective
    # ------------------------------------------------------------------

    def _eval_minimize(self, node, args):
        return args[0]

    def _eval_maximize(self, node, args):
        return args[0]


# Lower bounds a variable has when none was given explicitly
_DEFAULT_BOUNDS: Dict[str, Dict[str, int]] = {
    "intVar": {"min": 0},
    "intervalVar": {"startMin": 0, "endMin": 0},
}


def _domain_violations(model: Model, solution: Solution) -> List[Violation]:
    violations = []
    for var in model.get_variables():
        node = var.node
        if not solution.has_value(node.id):
            violations.append(Violation(node.func, node.id, f"{var!r} has no value"))
            continue
        value = solution.get_value(node.id)
        if value is None:
            if node.status is None or node.status == PresenceStatus.PRESENT:
                violations.append(Violation(node.func, node.id, f"{var!r} must be present"))
            continue
        if node.status == PresenceStatus.ABSENT:
            violations.append(Violation(node.func, node.id, f"{var!r} must be absent"))
            continue
        if isinstance(value, IntervalValue):
            checks = [("start", value.start), ("end", value.end), ("length", value.length)]
        else:
            checks = [("", value)]
        bounds = {**_DEFAULT_BOUNDS.get(node.func, {}), **node.bounds}
        for prefix, v in checks:
            lo = bounds.get(f"{prefix}Min" if prefix else "min")
            hi = bounds.get(f"{prefix}Max" if prefix else "max")
            if (lo is not None and v < lo) or (hi is not None and v > hi):
                violations.append(
                    Violation(node.func, node.id, f"{var!r} {prefix or 'value'} {v} outside [{lo}, {hi}]")
                )
    return violations


def check_solution(model: Model, solution: Solution) -> List[Violation]:
    """All violated constraints and domain restrictions. Empty means feasible."""
    violations = _domain_violations(model, solution)
    if violations:
        # Constraints cannot be evaluated reliably without complete variable values
        return violations
    evaluator = Evaluator(model, solution)
    for element in model.constraints:
        node = element.node
        if evaluator.value(node) is False:
            violations.append(Violation(node.func, node.id, f"{node.func} is violated"))
    logger.debug(f"Checked solution of model '{model.name}': {len(violations)} violation(s)")
    return violations


def is_feasible(model: Model, solution: Solution) -> bool:
    return not check_solution(model, solution)


def evaluate(model: Model, solution: Solution, expr: Union[ModelElement, Node]) -> Any:
    """Value of a single expression; ``None`` when absent."""
    return Evaluator(model, solution).value(expr)
