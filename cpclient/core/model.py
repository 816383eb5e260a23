# cpclient/core/model.py

"""
Model: owner of the expression graph and entry point of the modeling vocabulary.

Every public modeling call creates exactly one node. Operands are captured as
``ArgRef`` objects; a node gets a materialized id the moment it is used by a
second parent, named, created as a decision variable, or made the objective.
Nodes used once stay inline and never receive an id.
"""

import logging
import math
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import numpy as np

from .exceptions import ConstructionError
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
    element_class,
)
from .nodes import (
    ArgRef,
    INT_VAR_MAX,
    INT_VAR_MIN,
    INTERVAL_MAX,
    INTERVAL_MIN,
    LENGTH_MAX,
    FLOAT_VAR_MAX,
    FLOAT_VAR_MIN,
    Node,
    PresenceStatus,
)

logger = logging.getLogger(__name__)

Number = Union[int, float]
RangeSpec = Union[None, int, Tuple[Optional[int], Optional[int]]]


def _is_int_literal(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


class Model:
    """Constraint model built from chained modeling calls.

    The model keeps three things: ``refs`` (materialized nodes in id order),
    the top-level argument list (constraints added to the model), and the
    objective. Everything else is reachable from those through the nodes'
    argument lists.
    """

    def __init__(self, name: Optional[str] = None):
        self.name = name
        self._refs: List[Node] = []
        self._model_args: List[ArgRef] = []
        self._objective: Optional[Objective] = None
        self._variables: Dict[int, ModelElement] = {}
        self._constants: Dict[Tuple[str, Any], ModelElement] = {}

    def __repr__(self) -> str:
        return (
            f"Model(name={self.name!r}, refs={len(self._refs)}, "
            f"constraints={len(self._model_args)})"
        )

    # ------------------------------------------------------------------
    # Graph bookkeeping
    # ------------------------------------------------------------------

    @property
    def refs(self) -> Tuple[Node, ...]:
        return tuple(self._refs)

    @property
    def top_level_args(self) -> Tuple[ArgRef, ...]:
        return tuple(self._model_args)

    @property
    def constraints(self) -> List[ModelElement]:
        return [self._element(ref.node) for ref in self._model_args]

    def _materialize(self, node: Node) -> int:
        if node.id is None:
            node.id = len(self._refs)
            self._refs.append(node)
        return node.id

    def _element(self, node: Node) -> ModelElement:
        if node.id is not None and node.id in self._variables:
            return self._variables[node.id]
        return element_class(node)(self, node)

    def _owned(self, value: ModelElement, op: str) -> None:
        if value._model is not self:
            raise ConstructionError(
                f"{op}: expression belongs to a different model",
                context={"model": self.name, "operand": repr(value)},
            )

    def _arg(self, value: Any) -> Any:
        if isinstance(value, ModelElement):
            self._owned(value, "argument")
            node = value._node
            node.use_count += 1
            if node.use_count > 1:
                self._materialize(node)
            return ArgRef(node)
        if isinstance(value, (list, tuple)):
            return [self._arg(v) for v in value]
        if value is None or isinstance(value, (bool, int, float, str)):
            return value
        raise ConstructionError(
            f"Unsupported argument of type {type(value).__name__}"
        )

    def _new(self, func: str, args: Sequence[Any], **props) -> Any:
        node = Node(func, [self._arg(a) for a in args], **props)
        return self._element(node)

    def _new_constraint(self, func: str, args: Sequence[Any], **props) -> Constraint:
        constraint = self._new(func, args, **props)
        self._model_args.append(self._arg(constraint))
        return constraint

    def _load(
        self,
        refs: List[Node],
        model_args: List[ArgRef],
        objective: Optional[Node],
    ) -> None:
        """Install a decoded graph. Used by the wire codec only."""
        self._refs = refs
        self._model_args = model_args
        self._variables = {}
        for node in refs:
            if node.is_variable:
                self._variables[node.id] = element_class(node)(self, node)
        self._objective = self._element(objective) if objective is not None else None

    # ------------------------------------------------------------------
    # Operand validation
    # ------------------------------------------------------------------

    def _numeric(self, value: Any, op: str) -> Any:
        if isinstance(value, FloatExpr):
            self._owned(value, op)
            return value
        if isinstance(value, ModelElement):
            raise ConstructionError(
                f"{op}: expected a numeric expression, got {type(value).__name__}"
            )
        if isinstance(value, (bool, int, float)):
            if isinstance(value, float) and not math.isfinite(value):
                raise ConstructionError(f"{op}: constant must be finite, got {value}")
            if _is_int_literal(value) and not INT_VAR_MIN <= value <= INT_VAR_MAX:
                raise ConstructionError(
                    f"{op}: integer constant {value} outside [{INT_VAR_MIN}, {INT_VAR_MAX}]"
                )
            return value
        raise ConstructionError(
            f"{op}: expected a number or an expression, got {type(value).__name__}"
        )

    def _boolean(self, value: Any, op: str) -> Any:
        if isinstance(value, BoolExpr):
            self._owned(value, op)
            return value
        if isinstance(value, bool):
            return value
        raise ConstructionError(
            f"{op}: expected a boolean expression, got {type(value).__name__}"
        )

    def _interval(self, value: Any, op: str) -> IntervalVar:
        if not isinstance(value, IntervalVar):
            raise ConstructionError(
                f"{op}: expected an interval variable, got {type(value).__name__}"
            )
        self._owned(value, op)
        return value

    def _interval_list(self, values: Any, op: str) -> List[IntervalVar]:
        if isinstance(values, ModelElement) or not isinstance(values, (list, tuple)):
            raise ConstructionError(f"{op}: expected a list of interval variables")
        return [self._interval(v, op) for v in values]

    def _cumul(self, value: Any, op: str) -> CumulExpr:
        if not isinstance(value, CumulExpr):
            raise ConstructionError(
                f"{op}: expected a cumulative expression, got {type(value).__name__}"
            )
        self._owned(value, op)
        return value

    def _step_function(self, value: Any, op: str) -> StepFunction:
        if not isinstance(value, StepFunction):
            raise ConstructionError(
                f"{op}: expected a step function, got {type(value).__name__}"
            )
        self._owned(value, op)
        return value

    def _int_literal(self, value: Any, op: str, lower: int, upper: int) -> int:
        if not _is_int_literal(value):
            raise ConstructionError(
                f"{op}: expected an integer, got {type(value).__name__}"
            )
        if not lower <= value <= upper:
            raise ConstructionError(f"{op}: value {value} outside [{lower}, {upper}]")
        return value

    def _int_operand(self, value: Any, op: str, lower: int, upper: int) -> Any:
        if isinstance(value, IntExpr):
            self._owned(value, op)
            return value
        return self._int_literal(value, op, lower, upper)

    @staticmethod
    def _is_integral(value: Any) -> bool:
        return isinstance(value, IntExpr) or isinstance(value, int)

    @staticmethod
    def _require_expression(values: Sequence[Any], op: str) -> None:
        if not any(isinstance(v, ModelElement) for v in values):
            raise ConstructionError(f"{op}: at least one operand must be an expression")

    # ------------------------------------------------------------------
    # Bounds and presence
    # ------------------------------------------------------------------

    @staticmethod
    def _presence_status(optional: Optional[bool]) -> Optional[PresenceStatus]:
        if optional is None:
            return PresenceStatus.ABSENT
        return PresenceStatus.OPTIONAL if optional else None

    def _set_presence(self, node: Node, optional: Optional[bool]) -> None:
        node.status = self._presence_status(optional)

    def _check_bound(self, field: str, value: Any, lower: Number, upper: Number) -> None:
        if lower == FLOAT_VAR_MIN and upper == FLOAT_VAR_MAX:
            if not isinstance(value, (int, float)) or isinstance(value, bool):
                raise ConstructionError(f"{field}: expected a number, got {value!r}")
            if math.isnan(value):
                raise ConstructionError(f"{field}: NaN is not a valid bound")
            return
        if not _is_int_literal(value):
            raise ConstructionError(f"{field}: expected an integer, got {value!r}")
        if not lower <= value <= upper:
            raise ConstructionError(f"{field}: {value} outside [{lower}, {upper}]")

    def _set_bound(self, node: Node, field: str, value: Any, lower: Number, upper: Number) -> None:
        self._check_bound(field, value, lower, upper)
        if isinstance(value, float) and math.isinf(value):
            # Infinite float bounds are the default and are not transmitted
            node.bounds.pop(field, None)
        else:
            node.bounds[field] = value

    def _range_bounds(
        self, spec: RangeSpec, prefix: str, lower: Number, upper: Number
    ) -> Dict[str, Number]:
        if spec is None:
            return {}
        if isinstance(spec, (int, float)) and not isinstance(spec, bool):
            spec = (spec, spec)
        if not isinstance(spec, (tuple, list)) or len(spec) != 2:
            raise ConstructionError(
                f"{prefix or 'range'}: expected a value or a (min, max) pair, got {spec!r}"
            )
        lo_field = f"{prefix}Min" if prefix else "min"
        hi_field = f"{prefix}Max" if prefix else "max"
        bounds: Dict[str, Number] = {}
        lo, hi = spec
        if lo is not None:
            self._check_bound(lo_field, lo, lower, upper)
            if not (isinstance(lo, float) and math.isinf(lo)):
                bounds[lo_field] = lo
        if hi is not None:
            self._check_bound(hi_field, hi, lower, upper)
            if not (isinstance(hi, float) and math.isinf(hi)):
                bounds[hi_field] = hi
        if lo is not None and hi is not None and lo > hi:
            raise ConstructionError(f"{prefix or 'range'}: min {lo} is greater than max {hi}")
        return bounds

    # ------------------------------------------------------------------
    # Decision variables
    # ------------------------------------------------------------------

    def _variable(self, func: str, bounds: Dict[str, Number], optional, name) -> Any:
        node = Node(func, [], name=name, status=self._presence_status(optional), bounds=bounds)
        self._materialize(node)
        var = element_class(node)(self, node)
        self._variables[node.id] = var
        return var

    def bool_var(self, optional: Optional[bool] = False, name: Optional[str] = None) -> BoolVar:
        """Create a boolean variable. ``optional=None`` creates it absent."""
        return self._variable("boolVar", {}, optional, name)

    def int_var(
        self,
        min: Optional[int] = None,
        max: Optional[int] = None,
        optional: Optional[bool] = False,
        name: Optional[str] = None,
    ) -> IntVar:
        """Create an integer variable with domain [min, max] (default [0, INT_VAR_MAX])."""
        bounds = self._range_bounds((min, max), "", INT_VAR_MIN, INT_VAR_MAX)
        return self._variable("intVar", bounds, optional, name)

    def float_var(
        self,
        min: Optional[float] = None,
        max: Optional[float] = None,
        optional: Optional[bool] = False,
        name: Optional[str] = None,
    ) -> FloatVar:
        bounds = self._range_bounds((min, max), "", FLOAT_VAR_MIN, FLOAT_VAR_MAX)
        return self._variable("floatVar", bounds, optional, name)

    def interval_var(
        self,
        start: RangeSpec = None,
        end: RangeSpec = None,
        length: RangeSpec = None,
        optional: Optional[bool] = False,
        name: Optional[str] = None,
    ) -> IntervalVar:
        """Create an interval variable.

        ``start``, ``end`` and ``length`` accept either a fixed integer or a
        ``(min, max)`` pair where either side may be None. Starts and ends are
        restricted to [INTERVAL_MIN, INTERVAL_MAX], lengths to [0, LENGTH_MAX].
        ``optional=True`` makes the interval optional, ``optional=None`` absent.
        """
        bounds: Dict[str, Number] = {}
        bounds.update(self._range_bounds(start, "start", INTERVAL_MIN, INTERVAL_MAX))
        bounds.update(self._range_bounds(end, "end", INTERVAL_MIN, INTERVAL_MAX))
        bounds.update(self._range_bounds(length, "length", 0, LENGTH_MAX))
        return self._variable("intervalVar", bounds, optional, name)

    def sequence_var(
        self,
        intervals: Sequence[IntervalVar],
        types: Optional[Sequence[int]] = None,
        name: Optional[str] = None,
    ) -> SequenceVar:
        """Sequence over ``intervals``; ``types[i]`` selects the transition row of interval i."""
        intervals = self._interval_list(intervals, "sequenceVar")
        args: List[Any] = [list(intervals)]
        if types is not None:
            types = list(types)
            if len(types) != len(intervals):
                raise ConstructionError(
                    f"sequenceVar: {len(types)} types given for {len(intervals)} intervals"
                )
            for t in types:
                self._int_literal(t, "sequenceVar type", 0, INT_VAR_MAX)
            args.append(types)
        seq = self._new("sequenceVar", args)
        if name is not None:
            seq.name = name
        return seq

    # ------------------------------------------------------------------
    # Constants
    # ------------------------------------------------------------------

    def _constant(self, value: Any) -> ModelElement:
        if isinstance(value, bool):
            func = "boolConst"
        elif isinstance(value, int):
            func = "intConst"
        else:
            func = "floatConst"
        key = (func, value)
        element = self._constants.get(key)
        if element is None:
            element = self._new(func, [value])
            self._constants[key] = element
        return element

    # ------------------------------------------------------------------
    # Arithmetic
    # ------------------------------------------------------------------

    def _arith(self, op: str, *operands) -> FloatExpr:
        values = [self._numeric(v, op) for v in operands]
        self._require_expression(values, op)
        prefix = "int" if all(self._is_integral(v) for v in values) else "float"
        return self._new(prefix + op, values)

    def plus(self, a, b) -> FloatExpr:
        """Sum of two operands; absent if either is absent."""
        return self._arith("Plus", a, b)

    def minus(self, a, b) -> FloatExpr:
        return self._arith("Minus", a, b)

    def times(self, a, b) -> FloatExpr:
        return self._arith("Times", a, b)

    def div(self, a, b) -> FloatExpr:
        values = [self._numeric(a, "div"), self._numeric(b, "div")]
        self._require_expression(values, "div")
        return self._new("floatDiv", values)

    def neg(self, a) -> FloatExpr:
        return self._arith("Neg", a)

    def abs(self, a) -> FloatExpr:
        return self._arith("Abs", a)

    def square(self, a) -> FloatExpr:
        return self._arith("Square", a)

    def min2(self, a, b) -> FloatExpr:
        """Minimum of two operands; absent if either is absent."""
        return self._arith("Min2", a, b)

    def max2(self, a, b) -> FloatExpr:
        """Maximum of two operands; absent if either is absent."""
        return self._arith("Max2", a, b)

    def _aggregate(self, op: str, exprs: Sequence[Any]) -> FloatExpr:
        if isinstance(exprs, ModelElement) or not isinstance(exprs, (list, tuple)):
            raise ConstructionError(f"{op.lower()}: expected a list of expressions")
        values = [self._numeric(v, op.lower()) for v in exprs]
        prefix = "int" if all(self._is_integral(v) for v in values) else "float"
        items = [v if isinstance(v, ModelElement) else self._constant(v) for v in values]
        return self._new(prefix + op, [items])

    def sum(self, exprs: Sequence[Any]) -> FloatExpr:
        """Sum over an array. Absent operands are ignored; ``sum([])`` is 0."""
        return self._aggregate("Sum", exprs)

    def min(self, exprs: Sequence[Any]) -> FloatExpr:
        """Minimum over present operands; absent when none is present."""
        return self._aggregate("Min", exprs)

    def max(self, exprs: Sequence[Any]) -> FloatExpr:
        """Maximum over present operands; absent when none is present."""
        return self._aggregate("Max", exprs)

    def guard(self, expr, default=0) -> FloatExpr:
        """``expr`` when present, otherwise the constant ``default``. Never absent."""
        if not isinstance(expr, FloatExpr):
            raise ConstructionError(
                f"guard: expected a numeric expression, got {type(expr).__name__}"
            )
        self._owned(expr, "guard")
        if isinstance(expr, BoolExpr):
            if not isinstance(default, bool) and default not in (0, 1):
                raise ConstructionError(f"guard: boolean default expected, got {default!r}")
            return self._new("boolGuard", [expr, bool(default)])
        if isinstance(expr, IntExpr):
            default = self._int_literal(default, "guard", INT_VAR_MIN, INT_VAR_MAX)
            return self._new("intGuard", [expr, default])
        default = self._numeric(default, "guard")
        if isinstance(default, ModelElement):
            raise ConstructionError("guard: default must be a constant")
        return self._new("floatGuard", [expr, default])

    # ------------------------------------------------------------------
    # Comparisons and logic
    # ------------------------------------------------------------------

    def _compare(self, op: str, a, b) -> BoolExpr:
        values = [self._numeric(a, op), self._numeric(b, op)]
        self._require_expression(values, op)
        return self._new(op, values)

    def eq(self, a, b) -> BoolExpr:
        """Equality of values; absent if either side is absent."""
        return self._compare("eq", a, b)

    def ne(self, a, b) -> BoolExpr:
        return self._compare("ne", a, b)

    def lt(self, a, b) -> BoolExpr:
        return self._compare("lt", a, b)

    def le(self, a, b) -> BoolExpr:
        return self._compare("le", a, b)

    def gt(self, a, b) -> BoolExpr:
        return self._compare("gt", a, b)

    def ge(self, a, b) -> BoolExpr:
        return self._compare("ge", a, b)

    def identity(self, a, b) -> BoolExpr:
        """Equality of value and presence: false when exactly one side is absent."""
        return self._compare("identity", a, b)

    def in_range(self, expr, lb: Number, ub: Number) -> BoolExpr:
        if not isinstance(expr, FloatExpr):
            raise ConstructionError("inRange: expected a numeric expression")
        self._owned(expr, "inRange")
        lb = self._numeric(lb, "inRange")
        ub = self._numeric(ub, "inRange")
        if isinstance(lb, ModelElement) or isinstance(ub, ModelElement):
            raise ConstructionError("inRange: bounds must be constants")
        if lb > ub:
            raise ConstructionError(f"inRange: lower bound {lb} is greater than {ub}")
        return self._new("inRange", [expr, lb, ub])

    def not_(self, a) -> BoolExpr:
        value = self._boolean(a, "not")
        self._require_expression([value], "not")
        return self._new("not", [value])

    def _logical(self, op: str, a, b) -> BoolExpr:
        values = [self._boolean(a, op), self._boolean(b, op)]
        self._require_expression(values, op)
        return self._new(op, values)

    def and_(self, a, b) -> BoolExpr:
        return self._logical("and", a, b)

    def or_(self, a, b) -> BoolExpr:
        return self._logical("or", a, b)

    def implies(self, a, b) -> BoolExpr:
        return self._logical("implies", a, b)

    def presence_of(self, expr) -> BoolExpr:
        """Presence of an expression or interval: always true or false, never absent."""
        if not isinstance(expr, (FloatExpr, IntervalVar)):
            raise ConstructionError(
                f"presenceOf: expected an expression or interval, got {type(expr).__name__}"
            )
        self._owned(expr, "presenceOf")
        return self._new("presenceOf", [expr])

    # ------------------------------------------------------------------
    # Interval accessors and precedences
    # ------------------------------------------------------------------

    def start_of(self, interval) -> IntExpr:
        return self._new("startOf", [self._interval(interval, "startOf")])

    def end_of(self, interval) -> IntExpr:
        return self._new("endOf", [self._interval(interval, "endOf")])

    def length_of(self, interval) -> IntExpr:
        return self._new("lengthOf", [self._interval(interval, "lengthOf")])

    def start_or(self, interval, default: int) -> IntExpr:
        default = self._int_literal(default, "startOr", INTERVAL_MIN, INTERVAL_MAX)
        return self._new("startOr", [self._interval(interval, "startOr"), default])

    def end_or(self, interval, default: int) -> IntExpr:
        default = self._int_literal(default, "endOr", INTERVAL_MIN, INTERVAL_MAX)
        return self._new("endOr", [self._interval(interval, "endOr"), default])

    def length_or(self, interval, default: int) -> IntExpr:
        default = self._int_literal(default, "lengthOr", 0, LENGTH_MAX)
        return self._new("lengthOr", [self._interval(interval, "lengthOr"), default])

    def _precedence(self, func: str, predecessor, successor, delay) -> Constraint:
        a = self._interval(predecessor, func)
        b = self._interval(successor, func)
        delay = self._int_operand(delay, func, -LENGTH_MAX, LENGTH_MAX)
        return self._new_constraint(func, [a, b, delay])

    def end_before_start(self, predecessor, successor, delay=0) -> Constraint:
        """``predecessor.end + delay <= successor.start`` when both are present."""
        return self._precedence("endBeforeStart", predecessor, successor, delay)

    def end_before_end(self, predecessor, successor, delay=0) -> Constraint:
        return self._precedence("endBeforeEnd", predecessor, successor, delay)

    def start_before_start(self, predecessor, successor, delay=0) -> Constraint:
        return self._precedence("startBeforeStart", predecessor, successor, delay)

    def start_before_end(self, predecessor, successor, delay=0) -> Constraint:
        return self._precedence("startBeforeEnd", predecessor, successor, delay)

    def end_at_start(self, predecessor, successor, delay=0) -> Constraint:
        return self._precedence("endAtStart", predecessor, successor, delay)

    def end_at_end(self, predecessor, successor, delay=0) -> Constraint:
        return self._precedence("endAtEnd", predecessor, successor, delay)

    def start_at_start(self, predecessor, successor, delay=0) -> Constraint:
        return self._precedence("startAtStart", predecessor, successor, delay)

    def start_at_end(self, predecessor, successor, delay=0) -> Constraint:
        return self._precedence("startAtEnd", predecessor, successor, delay)

    # ------------------------------------------------------------------
    # Interval constraints
    # ------------------------------------------------------------------

    def _main_and_group(self, func: str, main, group) -> Tuple[IntervalVar, List[IntervalVar]]:
        main = self._interval(main, func)
        group = self._interval_list(group, func)
        if not group:
            raise ConstructionError(f"{func}: at least one interval is required")
        if any(g is main or g.node is main.node for g in group):
            raise ConstructionError(f"{func}: main interval cannot be part of its own group")
        return main, group

    def alternative(self, main, options: Sequence[IntervalVar]) -> Constraint:
        """If ``main`` is present exactly one option is present and identical to it;
        ``main`` is absent exactly when all options are absent."""
        main, options = self._main_and_group("alternative", main, options)
        return self._new_constraint("alternative", [main, options])

    def span(self, main, covered: Sequence[IntervalVar]) -> Constraint:
        """``main`` spans the present intervals of ``covered``; absent exactly when all are."""
        main, covered = self._main_and_group("span", main, covered)
        return self._new_constraint("span", [main, covered])

    def _transition_matrix(self, transitions: Any, size: int) -> List[List[int]]:
        try:
            matrix = np.asarray(transitions)
        except ValueError as e:
            raise ConstructionError(f"noOverlap: malformed transition matrix: {e}") from e
        if size == 0 and matrix.size == 0:
            return []
        if matrix.ndim != 2 or matrix.shape != (size, size):
            raise ConstructionError(
                f"noOverlap: transition matrix must be {size}x{size}, got shape {matrix.shape}"
            )
        if not np.issubdtype(matrix.dtype, np.integer):
            raise ConstructionError("noOverlap: transition times must be integers")
        if (matrix < 0).any():
            raise ConstructionError("noOverlap: transition times cannot be negative")
        if (matrix > INTERVAL_MAX).any():
            raise ConstructionError(
                f"noOverlap: transition times cannot exceed {INTERVAL_MAX}"
            )
        return matrix.tolist()

    def no_overlap(self, intervals, transitions=None) -> Constraint:
        """Forbid overlap among present intervals (a list or a sequence variable).

        With ``transitions``, ``transitions[i][j]`` is the minimum gap between an
        interval of type i and a later interval of type j, enforced for every
        pair. Without explicit types, the type of an interval is its index.
        """
        if isinstance(intervals, SequenceVar):
            self._owned(intervals, "noOverlap")
            sequence = intervals
        else:
            sequence = self.sequence_var(intervals)
        values = None
        if transitions is not None:
            seq_args = sequence.node.args
            if len(seq_args) > 1:
                types = seq_args[1]
                size = (max(types) + 1) if types else 0
            else:
                size = len(seq_args[0])
            values = self._transition_matrix(transitions, size)
        return self._new_constraint("noOverlap", [sequence], values=values)

    # ------------------------------------------------------------------
    # Cumulative functions
    # ------------------------------------------------------------------

    def _height(self, height, op: str) -> Any:
        return self._int_operand(height, op, -INT_VAR_MAX, INT_VAR_MAX)

    def pulse(self, interval, height) -> CumulExpr:
        """Contribution of ``height`` over the extent of a present interval."""
        return self._new("pulse", [self._interval(interval, "pulse"), self._height(height, "pulse")])

    def step_at_start(self, interval, height) -> CumulExpr:
        interval = self._interval(interval, "stepAtStart")
        return self._new("stepAtStart", [interval, self._height(height, "stepAtStart")])

    def step_at_end(self, interval, height) -> CumulExpr:
        interval = self._interval(interval, "stepAtEnd")
        return self._new("stepAtEnd", [interval, self._height(height, "stepAtEnd")])

    def step_at(self, x: int, height: int) -> CumulExpr:
        x = self._int_literal(x, "stepAt", INTERVAL_MIN, INTERVAL_MAX)
        height = self._int_literal(height, "stepAt", -INT_VAR_MAX, INT_VAR_MAX)
        return self._new("stepAt", [x, height])

    def cumul_plus(self, a, b) -> CumulExpr:
        return self._new("cumulPlus", [self._cumul(a, "cumulPlus"), self._cumul(b, "cumulPlus")])

    def cumul_minus(self, a, b) -> CumulExpr:
        return self._new("cumulMinus", [self._cumul(a, "cumulMinus"), self._cumul(b, "cumulMinus")])

    def cumul_neg(self, a) -> CumulExpr:
        return self._new("cumulNeg", [self._cumul(a, "cumulNeg")])

    def cumul_sum(self, funcs: Sequence[CumulExpr]) -> CumulExpr:
        if isinstance(funcs, ModelElement) or not isinstance(funcs, (list, tuple)):
            raise ConstructionError("cumulSum: expected a list of cumulative expressions")
        return self._new("cumulSum", [[self._cumul(f, "cumulSum") for f in funcs]])

    def cumul_le(self, func, capacity: int) -> Constraint:
        """The cumulative function never exceeds ``capacity``."""
        func = self._cumul(func, "cumulLe")
        capacity = self._int_literal(capacity, "cumulLe", -INT_VAR_MAX, INT_VAR_MAX)
        return self._new_constraint("cumulLe", [func, capacity])

    def cumul_ge(self, func, minimum: int) -> Constraint:
        """The cumulative function is never below ``minimum``."""
        func = self._cumul(func, "cumulGe")
        minimum = self._int_literal(minimum, "cumulGe", -INT_VAR_MAX, INT_VAR_MAX)
        return self._new_constraint("cumulGe", [func, minimum])

    # ------------------------------------------------------------------
    # Step functions
    # ------------------------------------------------------------------

    def step_function(
        self, values: Sequence[Tuple[int, int]], name: Optional[str] = None
    ) -> StepFunction:
        """Step function from ``(x, value)`` breakpoints with strictly increasing x.

        The function is 0 before the first breakpoint and keeps ``value`` from
        ``x`` up to the next breakpoint.
        """
        table: List[List[int]] = []
        previous = None
        for item in values:
            if not isinstance(item, (tuple, list)) or len(item) != 2:
                raise ConstructionError(f"stepFunction: expected (x, value) pairs, got {item!r}")
            x = self._int_literal(item[0], "stepFunction x", INTERVAL_MIN, INTERVAL_MAX)
            v = self._int_literal(item[1], "stepFunction value", INT_VAR_MIN, INT_VAR_MAX)
            if previous is not None and x <= previous:
                raise ConstructionError("stepFunction: x values must be strictly increasing")
            previous = x
            table.append([x, v])
        func = self._new("stepFunction", [], values=table)
        if name is not None:
            func.name = name
        return func

    def step_function_eval(self, func, x) -> IntExpr:
        func = self._step_function(func, "stepFunctionEval")
        x = self._int_operand(x, "stepFunctionEval", INTERVAL_MIN, INTERVAL_MAX)
        return self._new("stepFunctionEval", [func, x])

    def step_function_sum(self, func, interval) -> IntExpr:
        """Sum of the function over the extent of the interval; absent if it is absent."""
        func = self._step_function(func, "stepFunctionSum")
        interval = self._interval(interval, "stepFunctionSum")
        return self._new("stepFunctionSum", [func, interval])

    def step_function_sum_in_range(self, func, interval, lb: int, ub: int) -> Constraint:
        func = self._step_function(func, "stepFunctionSumInRange")
        interval = self._interval(interval, "stepFunctionSumInRange")
        lb = self._int_literal(lb, "stepFunctionSumInRange", INT_VAR_MIN, INT_VAR_MAX)
        ub = self._int_literal(ub, "stepFunctionSumInRange", INT_VAR_MIN, INT_VAR_MAX)
        if lb > ub:
            raise ConstructionError(f"stepFunctionSumInRange: {lb} is greater than {ub}")
        return self._new_constraint("stepFunctionSumInRange", [func, interval, lb, ub])

    def forbid_extent(self, interval, func) -> Constraint:
        """A present interval cannot overlap points where ``func`` is 0."""
        return self._new_constraint(
            "forbidExtent",
            [self._interval(interval, "forbidExtent"), self._step_function(func, "forbidExtent")],
        )

    def forbid_start(self, interval, func) -> Constraint:
        return self._new_constraint(
            "forbidStart",
            [self._interval(interval, "forbidStart"), self._step_function(func, "forbidStart")],
        )

    def forbid_end(self, interval, func) -> Constraint:
        return self._new_constraint(
            "forbidEnd",
            [self._interval(interval, "forbidEnd"), self._step_function(func, "forbidEnd")],
        )

    # ------------------------------------------------------------------
    # Constraints and objective
    # ------------------------------------------------------------------

    def constraint(self, expr) -> None:
        """Add a boolean expression (or a list of them) as a constraint.

        A constraint is violated only when its value is false; absent counts
        as satisfied.
        """
        if isinstance(expr, (list, tuple)):
            for item in expr:
                self.constraint(item)
            return
        if isinstance(expr, Constraint):
            # Constraint nodes are already in the model
            self._owned(expr, "constraint")
            return
        value = self._boolean(expr, "constraint")
        if isinstance(value, bool):
            value = self._constant(value)
        self._model_args.append(self._arg(value))

    enforce = constraint

    def _set_objective(self, sense: str, expr) -> Objective:
        if self._objective is not None:
            raise ConstructionError(
                f"{sense}: model already has an objective ({self._objective.sense})"
            )
        if not isinstance(expr, FloatExpr):
            raise ConstructionError(
                f"{sense}: expected a numeric expression, got {type(expr).__name__}"
            )
        self._owned(expr, sense)
        objective = self._new(sense, [expr])
        self._materialize(objective.node)
        self._objective = objective
        return objective

    def minimize(self, expr) -> Objective:
        return self._set_objective("minimize", expr)

    def maximize(self, expr) -> Objective:
        return self._set_objective("maximize", expr)

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    def get_objective(self) -> Optional[Objective]:
        return self._objective

    def get_objective_sense(self) -> Optional[str]:
        return self._objective.sense if self._objective is not None else None

    def get_variables(self) -> List[ModelElement]:
        return [self._variables[i] for i in sorted(self._variables)]

    def get_interval_vars(self) -> List[IntervalVar]:
        return [v for v in self.get_variables() if isinstance(v, IntervalVar)]

    def get_int_vars(self) -> List[IntVar]:
        return [v for v in self.get_variables() if isinstance(v, IntVar)]

    def get_bool_vars(self) -> List[BoolVar]:
        return [v for v in self.get_variables() if isinstance(v, BoolVar)]

    def get_float_vars(self) -> List[FloatVar]:
        return [v for v in self.get_variables() if isinstance(v, FloatVar)]

    def get_variable(self, node_id: int) -> ModelElement:
        try:
            return self._variables[node_id]
        except KeyError:
            raise KeyError(f"No variable with id {node_id} in model {self.name!r}") from None

    def is_variable_id(self, node_id: Any) -> bool:
        return node_id in self._variables

    def get_element(self, node_id: int) -> ModelElement:
        if not 0 <= node_id < len(self._refs):
            raise KeyError(f"No node with id {node_id} in model {self.name!r}")
        return self._element(self._refs[node_id])
