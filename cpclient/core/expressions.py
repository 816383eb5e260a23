# cpclient/core/expressions.py

"""
Typed façades over expression-graph nodes.

Every façade wraps exactly one ``Node`` and the ``Model`` that owns it. The
classes only describe which operations make sense for a value of a given
kind; the node construction itself is done by ``Model`` so that all
bookkeeping (use counting, id materialization, validation) happens in one
place.
"""

from typing import TYPE_CHECKING, Any, Optional, Sequence, Type

from .nodes import (
    INT_VAR_MAX,
    INT_VAR_MIN,
    INTERVAL_MAX,
    LENGTH_MAX,
    FLOAT_VAR_MAX,
    FLOAT_VAR_MIN,
    Node,
    NodeKind,
    PresenceStatus,
)

if TYPE_CHECKING:
    from .model import Model


class ModelElement:
    """Base of all façades: a (model, node) pair."""

    __slots__ = ("_model", "_node")

    def __init__(self, model: "Model", node: Node):
        self._model = model
        self._node = node

    @property
    def model(self) -> "Model":
        return self._model

    @property
    def node(self) -> Node:
        return self._node

    @property
    def id(self) -> Optional[int]:
        """Materialized id, or None while the node is only used inline."""
        return self._node.id

    @property
    def func(self) -> str:
        return self._node.func

    @property
    def kind(self) -> NodeKind:
        return self._node.kind

    @property
    def name(self) -> Optional[str]:
        return self._node.name

    @name.setter
    def name(self, value: Optional[str]) -> None:
        self._node.name = value
        if value is not None:
            # Named nodes are always written by reference
            self._model._materialize(self._node)

    def set_name(self, value: str) -> "ModelElement":
        self.name = value
        return self

    def __repr__(self) -> str:
        label = self._node.name or (
            f"#{self._node.id}" if self._node.id is not None else "inline"
        )
        return f"{type(self).__name__}({self._node.func}, {label})"


class FloatExpr(ModelElement):
    """Float-valued expression, possibly absent."""

    __slots__ = ()

    def plus(self, other) -> "FloatExpr":
        return self._model.plus(self, other)

    def minus(self, other) -> "FloatExpr":
        return self._model.minus(self, other)

    def times(self, other) -> "FloatExpr":
        return self._model.times(self, other)

    def div(self, other) -> "FloatExpr":
        return self._model.div(self, other)

    def neg(self) -> "FloatExpr":
        return self._model.neg(self)

    def abs(self) -> "FloatExpr":
        return self._model.abs(self)

    def square(self) -> "FloatExpr":
        return self._model.square(self)

    def min2(self, other) -> "FloatExpr":
        return self._model.min2(self, other)

    def max2(self, other) -> "FloatExpr":
        return self._model.max2(self, other)

    def guard(self, default=0) -> "FloatExpr":
        return self._model.guard(self, default)

    def identity(self, other) -> "BoolExpr":
        return self._model.identity(self, other)

    def eq(self, other) -> "BoolExpr":
        return self._model.eq(self, other)

    def ne(self, other) -> "BoolExpr":
        return self._model.ne(self, other)

    def lt(self, other) -> "BoolExpr":
        return self._model.lt(self, other)

    def le(self, other) -> "BoolExpr":
        return self._model.le(self, other)

    def gt(self, other) -> "BoolExpr":
        return self._model.gt(self, other)

    def ge(self, other) -> "BoolExpr":
        return self._model.ge(self, other)

    def in_range(self, lb, ub) -> "BoolExpr":
        return self._model.in_range(self, lb, ub)

    def presence(self) -> "BoolExpr":
        return self._model.presence_of(self)

    def minimize(self) -> "Objective":
        return self._model.minimize(self)

    def maximize(self) -> "Objective":
        return self._model.maximize(self)

    __add__ = plus
    __sub__ = minus
    __mul__ = times
    __truediv__ = div
    __neg__ = neg
    __abs__ = abs
    __lt__ = lt
    __le__ = le
    __gt__ = gt
    __ge__ = ge

    def __radd__(self, other):
        return self._model.plus(other, self)

    def __rsub__(self, other):
        return self._model.minus(other, self)

    def __rmul__(self, other):
        return self._model.times(other, self)

    def __rtruediv__(self, other):
        return self._model.div(other, self)

    # Equality stays identity-based so elements can live in sets and dicts;
    # use eq()/ne()/identity() to build constraints.
    __hash__ = ModelElement.__hash__


class IntExpr(FloatExpr):
    """Integer-valued expression, possibly absent."""

    __slots__ = ()


class BoolExpr(IntExpr):
    """Boolean expression: an integer with true=1, false=0, absent unchanged."""

    __slots__ = ()

    def not_(self) -> "BoolExpr":
        return self._model.not_(self)

    def and_(self, other) -> "BoolExpr":
        return self._model.and_(self, other)

    def or_(self, other) -> "BoolExpr":
        return self._model.or_(self, other)

    def implies(self, other) -> "BoolExpr":
        return self._model.implies(self, other)

    def enforce(self) -> "BoolExpr":
        self._model.constraint(self)
        return self

    __invert__ = not_
    __and__ = and_
    __or__ = or_


class _VariableBounds:
    """Bound accessors shared by the variable façades."""

    __slots__ = ()

    _lower_default: Any = None
    _upper_default: Any = None

    def _bound(self, field: str, default):
        value = self._node.bounds.get(field)
        return default if value is None else value

    @property
    def optional(self) -> Optional[bool]:
        """True if optional, False if present, None if absent."""
        status = self._node.status
        if status is None or status == PresenceStatus.PRESENT:
            return False
        if status == PresenceStatus.OPTIONAL:
            return True
        return None

    @optional.setter
    def optional(self, value: Optional[bool]) -> None:
        self._model._set_presence(self._node, value)


class IntVar(_VariableBounds, IntExpr):
    __slots__ = ()

    @property
    def min(self) -> int:
        return self._bound("min", 0)

    @min.setter
    def min(self, value: int) -> None:
        self._model._set_bound(self._node, "min", value, INT_VAR_MIN, INT_VAR_MAX)

    @property
    def max(self) -> int:
        return self._bound("max", INT_VAR_MAX)

    @max.setter
    def max(self, value: int) -> None:
        self._model._set_bound(self._node, "max", value, INT_VAR_MIN, INT_VAR_MAX)


class BoolVar(_VariableBounds, BoolExpr):
    __slots__ = ()


class FloatVar(_VariableBounds, FloatExpr):
    __slots__ = ()

    @property
    def min(self) -> float:
        return self._bound("min", FLOAT_VAR_MIN)

    @min.setter
    def min(self, value: float) -> None:
        self._model._set_bound(self._node, "min", value, FLOAT_VAR_MIN, FLOAT_VAR_MAX)

    @property
    def max(self) -> float:
        return self._bound("max", FLOAT_VAR_MAX)

    @max.setter
    def max(self, value: float) -> None:
        self._model._set_bound(self._node, "max", value, FLOAT_VAR_MIN, FLOAT_VAR_MAX)


def _interval_bound(field: str, default, lower: int, upper: int):
    def getter(self):
        return self._bound(field, default)

    def setter(self, value):
        self._model._set_bound(self._node, field, value, lower, upper)

    return property(getter, setter)


class IntervalVar(_VariableBounds, ModelElement):
    """Interval decision variable: start, end, length and presence."""

    __slots__ = ()

    start_min = _interval_bound("startMin", 0, -INTERVAL_MAX, INTERVAL_MAX)
    start_max = _interval_bound("startMax", INTERVAL_MAX, -INTERVAL_MAX, INTERVAL_MAX)
    end_min = _interval_bound("endMin", 0, -INTERVAL_MAX, INTERVAL_MAX)
    end_max = _interval_bound("endMax", INTERVAL_MAX, -INTERVAL_MAX, INTERVAL_MAX)
    length_min = _interval_bound("lengthMin", 0, 0, LENGTH_MAX)
    length_max = _interval_bound("lengthMax", LENGTH_MAX, 0, LENGTH_MAX)

    def start(self) -> IntExpr:
        return self._model.start_of(self)

    def end(self) -> IntExpr:
        return self._model.end_of(self)

    def length(self) -> IntExpr:
        return self._model.length_of(self)

    def presence(self) -> BoolExpr:
        return self._model.presence_of(self)

    def start_or(self, default: int) -> IntExpr:
        return self._model.start_or(self, default)

    def end_or(self, default: int) -> IntExpr:
        return self._model.end_or(self, default)

    def length_or(self, default: int) -> IntExpr:
        return self._model.length_or(self, default)

    def end_before_start(self, successor, delay=0) -> "Constraint":
        return self._model.end_before_start(self, successor, delay)

    def end_before_end(self, successor, delay=0) -> "Constraint":
        return self._model.end_before_end(self, successor, delay)

    def start_before_start(self, successor, delay=0) -> "Constraint":
        return self._model.start_before_start(self, successor, delay)

    def start_before_end(self, successor, delay=0) -> "Constraint":
        return self._model.start_before_end(self, successor, delay)

    def end_at_start(self, successor, delay=0) -> "Constraint":
        return self._model.end_at_start(self, successor, delay)

    def end_at_end(self, successor, delay=0) -> "Constraint":
        return self._model.end_at_end(self, successor, delay)

    def start_at_start(self, successor, delay=0) -> "Constraint":
        return self._model.start_at_start(self, successor, delay)

    def start_at_end(self, successor, delay=0) -> "Constraint":
        return self._model.start_at_end(self, successor, delay)

    def alternative(self, options: Sequence["IntervalVar"]) -> "Constraint":
        return self._model.alternative(self, options)

    def span(self, covered: Sequence["IntervalVar"]) -> "Constraint":
        return self._model.span(self, covered)

    def pulse(self, height) -> "CumulExpr":
        return self._model.pulse(self, height)

    def step_at_start(self, height) -> "CumulExpr":
        return self._model.step_at_start(self, height)

    def step_at_end(self, height) -> "CumulExpr":
        return self._model.step_at_end(self, height)

    def forbid_extent(self, func: "StepFunction") -> "Constraint":
        return self._model.forbid_extent(self, func)

    def forbid_start(self, func: "StepFunction") -> "Constraint":
        return self._model.forbid_start(self, func)

    def forbid_end(self, func: "StepFunction") -> "Constraint":
        return self._model.forbid_end(self, func)


class SequenceVar(ModelElement):
    """Ordered view over a set of intervals, with optional type per interval."""

    __slots__ = ()

    def no_overlap(self, transitions=None) -> "Constraint":
        return self._model.no_overlap(self, transitions)


class CumulExpr(ModelElement):
    """Cumulative function: a sum of pulses and steps over time."""

    __slots__ = ()

    def plus(self, other: "CumulExpr") -> "CumulExpr":
        return self._model.cumul_plus(self, other)

    def minus(self, other: "CumulExpr") -> "CumulExpr":
        return self._model.cumul_minus(self, other)

    def neg(self) -> "CumulExpr":
        return self._model.cumul_neg(self)

    def le(self, capacity: int) -> "Constraint":
        return self._model.cumul_le(self, capacity)

    def ge(self, minimum: int) -> "Constraint":
        return self._model.cumul_ge(self, minimum)

    __add__ = plus
    __sub__ = minus
    __neg__ = neg
    __le__ = le
    __ge__ = ge
    __hash__ = ModelElement.__hash__


class StepFunction(ModelElement):
    """Piecewise constant integer function given by (x, value) breakpoints."""

    __slots__ = ()

    @property
    def values(self):
        return [tuple(pair) for pair in self._node.values or []]

    def eval(self, x) -> IntExpr:
        return self._model.step_function_eval(self, x)

    def sum(self, interval: IntervalVar) -> IntExpr:
        return self._model.step_function_sum(self, interval)


class Constraint(ModelElement):
    """Constraint-only node, added to the model when created."""

    __slots__ = ()


class Objective(ModelElement):
    """Minimization or maximization target of the model."""

    __slots__ = ()

    @property
    def sense(self) -> str:
        return self._node.func


KIND_CLASSES = {
    NodeKind.BOOL: BoolExpr,
    NodeKind.INT: IntExpr,
    NodeKind.FLOAT: FloatExpr,
    NodeKind.INTERVAL: IntervalVar,
    NodeKind.SEQUENCE: SequenceVar,
    NodeKind.CUMUL: CumulExpr,
    NodeKind.STEP_FUNCTION: StepFunction,
    NodeKind.CONSTRAINT: Constraint,
    NodeKind.OBJECTIVE: Objective,
}

VARIABLE_CLASSES = {
    "boolVar": BoolVar,
    "intVar": IntVar,
    "floatVar": FloatVar,
    "intervalVar": IntervalVar,
}


def element_class(node: Node) -> Type[ModelElement]:
    """Façade class for a node, variables first then by value kind."""
    return VARIABLE_CLASSES.get(node.func) or KIND_CLASSES[node.kind]
