# cpclient/core/solution.py

"""
Solution values keyed by variable id.

A solution is sparse: variables that were never set are simply missing. A
value of ``None`` means the variable is absent. Interval values are
``IntervalValue(start, end)`` pairs.
"""

import logging
import math
from typing import Any, Dict, Iterator, NamedTuple, Optional, Tuple, Union

from .exceptions import SolutionError
from .expressions import BoolVar, FloatVar, IntervalVar, IntVar, ModelElement
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

logger = logging.getLogger(__name__)


class _Undefined:
    """Objective marker for models without an objective."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNDEFINED_OBJECTIVE"

    def __bool__(self) -> bool:
        return False


UNDEFINED_OBJECTIVE = _Undefined()


class IntervalValue(NamedTuple):
    start: int
    end: int

    @property
    def length(self) -> int:
        return self.end - self.start


SolutionValue = Union[None, bool, int, float, IntervalValue]
ObjectiveValue = Union[None, int, float, _Undefined]


def _key(variable: Union[ModelElement, int]) -> int:
    if isinstance(variable, ModelElement):
        if variable.id is None:
            raise SolutionError(f"{variable!r} is not a decision variable")
        return variable.id
    if isinstance(variable, int) and not isinstance(variable, bool):
        return variable
    raise SolutionError(f"Expected a variable or a variable id, got {variable!r}")


class Solution:
    """Sparse assignment of values to decision variables."""

    def __init__(self):
        self._values: Dict[int, SolutionValue] = {}
        self._objective: ObjectiveValue = UNDEFINED_OBJECTIVE
        self._frozen = False

    def __repr__(self) -> str:
        return f"Solution(values={len(self._values)}, objective={self._objective!r})"

    def __len__(self) -> int:
        return len(self._values)

    def __iter__(self) -> Iterator[Tuple[int, SolutionValue]]:
        return iter(sorted(self._values.items()))

    def __eq__(self, other: Any) -> bool:
        if not isinstance(other, Solution):
            return NotImplemented
        return self._values == other._values and self._objective == other._objective

    __hash__ = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def frozen(self) -> bool:
        return self._frozen

    def freeze(self) -> "Solution":
        """Make the solution read-only. Called when it is sent to a session."""
        self._frozen = True
        return self

    def copy(self) -> "Solution":
        """Mutable copy, also of a frozen solution."""
        clone = Solution()
        clone._values = dict(self._values)
        clone._objective = self._objective
        return clone

    def _check_writable(self) -> None:
        if self._frozen:
            raise SolutionError("Solution was already sent and cannot be modified")

    # ------------------------------------------------------------------
    # Objective
    # ------------------------------------------------------------------

    def get_objective(self) -> ObjectiveValue:
        """Objective value, ``None`` if absent, UNDEFINED_OBJECTIVE if not declared."""
        return self._objective

    def set_objective(self, value: ObjectiveValue) -> None:
        self._check_writable()
        if value is not None and value is not UNDEFINED_OBJECTIVE:
            if isinstance(value, bool) or not isinstance(value, (int, float)) or math.isnan(value):
                raise SolutionError(f"Invalid objective value {value!r}")
        self._objective = value

    # ------------------------------------------------------------------
    # Values
    # ------------------------------------------------------------------

    def has_value(self, variable: Union[ModelElement, int]) -> bool:
        return _key(variable) in self._values

    def get_value(self, variable: Union[ModelElement, int]) -> SolutionValue:
        key = _key(variable)
        try:
            return self._values[key]
        except KeyError:
            raise SolutionError(
                f"No value for variable {variable!r}", context={"id": key}
            ) from None

    def is_absent(self, variable: Union[ModelElement, int]) -> bool:
        return self.get_value(variable) is None

    def get_start(self, interval: Union[IntervalVar, int]) -> Optional[int]:
        value = self.get_value(interval)
        return None if value is None else value.start

    def get_end(self, interval: Union[IntervalVar, int]) -> Optional[int]:
        value = self.get_value(interval)
        return None if value is None else value.end

    def get_length(self, interval: Union[IntervalVar, int]) -> Optional[int]:
        value = self.get_value(interval)
        return None if value is None else value.length

    def set_absent(self, variable: ModelElement) -> None:
        """Mark an optional variable as absent in this solution."""
        self._check_writable()
        key = _key(variable)
        status = variable.node.status
        if status is None or status == PresenceStatus.PRESENT:
            raise SolutionError(
                f"Variable {variable!r} is not optional and cannot be absent",
                context={"id": key},
            )
        self._values[key] = None

    def set_value(self, variable: ModelElement, *value) -> None:
        """Set a variable value.

        Intervals take ``(start, end)``; other variables take a single value.
        Passing ``None`` is the same as ``set_absent``.
        """
        self._check_writable()
        if len(value) == 1 and value[0] is None:
            self.set_absent(variable)
            return
        key = _key(variable)
        if isinstance(variable, IntervalVar):
            if len(value) == 1 and isinstance(value[0], tuple):
                value = tuple(value[0])
            if len(value) != 2:
                raise SolutionError(f"Interval {variable!r} needs a (start, end) value")
            start, end = value
            for v in (start, end):
                if not isinstance(v, int) or isinstance(v, bool) or not INTERVAL_MIN <= v <= INTERVAL_MAX:
                    raise SolutionError(f"Interval bound {v!r} outside [{INTERVAL_MIN}, {INTERVAL_MAX}]")
            if not 0 <= end - start <= LENGTH_MAX:
                raise SolutionError(f"Interval {variable!r} has invalid length {end - start}")
            self._values[key] = IntervalValue(start, end)
            return
        if len(value) != 1:
            raise SolutionError(f"Variable {variable!r} takes exactly one value")
        v = value[0]
        if isinstance(variable, BoolVar):
            if not isinstance(v, bool):
                raise SolutionError(f"Boolean variable {variable!r} needs a bool, got {v!r}")
        elif isinstance(variable, IntVar):
            if not isinstance(v, int) or isinstance(v, bool) or not INT_VAR_MIN <= v <= INT_VAR_MAX:
                raise SolutionError(f"Integer value {v!r} outside [{INT_VAR_MIN}, {INT_VAR_MAX}]")
        elif isinstance(variable, FloatVar):
            if not isinstance(v, (int, float)) or isinstance(v, bool) or math.isnan(v):
                raise SolutionError(f"Float variable {variable!r} needs a number, got {v!r}")
            if not FLOAT_VAR_MIN < v < FLOAT_VAR_MAX:
                raise SolutionError(f"Float value {v!r} must be finite")
        else:
            raise SolutionError(f"{variable!r} is not a decision variable")
        self._values[key] = v

    def set_raw(self, node_id: int, value: SolutionValue) -> None:
        """Store a value without type checks (used by the wire decoder)."""
        self._check_writable()
        self._values[node_id] = value

    def ids(self):
        return self._values.keys()


class ModelDomains:
    """Variable domains after propagation, keyed by variable id.

    Each entry maps bound field names (``min``, ``startMin`` ...) to values;
    ``None`` marks a variable that propagation proved absent.
    """

    def __init__(self, domains: Dict[int, Optional[Dict[str, Any]]]):
        self._domains = domains

    def __repr__(self) -> str:
        return f"ModelDomains(variables={len(self._domains)})"

    def __len__(self) -> int:
        return len(self._domains)

    def _entry(self, variable: Union[ModelElement, int]) -> Optional[Dict[str, Any]]:
        key = _key(variable)
        try:
            return self._domains[key]
        except KeyError:
            raise SolutionError(f"No domain for variable {variable!r}", context={"id": key}) from None

    def is_absent(self, variable: Union[ModelElement, int]) -> bool:
        return self._entry(variable) is None

    def is_present(self, variable: Union[ModelElement, int]) -> bool:
        entry = self._entry(variable)
        return entry is not None and entry.get("status", PresenceStatus.PRESENT) == PresenceStatus.PRESENT

    def is_optional(self, variable: Union[ModelElement, int]) -> bool:
        entry = self._entry(variable)
        return entry is not None and entry.get("status") == PresenceStatus.OPTIONAL

    def _bound(self, variable, field: str, default):
        entry = self._entry(variable)
        if entry is None:
            return None
        return entry.get(field, default)

    def get_min(self, variable):
        return self._bound(variable, "min", None)

    def get_max(self, variable):
        return self._bound(variable, "max", None)

    def get_start_min(self, interval):
        return self._bound(interval, "startMin", INTERVAL_MIN)

    def get_start_max(self, interval):
        return self._bound(interval, "startMax", INTERVAL_MAX)

    def get_end_min(self, interval):
        return self._bound(interval, "endMin", INTERVAL_MIN)

    def get_end_max(self, interval):
        return self._bound(interval, "endMax", INTERVAL_MAX)

    def get_length_min(self, interval):
        return self._bound(interval, "lengthMin", 0)

    def get_length_max(self, interval):
        return self._bound(interval, "lengthMax", LENGTH_MAX)
