# cpclient/core/nodes.py

"""
Node storage for the expression graph.

A model is an arena of ``Node`` objects. Nodes reference their operands through
``ArgRef`` wrappers; whether an operand is written inline or as a numeric back
reference is decided at serialization time from the operand's ``id`` (only
materialized nodes have one).
"""

import math
from enum import Enum, IntEnum
from typing import Any, Dict, List, Optional


# Numeric domains understood by the engine
INT_VAR_MAX = 1073741823
INT_VAR_MIN = -INT_VAR_MAX
INTERVAL_MAX = 715827882
INTERVAL_MIN = -INTERVAL_MAX
LENGTH_MAX = INTERVAL_MAX - INTERVAL_MIN
FLOAT_VAR_MAX = math.inf
FLOAT_VAR_MIN = -math.inf

BOUND_FIELDS = (
    "min",
    "max",
    "startMin",
    "startMax",
    "endMin",
    "endMax",
    "lengthMin",
    "lengthMax",
)


class PresenceStatus(IntEnum):
    """Presence of an optional expression or variable"""

    OPTIONAL = 0
    PRESENT = 1
    ABSENT = 2


class NodeKind(Enum):
    """Capability of the value a node produces"""

    BOOL = "bool"
    INT = "int"
    FLOAT = "float"
    INTERVAL = "interval"
    SEQUENCE = "sequence"
    CUMUL = "cumul"
    STEP_FUNCTION = "stepFunction"
    CONSTRAINT = "constraint"
    OBJECTIVE = "objective"


def _tags(kind: NodeKind, *funcs: str) -> Dict[str, NodeKind]:
    return {f: kind for f in funcs}


# Operator tag -> kind of the produced value. Used by the decoder to rebuild
# the right façade class for every node it reads.
OPERATOR_KINDS: Dict[str, NodeKind] = {
    **_tags(NodeKind.BOOL, "boolVar", "boolConst", "boolGuard"),
    **_tags(
        NodeKind.BOOL,
        "eq",
        "ne",
        "lt",
        "le",
        "gt",
        "ge",
        "inRange",
        "identity",
        "not",
        "and",
        "or",
        "implies",
        "presenceOf",
    ),
    **_tags(
        NodeKind.INT,
        "intVar",
        "intConst",
        "intPlus",
        "intMinus",
        "intTimes",
        "intNeg",
        "intAbs",
        "intSquare",
        "intMin2",
        "intMax2",
        "intSum",
        "intMin",
        "intMax",
        "intGuard",
        "startOf",
        "endOf",
        "lengthOf",
        "startOr",
        "endOr",
        "lengthOr",
        "stepFunctionEval",
        "stepFunctionSum",
    ),
    **_tags(
        NodeKind.FLOAT,
        "floatVar",
        "floatConst",
        "floatPlus",
        "floatMinus",
        "floatTimes",
        "floatDiv",
        "floatNeg",
        "floatAbs",
        "floatSquare",
        "floatMin2",
        "floatMax2",
        "floatSum",
        "floatMin",
        "floatMax",
        "floatGuard",
    ),
    **_tags(NodeKind.INTERVAL, "intervalVar"),
    **_tags(NodeKind.SEQUENCE, "sequenceVar"),
    **_tags(
        NodeKind.CUMUL,
        "pulse",
        "stepAtStart",
        "stepAtEnd",
        "stepAt",
        "cumulPlus",
        "cumulMinus",
        "cumulNeg",
        "cumulSum",
    ),
    **_tags(NodeKind.STEP_FUNCTION, "stepFunction"),
    **_tags(
        NodeKind.CONSTRAINT,
        "endBeforeStart",
        "endBeforeEnd",
        "startBeforeStart",
        "startBeforeEnd",
        "endAtStart",
        "endAtEnd",
        "startAtStart",
        "startAtEnd",
        "alternative",
        "span",
        "noOverlap",
        "cumulLe",
        "cumulGe",
        "stepFunctionSumInRange",
        "forbidExtent",
        "forbidStart",
        "forbidEnd",
    ),
    **_tags(NodeKind.OBJECTIVE, "minimize", "maximize"),
}

VARIABLE_FUNCS = frozenset({"boolVar", "intVar", "floatVar", "intervalVar"})


class Node:
    """One modeling element: operator tag, arguments and optional properties."""

    __slots__ = ("func", "args", "name", "status", "bounds", "values", "id", "use_count")

    def __init__(
        self,
        func: str,
        args: Optional[List[Any]] = None,
        *,
        name: Optional[str] = None,
        status: Optional[PresenceStatus] = None,
        bounds: Optional[Dict[str, Any]] = None,
        values: Optional[List[List[Any]]] = None,
    ):
        if func not in OPERATOR_KINDS:
            raise KeyError(f"Unknown operator '{func}'")
        self.func = func
        self.args: List[Any] = args if args is not None else []
        self.name = name
        self.status = status
        self.bounds: Dict[str, Any] = bounds or {}
        self.values = values
        self.id: Optional[int] = None
        self.use_count = 0

    @property
    def kind(self) -> NodeKind:
        return OPERATOR_KINDS[self.func]

    @property
    def is_variable(self) -> bool:
        return self.func in VARIABLE_FUNCS

    @property
    def is_materialized(self) -> bool:
        return self.id is not None

    def __repr__(self) -> str:
        label = f"#{self.id}" if self.id is not None else "inline"
        return f"Node({self.func}, {label}, name={self.name!r})"


class ArgRef:
    """Indirect reference from a parent's argument list to another node.

    Serialized as ``{"ref": id}`` when the target is materialized and as
    ``{"arg": props}`` otherwise.
    """

    __slots__ = ("node",)

    def __init__(self, node: Node):
        self.node = node

    @property
    def is_inline(self) -> bool:
        return self.node.id is None

    def __repr__(self) -> str:
        return f"ArgRef({self.node!r})"


def iter_arg_refs(args: List[Any]):
    """Yield every ArgRef in an argument list, descending into nested lists."""
    for arg in args:
        if isinstance(arg, ArgRef):
            yield arg
        elif isinstance(arg, list):
            yield from iter_arg_refs(arg)
