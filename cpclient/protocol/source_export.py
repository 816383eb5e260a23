# cpclient/protocol/source_export.py

"""
Python source export.

Produces a standalone script that rebuilds the model through the public
``Model`` API. Materialized nodes become local variables, inline nodes are
written as nested calls.
"""

import keyword
import logging
import re
from typing import Any, Dict, List, Optional, Set

from ..core.model import Model
from ..core.nodes import ArgRef, Node, NodeKind, PresenceStatus
from ..core.parameters import Parameters, wire_parameters
from ..core.solution import UNDEFINED_OBJECTIVE, IntervalValue, Solution

logger = logging.getLogger(__name__)

_CONSTANTS = frozenset({"boolConst", "intConst", "floatConst"})
_RESERVED_METHODS = {"not": "not_", "and": "and_", "or": "or_"}
_PREFIXES = {
    NodeKind.INTERVAL: "itv",
    NodeKind.SEQUENCE: "seq",
    NodeKind.CUMUL: "cumul",
    NodeKind.STEP_FUNCTION: "func",
    NodeKind.CONSTRAINT: "constraint",
    NodeKind.OBJECTIVE: "objective",
}


def _snake(func: str) -> str:
    return re.sub(r"(?<!^)(?=[A-Z])", "_", func).lower()


def _method(func: str) -> str:
    if func in _RESERVED_METHODS:
        return _RESERVED_METHODS[func]
    for prefix in ("int", "float", "bool"):
        if func.startswith(prefix) and func[len(prefix):][:1].isupper():
            return func[len(prefix):].lower()
    return _snake(func)


def _range(node: Node, prefix: str) -> Optional[str]:
    lo = node.bounds.get(f"{prefix}Min" if prefix else "min")
    hi = node.bounds.get(f"{prefix}Max" if prefix else "max")
    if lo is None and hi is None:
        return None
    return f"({lo!r}, {hi!r})"


class _PythonWriter:
    def __init__(self, model: Model):
        self.model = model
        self.lines: List[str] = []
        self.names: Dict[Node, str] = {}
        self.used: Set[str] = {"model", "cpclient", "params", "warm_start"}

    def _identifier(self, node: Node) -> str:
        candidate = None
        if node.name and node.name.isidentifier() and not keyword.iskeyword(node.name):
            candidate = node.name
        if candidate is None or candidate in self.used:
            prefix = _PREFIXES.get(node.kind, node.kind.value)
            candidate = f"{prefix}_{node.id}"
        while candidate in self.used:
            candidate += "_"
        self.used.add(candidate)
        return candidate

    def _literal(self, node: Node) -> str:
        return repr(node.args[0])

    def _arg(self, arg: Any) -> str:
        if isinstance(arg, ArgRef):
            node = arg.node
            if node.func in _CONSTANTS:
                return self._literal(node)
            if node.id is not None:
                return self.ensure(node)
            return self._call(node)
        if isinstance(arg, list):
            return "[" + ", ".join(self._arg(a) for a in arg) + "]"
        return repr(arg)

    def _variable(self, node: Node) -> str:
        kwargs = []
        if node.func == "intervalVar":
            for prefix in ("start", "end", "length"):
                value = _range(node, prefix)
                if value is not None:
                    kwargs.append(f"{prefix}={value}")
        elif node.func in ("intVar", "floatVar"):
            for field in ("min", "max"):
                if field in node.bounds:
                    kwargs.append(f"{field}={node.bounds[field]!r}")
        if node.status == PresenceStatus.OPTIONAL:
            kwargs.append("optional=True")
        elif node.status == PresenceStatus.ABSENT:
            kwargs.append("optional=None")
        if node.name is not None:
            kwargs.append(f"name={node.name!r}")
        return f"model.{_snake(node.func[:-3])}_var({', '.join(kwargs)})"

    def _call(self, node: Node) -> str:
        if node.is_variable:
            return self._variable(node)
        if node.func in _CONSTANTS:
            return self._literal(node)
        if node.func == "stepFunction":
            pairs = ", ".join(f"({x!r}, {v!r})" for x, v in node.values or [])
            return f"model.step_function([{pairs}])"
        args = [self._arg(a) for a in node.args]
        if node.func == "noOverlap" and node.values is not None:
            args.append(f"transitions={node.values!r}")
        if node.func == "sequenceVar" and len(args) > 1:
            args[1] = f"types={args[1]}"
        return f"model.{_method(node.func)}({', '.join(args)})"

    def ensure(self, node: Node) -> str:
        """Emit the statement defining a materialized node; return its local name."""
        if node in self.names:
            return self.names[node]
        expr = self._call(node)
        name = self._identifier(node)
        self.lines.append(f"{name} = {expr}")
        if node.name is not None and not node.is_variable:
            self.lines.append(f"{name}.name = {node.name!r}")
        self.names[node] = name
        return name

    def write_model(self) -> None:
        self.lines.append(f"model = cpclient.Model({self.model.name!r})")
        for node in self.model.refs:
            if node.func not in _CONSTANTS:
                self.ensure(node)
        for ref in self.model.top_level_args:
            node = ref.node
            if node.kind == NodeKind.CONSTRAINT:
                if node in self.names:
                    continue
                self.lines.append(self._call(node))
            else:
                self.lines.append(f"model.constraint({self._arg(ref)})")

    def write_parameters(self, params: Optional[Parameters]) -> None:
        data = wire_parameters(params)
        self.lines.append("")
        self.lines.append(f"params = cpclient.Parameters.model_validate({data!r})")

    def write_warm_start(self, solution: Solution) -> None:
        self.lines.append("")
        self.lines.append("warm_start = cpclient.Solution()")
        for node_id, value in solution:
            name = self.names.get(self.model.get_variable(node_id).node, f"model.get_variable({node_id})")
            if value is None:
                self.lines.append(f"warm_start.set_absent({name})")
            elif isinstance(value, IntervalValue):
                self.lines.append(f"warm_start.set_value({name}, {value.start!r}, {value.end!r})")
            else:
                self.lines.append(f"warm_start.set_value({name}, {value!r})")
        objective = solution.get_objective()
        if objective is not UNDEFINED_OBJECTIVE:
            self.lines.append(f"warm_start.set_objective({objective!r})")


def problem_to_python(
    model: Model,
    params: Optional[Parameters] = None,
    warm_start: Optional[Solution] = None,
) -> str:
    """Python script that rebuilds ``model`` (and the parameters and warm start)."""
    writer = _PythonWriter(model)
    writer.write_model()
    writer.write_parameters(params)
    if warm_start is not None:
        writer.write_warm_start(warm_start)
    header = [
        f"# Model {model.name!r} exported by cpclient",
        "",
        "import cpclient",
        "",
    ]
    logger.debug(f"Exported model '{model.name}' as {len(writer.lines)} lines of Python")
    return "\n".join(header + writer.lines) + "\n"
