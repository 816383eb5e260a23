# cpclient/protocol/codec.py

"""
Wire codec between client objects and the engine's JSON messages.

Model layout::

    {"name": str | null,
     "refs": [props, ...],          # materialized nodes, index == id
     "model": [arg, ...],           # top-level constraints
     "objective": {"ref": id} | null}

where ``props`` is ``{"func", "args", "name"?, "status"?, <bounds>?, "values"?}``
and every argument is a scalar, a list, ``{"ref": id}`` or ``{"arg": props}``.

Every outbound command and inbound event is a single JSON object
``{"msg": kind, "data": ...}`` on its own line.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from ..core.exceptions import ProtocolError
from ..core.model import Model
from ..core.nodes import BOUND_FIELDS, ArgRef, Node, PresenceStatus, iter_arg_refs
from ..core.parameters import Parameters, wire_parameters
from ..core.solution import (
    UNDEFINED_OBJECTIVE,
    IntervalValue,
    ModelDomains,
    Solution,
)

logger = logging.getLogger(__name__)

COMMANDS = ("solve", "propagate", "toText")
INBOUND_KINDS = frozenset(
    {
        "log",
        "trace",
        "warning",
        "error",
        "solution",
        "lowerBound",
        "summary",
        "domains",
        "text",
        "done",
    }
)


@dataclass(frozen=True)
class EngineMessage:
    """One decoded inbound line."""

    kind: str
    data: Any = None


@dataclass
class ProblemDefinition:
    """A model together with the parameters and warm start it is solved with."""

    model: Model
    parameters: Parameters = field(default_factory=Parameters)
    warm_start: Optional[Solution] = None


# ----------------------------------------------------------------------
# Model
# ----------------------------------------------------------------------


def _encode_arg(arg: Any) -> Any:
    if isinstance(arg, ArgRef):
        if arg.node.id is not None:
            return {"ref": arg.node.id}
        return {"arg": _encode_props(arg.node)}
    if isinstance(arg, list):
        return [_encode_arg(a) for a in arg]
    return arg


def _encode_props(node: Node) -> Dict[str, Any]:
    props: Dict[str, Any] = {"func": node.func, "args": [_encode_arg(a) for a in node.args]}
    if node.name is not None:
        props["name"] = node.name
    if node.status is not None:
        props["status"] = int(node.status)
    for name in BOUND_FIELDS:
        if name in node.bounds:
            props[name] = node.bounds[name]
    if node.values is not None:
        props["values"] = node.values
    return props


def encode_model(model: Model) -> Dict[str, Any]:
    objective = model.get_objective()
    return {
        "name": model.name,
        "refs": [_encode_props(node) for node in model.refs],
        "model": [_encode_arg(arg) for arg in model.top_level_args],
        "objective": {"ref": objective.id} if objective is not None else None,
    }


class _ModelDecoder:
    """Two-pass decoder: allocate all referenced nodes, then resolve arguments."""

    def __init__(self, data: Dict[str, Any]):
        self.data = data
        self.refs: List[Node] = []

    def _new_node(self, props: Any, where: str) -> Node:
        if not isinstance(props, dict) or not isinstance(props.get("func"), str):
            raise ProtocolError(f"Malformed node at {where}", details=props)
        try:
            node = Node(props["func"])
        except KeyError as e:
            raise ProtocolError(f"Unknown operator '{props['func']}' at {where}") from e
        node.name = props.get("name")
        status = props.get("status")
        if status is not None:
            try:
                node.status = PresenceStatus(status)
            except ValueError as e:
                raise ProtocolError(f"Invalid presence status {status!r} at {where}") from e
        node.bounds = {k: props[k] for k in BOUND_FIELDS if k in props}
        node.values = props.get("values")
        return node

    def _fill(self, node: Node, props: Dict[str, Any], where: str) -> None:
        args = props.get("args", [])
        if not isinstance(args, list):
            raise ProtocolError(f"Arguments of {where} must be a list", details=args)
        node.args = [self._arg(a, where) for a in args]

    def _arg(self, arg: Any, where: str) -> Any:
        if isinstance(arg, list):
            return [self._arg(a, where) for a in arg]
        if isinstance(arg, dict):
            if "ref" in arg:
                ref = arg["ref"]
                if not isinstance(ref, int) or not 0 <= ref < len(self.refs):
                    raise ProtocolError(f"Unknown node reference {ref!r} in {where}")
                return ArgRef(self.refs[ref])
            if "arg" in arg:
                node = self._new_node(arg["arg"], where)
                self._fill(node, arg["arg"], f"{where}/{node.func}")
                return ArgRef(node)
            raise ProtocolError(f"Malformed argument in {where}", details=arg)
        return arg

    def decode(self) -> Model:
        data = self.data
        if not isinstance(data, dict) or not isinstance(data.get("refs", []), list):
            raise ProtocolError("Model must be an object with a 'refs' list")
        raw_refs = data.get("refs", [])
        for i, props in enumerate(raw_refs):
            node = self._new_node(props, f"refs[{i}]")
            node.id = i
            self.refs.append(node)
        for i, props in enumerate(raw_refs):
            self._fill(self.refs[i], props, f"refs[{i}]")

        top = data.get("model", [])
        if not isinstance(top, list):
            raise ProtocolError("'model' must be a list of arguments")
        model_args = []
        for i, arg in enumerate(top):
            decoded = self._arg(arg, f"model[{i}]")
            if not isinstance(decoded, ArgRef):
                raise ProtocolError(f"model[{i}] is not a node", details=arg)
            model_args.append(decoded)

        objective = None
        if data.get("objective") is not None:
            decoded = self._arg(data["objective"], "objective")
            if not isinstance(decoded, ArgRef):
                raise ProtocolError("Objective is not a node", details=data["objective"])
            objective = decoded.node
            if objective.id is None:
                objective.id = len(self.refs)
                self.refs.append(objective)

        # Restore use counts so that further modeling keeps the sharing rule
        all_nodes = list(self.refs)
        seen = set(map(id, all_nodes))
        stack = list(model_args)
        for node in all_nodes:
            stack.extend(iter_arg_refs(node.args))
        while stack:
            ref = stack.pop()
            ref.node.use_count += 1
            if id(ref.node) not in seen:
                seen.add(id(ref.node))
                stack.extend(iter_arg_refs(ref.node.args))

        model = Model(data.get("name"))
        model._load(self.refs, model_args, objective)
        return model


def decode_model(data: Dict[str, Any]) -> Model:
    model = _ModelDecoder(data).decode()
    logger.debug(f"Decoded model '{model.name}' with {len(model.refs)} refs")
    return model


# ----------------------------------------------------------------------
# Parameters
# ----------------------------------------------------------------------


def encode_parameters(params: Optional[Parameters]) -> Dict[str, Any]:
    return wire_parameters(params)


def decode_parameters(data: Optional[Dict[str, Any]]) -> Parameters:
    if data is None:
        return Parameters()
    try:
        return Parameters.model_validate(data)
    except ValidationError as e:
        raise ProtocolError("Invalid parameters", details=str(e), cause=e) from e


# ----------------------------------------------------------------------
# Solutions
# ----------------------------------------------------------------------


def _encode_value(value: Any) -> Any:
    if isinstance(value, IntervalValue):
        return {"start": value.start, "end": value.end}
    return value


def encode_solution(solution: Solution) -> Dict[str, Any]:
    data: Dict[str, Any] = {
        "values": {str(node_id): _encode_value(value) for node_id, value in solution}
    }
    objective = solution.get_objective()
    if objective is not UNDEFINED_OBJECTIVE:
        data["objective"] = objective
    return data


def _decode_value(node: Node, raw: Any) -> Any:
    if raw is None:
        return None
    if node.func == "intervalVar":
        if not isinstance(raw, dict) or "start" not in raw or "end" not in raw:
            raise ProtocolError(f"Interval value expected for variable {node.id}", details=raw)
        return IntervalValue(raw["start"], raw["end"])
    if node.func == "boolVar":
        if isinstance(raw, bool):
            return raw
        if raw in (0, 1):
            return bool(raw)
        raise ProtocolError(f"Boolean value expected for variable {node.id}", details=raw)
    if node.func == "intVar":
        if isinstance(raw, int) and not isinstance(raw, bool):
            return raw
        raise ProtocolError(f"Integer value expected for variable {node.id}", details=raw)
    if isinstance(raw, (int, float)) and not isinstance(raw, bool):
        return float(raw)
    raise ProtocolError(f"Numeric value expected for variable {node.id}", details=raw)


def decode_solution(data: Dict[str, Any], model: Model) -> Solution:
    """Build a Solution from wire data; every id must be a variable of ``model``."""
    if not isinstance(data, dict):
        raise ProtocolError("Solution must be an object", details=data)
    values = data.get("values", {})
    if not isinstance(values, dict):
        raise ProtocolError("Solution values must be an object", details=values)
    solution = Solution()
    for key, raw in values.items():
        try:
            node_id = int(key)
        except (TypeError, ValueError) as e:
            raise ProtocolError(f"Invalid variable id {key!r} in solution") from e
        if not model.is_variable_id(node_id):
            raise ProtocolError(
                f"Solution refers to unknown variable id {node_id}",
                context={"model": model.name},
            )
        solution.set_raw(node_id, _decode_value(model.get_variable(node_id).node, raw))
    if "objective" in data:
        objective = data["objective"]
        if objective is not None and (isinstance(objective, bool) or not isinstance(objective, (int, float))):
            raise ProtocolError("Objective must be a number or null", details=objective)
        solution.set_objective(objective)
    elif model.get_objective() is not None:
        solution.set_objective(None)
    return solution


def decode_domains(data: Dict[str, Any], model: Model) -> ModelDomains:
    if not isinstance(data, dict):
        raise ProtocolError("Domains must be an object", details=data)
    domains: Dict[int, Optional[Dict[str, Any]]] = {}
    for key, raw in data.items():
        try:
            node_id = int(key)
        except (TypeError, ValueError) as e:
            raise ProtocolError(f"Invalid variable id {key!r} in domains") from e
        if not model.is_variable_id(node_id):
            raise ProtocolError(f"Domains refer to unknown variable id {node_id}")
        if raw is None:
            domains[node_id] = None
            continue
        if not isinstance(raw, dict):
            raise ProtocolError(f"Malformed domain for variable {node_id}", details=raw)
        entry = {k: raw[k] for k in BOUND_FIELDS if k in raw}
        if "status" in raw:
            try:
                entry["status"] = PresenceStatus(raw["status"])
            except ValueError as e:
                raise ProtocolError(f"Invalid presence status for variable {node_id}") from e
        domains[node_id] = entry
    return ModelDomains(domains)


# ----------------------------------------------------------------------
# Messages
# ----------------------------------------------------------------------


def _dumps(message: Dict[str, Any]) -> str:
    try:
        return json.dumps(message, separators=(",", ":"), allow_nan=False)
    except ValueError as e:
        raise ProtocolError("Message contains a non finite number", cause=e) from e


def encode_problem(
    model: Model,
    params: Optional[Parameters] = None,
    warm_start: Optional[Solution] = None,
) -> Dict[str, Any]:
    data: Dict[str, Any] = {
        "model": encode_model(model),
        "parameters": encode_parameters(params),
    }
    if warm_start is not None:
        data["warmStart"] = encode_solution(warm_start)
    return data


def encode_command(
    command: str,
    model: Model,
    params: Optional[Parameters] = None,
    warm_start: Optional[Solution] = None,
) -> str:
    """One JSON line carrying a command and the full problem."""
    if command not in COMMANDS:
        raise ValueError(f"Unknown command '{command}', expected one of {COMMANDS}")
    return _dumps({"msg": command, "data": encode_problem(model, params, warm_start)})


def encode_stop(reason: str) -> str:
    return _dumps({"msg": "stop", "data": {"reason": reason}})


def encode_solution_message(solution: Solution) -> str:
    return _dumps({"msg": "solution", "data": encode_solution(solution)})


def decode_message(line: str) -> EngineMessage:
    try:
        message = json.loads(line)
    except json.JSONDecodeError as e:
        raise ProtocolError("Malformed engine message", details=line, cause=e) from e
    if not isinstance(message, dict) or "msg" not in message:
        raise ProtocolError("Engine message must be an object with 'msg'", details=line)
    kind = message["msg"]
    if not isinstance(kind, str) or kind not in INBOUND_KINDS:
        raise ProtocolError(f"Unknown engine message '{kind}'", details=line)
    return EngineMessage(kind, message.get("data"))


# ----------------------------------------------------------------------
# Persisted problems
# ----------------------------------------------------------------------


def problem_to_json(
    model: Model,
    params: Optional[Parameters] = None,
    warm_start: Optional[Solution] = None,
) -> str:
    return json.dumps(encode_problem(model, params, warm_start), indent=2, allow_nan=False)


def json_to_problem(text: str) -> ProblemDefinition:
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise ProtocolError("Problem file is not valid JSON", cause=e) from e
    if not isinstance(data, dict) or "model" not in data:
        raise ProtocolError("Problem must be an object with a 'model' entry")
    model = decode_model(data["model"])
    params = decode_parameters(data.get("parameters"))
    warm_start = None
    if data.get("warmStart") is not None:
        warm_start = decode_solution(data["warmStart"], model)
    return ProblemDefinition(model, params, warm_start)
