# cpclient/protocol/__init__.py

"""Wire format: JSON codec, line framing and source export."""

from .codec import (
    EngineMessage,
    ProblemDefinition,
    decode_domains,
    decode_message,
    decode_model,
    decode_parameters,
    decode_solution,
    encode_command,
    encode_model,
    encode_parameters,
    encode_solution,
    encode_solution_message,
    encode_stop,
    json_to_problem,
    problem_to_json,
)
from .framing import LineBuffer
from .source_export import problem_to_python
