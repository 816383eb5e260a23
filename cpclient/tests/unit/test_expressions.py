# cpclient/tests/unit/test_expressions.py

"""
Tests for the typed façades over expression nodes.
"""

import pytest

from cpclient.core.expressions import (
    BoolExpr,
    CumulExpr,
    FloatExpr,
    IntExpr,
    IntervalVar,
    Objective,
    SequenceVar,
    StepFunction,
    element_class,
)
from cpclient.core.model import Model
from cpclient.core.nodes import Node, NodeKind


class TestElementClass:
    """Tests for façade selection"""

    @pytest.mark.parametrize(
        "func, expected",
        [
            ("intPlus", IntExpr),
            ("floatDiv", FloatExpr),
            ("eq", BoolExpr),
            ("startOf", IntExpr),
            ("intervalVar", IntervalVar),
            ("sequenceVar", SequenceVar),
            ("pulse", CumulExpr),
            ("stepFunction", StepFunction),
            ("minimize", Objective),
        ],
    )
    def test_class_by_operator(self, func, expected):
        """Test that each operator maps to the façade of its value kind"""
        assert element_class(Node(func)) is expected

    def test_unknown_operator(self):
        """Test that unknown operators are rejected by the node table"""
        with pytest.raises(KeyError):
            Node("noSuchOperator")


class TestModelElement:
    """Tests for common façade behaviour"""

    def test_properties(self):
        """Test id, func, kind and model accessors"""
        model = Model()
        x = model.int_var(name="x")

        assert x.model is model
        assert x.func == "intVar"
        assert x.kind == NodeKind.INT
        assert x.name == "x"
        assert x.id == 0

    def test_repr(self):
        """Test readable representations"""
        model = Model()
        x = model.int_var(name="x")
        expr = x + 1

        assert repr(x) == "IntVar(intVar, x)"
        assert repr(expr) == "IntExpr(intPlus, inline)"

    def test_elements_are_hashable(self):
        """Test that comparison operators do not break hashing"""
        model = Model()
        x = model.int_var()
        y = model.int_var()

        lookup = {x: "x", y: "y"}
        assert lookup[x] == "x"
        assert isinstance(x <= y, BoolExpr)

    def test_reverse_operators(self):
        """Test operators with a constant on the left"""
        model = Model()
        x = model.int_var()

        assert (10 - x).func == "intMinus"
        assert (10 - x).node.args[0] == 10
        assert (1 + x).func == "intPlus"
        assert (1 / x).func == "floatDiv"


class TestIntervalVarFacade:
    """Tests for interval variable helpers"""

    def test_accessors(self):
        """Test start/end/length expressions"""
        model = Model()
        itv = model.interval_var(length=4)

        assert itv.start().func == "startOf"
        assert itv.end().func == "endOf"
        assert itv.length().func == "lengthOf"
        assert itv.start_or(-1).node.args[1] == -1
        assert itv.length_or(0).func == "lengthOr"

    def test_bound_setters(self):
        """Test that bound properties write validated bounds"""
        model = Model()
        itv = model.interval_var()

        itv.start_min = 5
        itv.length_max = 20
        assert itv.node.bounds == {"startMin": 5, "lengthMax": 20}
        with pytest.raises(ValueError):
            itv.length_min = -1
