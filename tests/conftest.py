from __future__ import annotations

import numpy as np
import pytest
from onnx import ModelProto, TensorProto, helper, numpy_helper


def make_split_model() -> ModelProto:
    """
    x[2,4] -> relu -> a -> split -> s0 -> sig  -> y0 -> add -> z -> mul -> out
                               \\-> s1 -> tanh -> y1 -/          w -/
    """
    f = TensorProto.FLOAT
    w = numpy_helper.from_array(np.array([0.5, 2.0], dtype=np.float32), "w")
    nodes = [
        helper.make_node("Relu", ["x"], ["a"], name="relu"),
        helper.make_node("Split", ["a"], ["s0", "s1"], name="split", axis=1),
        helper.make_node("Sigmoid", ["s0"], ["y0"], name="sig"),
        helper.make_node("Tanh", ["s1"], ["y1"], name="tanh"),
        helper.make_node("Add", ["y0", "y1"], ["z"], name="add"),
        helper.make_node("Mul", ["z", "w"], ["out"], name="mul"),
    ]
    graph = helper.make_graph(
        nodes,
        "split_model",
        [helper.make_tensor_value_info("x", f, [2, 4])],
        [helper.make_tensor_value_info("out", f, [2, 2])],
        initializer=[w],
        value_info=[
            helper.make_tensor_value_info("a", f, [2, 4]),
            helper.make_tensor_value_info("s0", f, [2, 2]),
            helper.make_tensor_value_info("s1", f, [2, 2]),
            helper.make_tensor_value_info("y0", f, [2, 2]),
            helper.make_tensor_value_info("y1", f, [2, 2]),
            helper.make_tensor_value_info("z", f, [2, 2]),
        ],
    )
    model = helper.make_model(
        graph, producer_name="graphsplice-test", opset_imports=[helper.make_opsetid("", 13)]
    )
    model.ir_version = 8
    return model


def make_fanout_model() -> ModelProto:
    """x -> r -> t; t -> n1 (Neg) -> u; t -> n2 (Abs) -> v; u, v -> sum -> s."""
    f = TensorProto.FLOAT
    nodes = [
        helper.make_node("Relu", ["x"], ["t"], name="r"),
        helper.make_node("Neg", ["t"], ["u"], name="n1"),
        helper.make_node("Abs", ["t"], ["v"], name="n2"),
        helper.make_node("Add", ["u", "v"], ["s"], name="sum"),
    ]
    graph = helper.make_graph(
        nodes,
        "fanout",
        [helper.make_tensor_value_info("x", f, ["N", 3])],
        [helper.make_tensor_value_info("s", f, ["N", 3])],
        value_info=[
            helper.make_tensor_value_info(name, f, ["N", 3]) for name in ("t", "u", "v")
        ],
    )
    model = helper.make_model(graph, opset_imports=[helper.make_opsetid("", 13)])
    model.ir_version = 8
    return model


def make_if_model() -> ModelProto:
    """
    x -> relu -> t; c -> iff -> o -> neg -> out. The If branches read t
    (and the initializer w) from the enclosing graph, not through inputs.
    """
    f = TensorProto.FLOAT
    w = numpy_helper.from_array(np.array([1.0, 2.0, 3.0, 4.0], dtype=np.float32), "w")
    then_branch = helper.make_graph(
        [helper.make_node("Add", ["t", "w"], ["tb"], name="then_add")],
        "then_branch",
        [],
        [helper.make_tensor_value_info("tb", f, [2, 4])],
    )
    else_branch = helper.make_graph(
        [helper.make_node("Identity", ["t"], ["eb"], name="else_id")],
        "else_branch",
        [],
        [helper.make_tensor_value_info("eb", f, [2, 4])],
    )
    nodes = [
        helper.make_node("Relu", ["x"], ["t"], name="relu"),
        helper.make_node(
            "If", ["c"], ["o"], name="iff", then_branch=then_branch, else_branch=else_branch
        ),
        helper.make_node("Neg", ["o"], ["out"], name="neg"),
    ]
    graph = helper.make_graph(
        nodes,
        "if_model",
        [
            helper.make_tensor_value_info("x", f, [2, 4]),
            helper.make_tensor_value_info("c", TensorProto.BOOL, []),
        ],
        [helper.make_tensor_value_info("out", f, [2, 4])],
        initializer=[w],
        value_info=[
            helper.make_tensor_value_info("t", f, [2, 4]),
            helper.make_tensor_value_info("o", f, [2, 4]),
        ],
    )
    model = helper.make_model(graph, opset_imports=[helper.make_opsetid("", 13)])
    model.ir_version = 8
    return model


@pytest.fixture
def split_model() -> ModelProto:
    return make_split_model()


@pytest.fixture
def fanout_model() -> ModelProto:
    return make_fanout_model()


@pytest.fixture
def if_model() -> ModelProto:
    return make_if_model()
