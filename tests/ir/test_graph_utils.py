from __future__ import annotations

import numpy as np
import pytest
from onnx import ModelProto

from graphsplice.ir import (
    CONSTANT,
    Graph,
    Node,
    Tensor,
    ValidationError,
    build_consumer_map,
    build_name_index,
    build_producer_map,
    clone_node,
    is_constant_tensor,
    replace_node,
    replace_source,
    unique_node_name,
    unique_tensor_name,
)
from graphsplice.parsers.onnx import OnnxParser


def t(name: str, shape: list[int]) -> Tensor:
    return Tensor(name=name, dtype="float32", shape=shape)


def chain() -> Graph:
    # x -> A -> y -> B -> z
    g = Graph()
    for name in ["x", "y", "z"]:
        g.add_tensor(t(name, [1]))
    g.add_node(Node("A", ["x"], ["y"], name="a"))
    g.add_node(Node("B", ["y"], ["z"], name="b"))
    return g


def test_producer_consumer_maps() -> None:
    g = chain()
    p = build_producer_map(g)
    c = build_consumer_map(g)

    assert p["y"] == 0
    assert p["z"] == 1
    assert c["x"] == [0]
    assert c["y"] == [1]


def test_maps_skip_omitted_optional_io() -> None:
    g = chain()
    g.nodes[1].inputs.append("")
    g.nodes[1].outputs.append("")
    assert "" not in build_producer_map(g)
    assert "" not in build_consumer_map(g)


def test_name_index_follows_topological_order() -> None:
    g = chain()
    g.nodes.reverse()
    index = build_name_index(g)
    assert list(index) == ["a", "b"]
    assert index["b"] is g.nodes[0]


def test_name_index_rejects_duplicates() -> None:
    g = chain()
    g.nodes[1].name = "a"
    with pytest.raises(ValidationError) as exc:
        build_name_index(g)
    assert exc.value.code == "EDUP_NAME"


def test_constant_detection() -> None:
    g = chain()
    g.add_tensor(t("w", [1]))
    g.tensors["w"].metadata["const"] = np.zeros(1, dtype=np.float32)
    g.add_tensor(t("c", [1]))
    g.add_node(Node(CONSTANT, [], ["c"], name="const"))
    assert is_constant_tensor(g, "w")
    assert is_constant_tensor(g, "c")
    assert not is_constant_tensor(g, "y")


def test_unique_names() -> None:
    g = chain()
    assert unique_tensor_name(g, "q") == "q"
    assert unique_tensor_name(g, "y") == "y_1"
    g.add_tensor(t("y_1", [1]))
    assert unique_tensor_name(g, "y") == "y_2"
    assert unique_node_name(g, "a") == "a_1"
    assert unique_node_name(g, "c") == "c"


def test_clone_is_a_distinct_node() -> None:
    g = chain()
    original = g.nodes[0]
    clone = clone_node(original)
    assert clone is not original
    assert clone != original
    assert (clone.name, clone.inputs, clone.outputs) == (original.name, original.inputs, original.outputs)
    clone.inputs.append("extra")
    assert original.inputs == ["x"]


def test_replace_node_keeps_slot() -> None:
    g = chain()
    clone = clone_node(g.nodes[1])
    old = g.nodes[1]
    replace_node(g, old, clone)
    assert g.nodes[1] is clone
    assert not g.owns(old)


def test_replace_source_all_or_selected_consumers() -> None:
    g = chain()
    g.add_tensor(t("w", [1]))
    g.add_node(Node("C", ["y"], ["w"], name="c"))
    g.add_tensor(t("y2", [1]))

    assert replace_source(g, "y", "y2", consumers=[g.nodes[2]]) == 1
    assert g.nodes[1].inputs == ["y"]
    assert g.nodes[2].inputs == ["y2"]

    assert replace_source(g, "y", "y2") == 1
    assert g.nodes[1].inputs == ["y2"]


def test_captures_count_as_consumers() -> None:
    g = chain()
    g.add_tensor(t("o", [1]))
    g.add_node(Node("If", ["x"], ["o"], name="iff", captures=["y", "x"]))

    c = build_consumer_map(g)

    assert c["y"] == [1, 2]
    assert c["x"] == [0, 2]
    assert clone_node(g.nodes[2]).captures == ["y", "x"]


def test_replace_source_rewrites_captured_reads(if_model: ModelProto) -> None:
    g = OnnxParser().parse(if_model)
    iff = next(n for n in g.nodes if n.name == "iff")
    shared = clone_node(iff).metadata["onnx_attributes"]
    g.add_tensor(t("t2", [2, 4]))

    # default consumers come from the consumer map: relu's t feeds only iff
    assert replace_source(g, "t", "t2") == 1

    assert iff.captures == ["t2", "w"]
    bodies = {a.name: a.g for a in iff.metadata["onnx_attributes"]}
    assert list(bodies["then_branch"].node[0].input) == ["t2", "w"]
    assert list(bodies["else_branch"].node[0].input) == ["t2"]
    # protos shared with a clone are left alone
    assert list(shared[1].g.node[0].input) == ["t", "w"]
