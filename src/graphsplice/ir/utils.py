from __future__ import annotations

import onnx

from graphsplice.ir.graph import CONSTANT, Graph, Node, ValidationError
from graphsplice.ir.graph import GraphValidator as _GraphValidator
from graphsplice.ir.subgraphs import rename_captured


def build_producer_map(graph: Graph) -> dict[str, int]:
    """
    Map tensor name -> producing node index. Parameters produce the graph inputs.
    Raises ValidationError on duplicate producers.
    """
    producer: dict[str, int] = {}
    for idx, node in enumerate(graph.nodes):
        for out in node.outputs:
            if not out:
                continue
            if out in producer:
                raise ValidationError(
                    f"Multiple producers for tensor '{out}' at node {idx} and {producer[out]}",
                    code="EDUP_PRODUCER",
                    node_index=idx,
                )
            producer[out] = idx
    return producer


def build_consumer_map(graph: Graph) -> dict[str, list[int]]:
    """
    Map tensor name -> list of consuming node indices. A node that reads a
    tensor through a subgraph attribute counts as a consumer.
    """
    consumers: dict[str, list[int]] = {}
    for idx, node in enumerate(graph.nodes):
        for inp in dict.fromkeys(node.reads):
            consumers.setdefault(inp, []).append(idx)
    return consumers


def build_name_index(graph: Graph) -> dict[str, Node]:
    """
    Map operation name -> node, walking the graph in topological order.
    Duplicate names are rejected instead of silently overwriting.
    """
    index: dict[str, Node] = {}
    for node in _GraphValidator(graph).toposort():
        other = index.get(node.name)
        if other is not None:
            raise ValidationError(
                f"Duplicate operation name '{node.name}' "
                f"({other.op_type} and {node.op_type})",
                code="EDUP_NAME",
            )
        index[node.name] = node
    return index


def is_constant_tensor(graph: Graph, name: str) -> bool:
    """True for initializers and outputs of Constant nodes."""
    t = graph.get_tensor(name)
    if t is not None and t.is_const:
        return True
    for node in graph.nodes:
        if name in node.outputs:
            return node.op_type == CONSTANT
    return False


def unique_tensor_name(graph: Graph, base: str) -> str:
    if base not in graph.tensors:
        return base
    i = 1
    while f"{base}_{i}" in graph.tensors:
        i += 1
    return f"{base}_{i}"


def clone_node(node: Node) -> Node:
    """Fresh node with the same op type, inputs, outputs and attributes."""
    return Node(
        op_type=node.op_type,
        inputs=list(node.inputs),
        outputs=list(node.outputs),
        attributes=dict(node.attributes),
        metadata=dict(node.metadata),
        name=node.name,
        domain=node.domain,
        captures=list(node.captures),
    )


def replace_node(graph: Graph, old: Node, new: Node) -> None:
    """Put ``new`` in ``old``'s slot of the arena and of the boundary lists."""
    graph.nodes = [new if n is old else n for n in graph.nodes]
    graph.parameters = [new if n is old else n for n in graph.parameters]
    graph.results = [new if n is old else n for n in graph.results]


def replace_source(
    graph: Graph, old: str, new: str, consumers: list[Node] | None = None
) -> int:
    """
    Make ``consumers`` (default: every consumer of ``old``) read ``new`` instead.
    Subgraph bodies that capture ``old`` are rewritten too.
    Returns the number of rewired edges.
    """
    if consumers is None:
        consumers = [graph.nodes[i] for i in build_consumer_map(graph).get(old, [])]
    rewired = 0
    for node in consumers:
        for i, name in enumerate(node.inputs):
            if name == old:
                node.inputs[i] = new
                rewired += 1
        if old in node.captures:
            # Copy the protos: clones share the raw attribute list
            raw = []
            for a in node.metadata.get("onnx_attributes", []):
                copy = onnx.AttributeProto()
                copy.CopyFrom(a)
                raw.append(copy)
            rename_captured(raw, old, new)
            node.metadata["onnx_attributes"] = raw
            node.captures = [new if c == old else c for c in node.captures]
            rewired += 1
    return rewired


def unique_node_name(graph: Graph, base: str) -> str:
    taken = {n.name for n in graph.nodes}
    if base not in taken:
        return base
    i = 1
    while f"{base}_{i}" in taken:
        i += 1
    return f"{base}_{i}"
