from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

PARAMETER = "Parameter"
RESULT = "Result"
RESULT_SUFFIX = "/sink_port_0"
CONSTANT = "Constant"

Dim = int | str | None


@dataclass
class Tensor:
    name: str
    dtype: str | None
    shape: list[Dim] | None
    layout: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def is_const(self) -> bool:
        return "const" in self.metadata


@dataclass(eq=False)
class Node:
    """A graph operation. Output port ``i`` is the tensor named ``outputs[i]``.

    Nodes compare by identity: two clones with identical fields are still two
    distinct operations.

    ``captures`` lists the tensors of this graph that the node's subgraph
    attributes (If branches, Loop/Scan bodies) read by name.
    """

    op_type: str
    inputs: list[str]
    outputs: list[str]
    attributes: dict[str, Any] = field(default_factory=dict)
    metadata: dict[str, Any] = field(default_factory=dict)
    name: str = ""
    domain: str = ""
    captures: list[str] = field(default_factory=list)

    @property
    def reads(self) -> list[str]:
        """Every tensor the node depends on: explicit inputs, then captures."""
        return [n for n in self.inputs if n] + [
            n for n in self.captures if n not in self.inputs
        ]

    @property
    def is_parameter(self) -> bool:
        return self.op_type == PARAMETER

    @property
    def is_result(self) -> bool:
        return self.op_type == RESULT


@dataclass
class Graph:
    """Operation graph.

    ``nodes`` owns every node, including Parameter and Result nodes.
    ``parameters`` and ``results`` are the registered boundary: only
    registered nodes become model inputs/outputs on export.
    """

    nodes: list[Node] = field(default_factory=list)
    tensors: dict[str, Tensor] = field(default_factory=dict)
    metadata: dict[str, Any] = field(default_factory=dict)
    parameters: list[Node] = field(default_factory=list)
    results: list[Node] = field(default_factory=list)
    name: str = "graph"

    @property
    def inputs(self) -> list[str]:
        return [p.outputs[0] for p in self.parameters]

    @property
    def outputs(self) -> list[str]:
        return [r.inputs[0] for r in self.results]

    def add_node(self, node: Node) -> None:
        self.nodes.append(node)

    def add_tensor(self, tensor: Tensor) -> None:
        self.tensors[tensor.name] = tensor

    def get_tensor(self, name: str) -> Tensor | None:
        return self.tensors.get(name)

    def owns(self, node: Node) -> bool:
        return any(n is node for n in self.nodes)

    def add_parameters(self, parameters: list[Node]) -> None:
        for p in parameters:
            if not self.owns(p):
                self.add_node(p)
            if not any(p is q for q in self.parameters):
                self.parameters.append(p)

    def add_results(self, results: list[Node]) -> None:
        for r in results:
            if not self.owns(r):
                self.add_node(r)
            if not any(r is q for q in self.results):
                self.results.append(r)

    def remove_parameter(self, node: Node) -> None:
        # Deregisters only; the node stays in the arena until collected.
        self.parameters = [p for p in self.parameters if p is not node]

    def remove_result(self, node: Node) -> None:
        self.results = [r for r in self.results if r is not node]

    def summary(self) -> str:
        return (
            f"model nodes {len(self.nodes)}, parameter {len(self.parameters)}, "
            f"results {len(self.results)}"
        )


class ValidationError(Exception):
    """Graph validation error with optional code and context."""

    def __init__(
        self, message: str, code: str = "EVALID", node_index: int | None = None
    ) -> None:
        super().__init__(message)
        self.code = code
        self.node_index = node_index


class GraphValidator:
    """Validates graph invariants and provides graph utilities like toposort."""

    def __init__(self, graph: Graph) -> None:
        self.graph = graph

    def validate(self) -> None:
        self._validate_tensor_shapes()
        self._validate_unique_names()
        producer_map = self._build_producer_map()
        self._validate_node_io_exist()
        self._validate_boundary_registered()
        self._validate_boundary_typed()
        self._validate_no_dangling_inputs(producer_map)
        self._topological_order(producer_map)  # raises on cycles

    def _validate_tensor_shapes(self) -> None:
        for name, t in self.graph.tensors.items():
            if t.dtype is not None and not isinstance(t.dtype, str):
                raise ValidationError(
                    f"Tensor '{name}' has invalid dtype {t.dtype!r}",
                    code="ETENSOR_DTYPE",
                )
            if t.shape is None:
                continue
            if not isinstance(t.shape, list):
                raise ValidationError(
                    f"Tensor '{name}' has invalid shape {t.shape!r}",
                    code="ETENSOR_SHAPE",
                )
            for dim in t.shape:
                if dim is None or isinstance(dim, str):
                    continue
                if not isinstance(dim, int) or dim < 0:
                    raise ValidationError(
                        f"Tensor '{name}' has invalid shape {t.shape}",
                        code="ETENSOR_SHAPE",
                    )

    def _validate_unique_names(self) -> None:
        seen: dict[str, int] = {}
        for idx, node in enumerate(self.graph.nodes):
            if node.name in seen:
                raise ValidationError(
                    f"Duplicate operation name '{node.name}' at node {idx} and {seen[node.name]}",
                    code="EDUP_NAME",
                    node_index=idx,
                )
            seen[node.name] = idx

    def _build_producer_map(self) -> dict[str, int]:
        """Map tensor name -> producing node index."""
        producer: dict[str, int] = {}
        for idx, node in enumerate(self.graph.nodes):
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

    def _validate_node_io_exist(self) -> None:
        for idx, node in enumerate(self.graph.nodes):
            # Empty names are omitted optional inputs/outputs.
            for name in node.reads:
                if name and name not in self.graph.tensors:
                    raise ValidationError(
                        f"Node '{node.name}' input '{name}' not found in tensors",
                        code="EINPUT_MISSING",
                        node_index=idx,
                    )
            for name in node.outputs:
                if name and name not in self.graph.tensors:
                    raise ValidationError(
                        f"Node '{node.name}' output '{name}' not found in tensors",
                        code="EOUTPUT_MISSING",
                        node_index=idx,
                    )

    def _validate_boundary_registered(self) -> None:
        for p in self.graph.parameters:
            if not p.is_parameter or not self.graph.owns(p):
                raise ValidationError(
                    f"Graph input '{p.name}' is not a Parameter of this graph",
                    code="EGRAPH_INPUT",
                )
        for r in self.graph.results:
            if not r.is_result or not self.graph.owns(r):
                raise ValidationError(
                    f"Graph output '{r.name}' is not a Result of this graph",
                    code="EGRAPH_OUTPUT",
                )

        registered_params = {id(p) for p in self.graph.parameters}
        registered_results = {id(r) for r in self.graph.results}
        consumed: dict[str, str] = {}
        for node in self.graph.nodes:
            for name in node.reads:
                consumed.setdefault(name, node.name)
        for idx, node in enumerate(self.graph.nodes):
            if node.is_parameter and id(node) not in registered_params:
                user = consumed.get(node.outputs[0])
                if user is not None:
                    raise ValidationError(
                        f"Parameter '{node.name}' is not a graph input but is still "
                        f"consumed by '{user}'",
                        code="EPARAM_UNREGISTERED",
                        node_index=idx,
                    )
            if node.is_result and id(node) not in registered_results:
                raise ValidationError(
                    f"Result '{node.name}' is not registered as a graph output",
                    code="ERESULT_UNREGISTERED",
                    node_index=idx,
                )

    def _validate_boundary_typed(self) -> None:
        for name in self.graph.inputs + self.graph.outputs:
            t = self.graph.tensors.get(name)
            if t is None:
                raise ValidationError(
                    f"Boundary tensor '{name}' missing", code="EGRAPH_TENSOR"
                )
            if t.dtype is None:
                raise ValidationError(
                    f"Boundary tensor '{name}' missing dtype", code="ETENSOR_DTYPE"
                )

    def _validate_no_dangling_inputs(self, producer_map: dict[str, int]) -> None:
        for idx, node in enumerate(self.graph.nodes):
            for name in node.reads:
                if not name or name in producer_map:
                    continue
                t = self.graph.tensors.get(name)
                if t is not None and t.is_const:
                    continue
                raise ValidationError(
                    f"Node '{node.name}' input '{name}' has no producer",
                    code="EDANGLING",
                    node_index=idx,
                )

    def _topological_order(
        self, producer_map: dict[str, int] | None = None
    ) -> list[int]:
        """
        Return topological order of node indices. Raise ValidationError on cycles.
        """
        if producer_map is None:
            producer_map = self._build_producer_map()

        indegree: list[int] = [0] * len(self.graph.nodes)
        adj: dict[int, set[int]] = {i: set() for i in range(len(self.graph.nodes))}

        # Build edges: u -> v if v consumes a tensor produced by u
        for v_idx, node in enumerate(self.graph.nodes):
            for inp in node.reads:
                u_idx = producer_map.get(inp)
                if u_idx is not None:
                    if v_idx not in adj[u_idx]:
                        adj[u_idx].add(v_idx)
                        indegree[v_idx] += 1

        # Kahn's algorithm
        queue: list[int] = [i for i, d in enumerate(indegree) if d == 0]
        order: list[int] = []
        while queue:
            u = queue.pop(0)
            order.append(u)
            for v in sorted(adj[u]):
                indegree[v] -= 1
                adj[u].remove(v)
                if indegree[v] == 0:
                    queue.append(v)

        if len(order) != len(self.graph.nodes):
            raise ValidationError("Cycle detected in graph", code="ECYCLE")
        return order

    def toposort(self) -> list[Node]:
        order = self._topological_order()
        return [self.graph.nodes[i] for i in order]
