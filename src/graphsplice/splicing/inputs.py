from __future__ import annotations

from abc import ABC, abstractmethod

from graphsplice.ir.graph import PARAMETER, Graph, Node, Tensor
from graphsplice.ir.utils import (
    build_producer_map,
    is_constant_tensor,
    replace_source,
    unique_node_name,
    unique_tensor_name,
)
from graphsplice.plugins.registry import global_registry
from graphsplice.splicing.errors import SpliceError
from graphsplice.splicing.refs import TensorRef, port_tensor, resolve_op
from graphsplice.utils import get_logger

logger = get_logger(__name__)


class InputSplicer(ABC):
    """
    Turns a tensor reference into graph inputs. One instance serves one
    extraction and remembers the Parameter created for each (operation, port).
    """

    def __init__(self) -> None:
        self._spliced: dict[tuple[str, int], Node] = {}

    def splice(self, graph: Graph, index: dict[str, Node], ref: TensorRef) -> list[Node]:
        if ref.port is None:
            return self.splice_operation(graph, index, ref)
        node = resolve_op(index, ref)
        if node.is_parameter:
            logger.info("keep original parameter %s", node.name)
            return [node]
        return [self.splice_port(graph, node, ref.port, str(ref))]

    def splice_port(self, graph: Graph, node: Node, port: int, tag: str) -> Node:
        """
        Replace output ``port`` of ``node`` by a new Parameter. The Parameter
        takes over the port's tensor name, the producer keeps a detached copy,
        so every consumer of the port now reads the Parameter.
        """
        tensor_name = port_tensor(node, port)
        cached = self._spliced.get((node.name, port))
        if cached is not None:
            # An earlier edge splice may have left other consumers behind
            replace_source(graph, tensor_name, cached.outputs[0])
            return cached

        src = self._typed_tensor(graph, node, tensor_name)
        detached = unique_tensor_name(graph, f"{tensor_name}/detached")
        graph.add_tensor(
            Tensor(
                name=detached,
                dtype=src.dtype,
                shape=list(src.shape) if src.shape is not None else None,
                layout=src.layout,
            )
        )
        node.outputs[port] = detached

        param = Node(
            op_type=PARAMETER,
            inputs=[],
            outputs=[tensor_name],
            name=unique_node_name(graph, tag),
            metadata={"source_tensor": tensor_name, "source_op": node.name},
        )
        graph.add_node(param)
        self._spliced[(node.name, port)] = param
        logger.info(
            "spliced parameter %s at %s port %d (%s %s)",
            param.name,
            node.name,
            port,
            src.dtype,
            src.shape,
        )
        return param

    @abstractmethod
    def splice_operation(
        self, graph: Graph, index: dict[str, Node], ref: TensorRef
    ) -> list[Node]:
        raise NotImplementedError

    def _splice_edge(self, graph: Graph, consumer: Node, producer: Node, port: int) -> Node:
        """Feed ``consumer`` from a Parameter replacing ``producer``'s ``port``."""
        tensor_name = producer.outputs[port]
        param = self._spliced.get((producer.name, port))
        if param is None:
            src = self._typed_tensor(graph, producer, tensor_name)
            tag = str(TensorRef(producer.name, port))
            new_name = unique_tensor_name(graph, tag)
            graph.add_tensor(
                Tensor(
                    name=new_name,
                    dtype=src.dtype,
                    shape=list(src.shape) if src.shape is not None else None,
                    layout=src.layout,
                )
            )
            param = Node(
                op_type=PARAMETER,
                inputs=[],
                outputs=[new_name],
                name=unique_node_name(graph, tag),
                metadata={"source_tensor": tensor_name, "source_op": producer.name},
            )
            graph.add_node(param)
            self._spliced[(producer.name, port)] = param
            logger.info("spliced parameter %s on input edge of %s", param.name, consumer.name)
        replace_source(graph, tensor_name, param.outputs[0], consumers=[consumer])
        return param

    @staticmethod
    def _typed_tensor(graph: Graph, node: Node, tensor_name: str) -> Tensor:
        src = graph.get_tensor(tensor_name)
        if src is None or src.dtype is None:
            raise SpliceError(
                f"Output '{tensor_name}' of '{node.name}' has no known type; "
                "cannot create a graph input for it",
                code="EUNTYPED_PORT",
            )
        return src


@global_registry.component("input_splicer", "port")
class PortInputSplicer(InputSplicer):
    """Port-addressed splicing: ``op:port`` references only."""

    def splice_operation(
        self, graph: Graph, index: dict[str, Node], ref: TensorRef
    ) -> list[Node]:
        logger.warning("'%s' is not a tensor name, skipped", ref)
        return []


@global_registry.component("input_splicer", "edges")
class EdgeInputSplicer(InputSplicer):
    """
    Port references behave as in PortInputSplicer; a bare operation name
    splices every non-constant tensor the operation reads, including those
    its subgraph attributes read from the enclosing graph.
    """

    def splice_operation(
        self, graph: Graph, index: dict[str, Node], ref: TensorRef
    ) -> list[Node]:
        node = resolve_op(index, ref)
        if node.is_parameter:
            logger.info("keep original parameter %s", node.name)
            return [node]
        producers = build_producer_map(graph)
        spliced: list[Node] = []
        for name in node.reads:
            if is_constant_tensor(graph, name):
                continue
            idx = producers.get(name)
            if idx is None:
                continue
            producer = graph.nodes[idx]
            if producer.is_parameter:
                param = producer
            else:
                param = self._splice_edge(graph, node, producer, producer.outputs.index(name))
            if not any(param is p for p in spliced):
                spliced.append(param)
        if not spliced:
            logger.warning("operation %s has no non-constant inputs to splice", node.name)
        return spliced
