from __future__ import annotations

from abc import ABC, abstractmethod

from graphsplice.ir.graph import RESULT, RESULT_SUFFIX, Graph, Node
from graphsplice.ir.utils import clone_node, replace_node, unique_node_name
from graphsplice.plugins.registry import global_registry
from graphsplice.splicing.errors import SpliceError
from graphsplice.splicing.refs import TensorRef, port_tensor, resolve_op
from graphsplice.utils import get_logger

logger = get_logger(__name__)


class OutputSplicer(ABC):
    """
    Turns a tensor reference into a graph output (Result). One instance serves
    one extraction and remembers the Result created for each tensor.
    """

    def __init__(self) -> None:
        self._spliced: dict[str, Node] = {}

    def splice(self, graph: Graph, index: dict[str, Node], ref: TensorRef) -> list[Node]:
        node = resolve_op(index, ref)
        if node.is_result:
            logger.info("keep original Result %s", node.name)
            return [node]
        port = ref.port
        if port is None:
            if len(node.outputs) != 1:
                raise SpliceError(
                    f"Operation '{node.name}' has {len(node.outputs)} outputs; "
                    "name a port explicitly (op:port)",
                    code="EOUTPUT_ARITY",
                )
            port = 0
        tensor_name = port_tensor(node, port)
        cached = self._spliced.get(tensor_name)
        if cached is not None:
            return [cached]
        t = graph.get_tensor(tensor_name)
        if t is None or t.dtype is None:
            raise SpliceError(
                f"Output '{tensor_name}' of '{node.name}' has no known type; "
                "cannot create a graph output for it",
                code="EUNTYPED_PORT",
            )
        logger.info("tensor port %d: %s", port, tensor_name)
        result = self.splice_port(graph, index, node, port, str(ref))
        self._spliced[tensor_name] = result
        return [result]

    @abstractmethod
    def splice_port(
        self, graph: Graph, index: dict[str, Node], node: Node, port: int, tag: str
    ) -> Node:
        raise NotImplementedError

    @staticmethod
    def make_result(graph: Graph, tensor_name: str, tag: str) -> Node:
        result = Node(
            op_type=RESULT,
            inputs=[tensor_name],
            outputs=[],
            name=unique_node_name(graph, tensor_name + RESULT_SUFFIX),
            metadata={"source_tensor": tag},
        )
        graph.add_node(result)
        return result


@global_registry.component("output_splicer", "tap")
class TapOutputSplicer(OutputSplicer):
    """
    Attach a Result to the designated port, whatever the producer's arity.
    A Result already registered on that tensor is reused.
    """

    def splice_port(
        self, graph: Graph, index: dict[str, Node], node: Node, port: int, tag: str
    ) -> Node:
        tensor_name = node.outputs[port]
        for r in graph.results:
            if r.inputs[0] == tensor_name:
                logger.info("reuse Result %s for %s", r.name, tag)
                return r
        result = self.make_result(graph, tensor_name, tag)
        logger.info("spliced result %s on %s", result.name, tag)
        return result


@global_registry.component("output_splicer", "clone")
class CloneOutputSplicer(TapOutputSplicer):
    """
    Single-output operations are replaced by a clone feeding a new Result
    (and every former consumer); multi-output operations are tapped.
    """

    def splice_port(
        self, graph: Graph, index: dict[str, Node], node: Node, port: int, tag: str
    ) -> Node:
        if len(node.outputs) != 1:
            return super().splice_port(graph, index, node, port, tag)
        clone = clone_node(node)
        clone.metadata["cloned_from"] = node.name
        replace_node(graph, node, clone)
        index[clone.name] = clone
        result = self.make_result(graph, clone.outputs[0], tag)
        logger.info("replaced %s by a clone feeding result %s", node.name, result.name)
        return result
