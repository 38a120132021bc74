from __future__ import annotations

from graphsplice.ir.graph import Graph, Node
from graphsplice.optimizer import build_cleanup_pipeline
from graphsplice.utils import get_logger

logger = get_logger(__name__)


def prune_boundaries(
    graph: Graph, parameters: list[Node], results: list[Node]
) -> tuple[list[str], list[str]]:
    """
    Deregister every graph input/output that is not part of the new boundary.
    Nodes stay in the arena; ``collect_garbage`` frees what became unreachable.
    """
    keep_params = {id(p) for p in parameters}
    keep_results = {id(r) for r in results}
    removed_params: list[str] = []
    removed_results: list[str] = []
    for node in list(graph.parameters):
        if id(node) not in keep_params:
            graph.remove_parameter(node)
            removed_params.append(node.name)
            logger.info("remove parameter %s", node.name)
    for node in list(graph.results):
        if id(node) not in keep_results:
            graph.remove_result(node)
            removed_results.append(node.name)
            logger.info("remove result %s", node.name)
    return removed_params, removed_results


def collect_garbage(graph: Graph) -> int:
    """Delete nodes and tensors the registered boundary no longer needs."""
    before = len(graph.nodes)
    build_cleanup_pipeline().run(graph)
    collected = before - len(graph.nodes)
    if collected:
        logger.info("collected %d unreachable nodes", collected)
    return collected
