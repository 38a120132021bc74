from __future__ import annotations

from collections.abc import Iterable

from graphsplice.ir.graph import Graph
from graphsplice.ir.utils import build_producer_map
from graphsplice.optimizer.passes import Pass


class DeadCodeEliminationPass(Pass):
    """
    Remove nodes that no registered Result depends on. Registered Parameters
    are kept even when unused; deregistered Parameters and Results go.
    """

    def match(self, graph: Graph) -> Iterable[list[int]]:
        producers = build_producer_map(graph)
        registered = {id(n) for n in graph.results} | {id(n) for n in graph.parameters}
        stack = [i for i, n in enumerate(graph.nodes) if id(n) in registered]
        live: set[int] = set()
        while stack:
            idx = stack.pop()
            if idx in live:
                continue
            live.add(idx)
            for inp in graph.nodes[idx].reads:
                p = producers.get(inp)
                if p is not None and p not in live:
                    stack.append(p)
        dead = [i for i in range(len(graph.nodes)) if i not in live]
        if dead:
            yield dead

    def apply(self, graph: Graph, candidate: list[int]) -> None:
        # Remove nodes in reverse order to keep indices stable
        for idx in sorted(candidate, reverse=True):
            del graph.nodes[idx]


class UnusedTensorEliminationPass(Pass):
    """Drop tensors that no remaining node reads or writes."""

    def match(self, graph: Graph) -> Iterable[list[str]]:
        referenced: set[str] = set()
        for node in graph.nodes:
            referenced.update(node.reads)
            referenced.update(node.outputs)
        unused = [name for name in graph.tensors if name not in referenced]
        if unused:
            yield unused

    def apply(self, graph: Graph, candidate: list[str]) -> None:
        for name in candidate:
            graph.tensors.pop(name, None)
