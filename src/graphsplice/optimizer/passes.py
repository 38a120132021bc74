from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable
from typing import Protocol

from graphsplice.ir.graph import Graph
from graphsplice.utils import get_logger

logger = get_logger(__name__)


class Candidate(Protocol):
    """What a pass found to rewrite: node indices, tensor names, ..."""
    ...


class Pass(ABC):
    """A graph rewrite: ``match`` finds candidates, ``apply`` rewrites one."""

    @property
    def name(self) -> str:
        return type(self).__name__

    @abstractmethod
    def match(self, graph: Graph) -> Iterable[Candidate]:
        raise NotImplementedError

    @abstractmethod
    def apply(self, graph: Graph, candidate: Candidate) -> None:
        raise NotImplementedError


class Pipeline:
    """Runs each pass, in order, until it finds nothing left to rewrite."""

    def __init__(self, passes: list[Pass], max_rounds: int = 100) -> None:
        self._passes = passes
        self.max_rounds = max_rounds
        self.applied: dict[str, int] = {}

    def run(self, graph: Graph) -> Graph:
        self.applied = {}
        for p in self._passes:
            count = 0
            for _ in range(self.max_rounds):
                candidates = list(p.match(graph))
                if not candidates:
                    break
                for c in candidates:
                    p.apply(graph, c)
                count += len(candidates)
            else:
                raise RuntimeError(f"{p.name} did not converge in {self.max_rounds} rounds")
            self.applied[p.name] = count
            logger.debug("%s applied %d rewrites: %s", p.name, count, graph.summary())
        return graph
