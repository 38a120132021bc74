from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from graphsplice.ir.graph import Graph


class Exporter(ABC):
    """Exporter interface for turning a Graph back into a model."""

    @abstractmethod
    def export(self, graph: Graph) -> Any:
        raise NotImplementedError
