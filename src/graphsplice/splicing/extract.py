from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from graphsplice.config import ConfigError, ExtractionPlan
from graphsplice.ir.graph import Graph, GraphValidator, Node
from graphsplice.ir.utils import build_name_index
from graphsplice.plugins.registry import global_registry
from graphsplice.splicing.errors import SpliceError
from graphsplice.splicing.inputs import InputSplicer
from graphsplice.splicing.outputs import OutputSplicer
from graphsplice.splicing.prune import collect_garbage, prune_boundaries
from graphsplice.splicing.refs import parse_tensor_ref
from graphsplice.utils import get_logger

logger = get_logger(__name__)


@dataclass
class SpliceResult:
    parameters: list[Node] = field(default_factory=list)
    results: list[Node] = field(default_factory=list)
    removed_parameters: list[str] = field(default_factory=list)
    removed_results: list[str] = field(default_factory=list)
    collected_nodes: int = 0


def _append_unique(acc: list[Node], nodes: Iterable[Node]) -> None:
    for n in nodes:
        if not any(n is m for m in acc):
            acc.append(n)


def splice_inputs(
    graph: Graph, index: dict[str, Node], refs: Iterable[str], splicer: InputSplicer
) -> list[Node]:
    """Boundary inputs for ``refs``, in target order."""
    parameters: list[Node] = []
    for text in refs:
        _append_unique(parameters, splicer.splice(graph, index, parse_tensor_ref(text)))
    return parameters


def splice_outputs(
    graph: Graph, index: dict[str, Node], refs: Iterable[str], splicer: OutputSplicer
) -> list[Node]:
    """Boundary outputs for ``refs``, in target order."""
    results: list[Node] = []
    for text in refs:
        _append_unique(results, splicer.splice(graph, index, parse_tensor_ref(text)))
    return results


def _create(kind: str, name: str) -> Any:
    try:
        return global_registry.create(kind, name)
    except KeyError:
        raise ConfigError(f"Unknown {kind.replace('_', ' ')} strategy '{name}'") from None


def extract_subgraph(graph: Graph, plan: ExtractionPlan) -> SpliceResult:
    """
    Rewire ``graph`` in place so that its inputs/outputs are exactly the
    tensors named in ``plan``, then drop everything outside that frontier.
    """
    input_splicer: InputSplicer = _create("input_splicer", plan.input_strategy)
    output_splicer: OutputSplicer = _create("output_splicer", plan.output_strategy)

    logger.info(graph.summary())
    index = build_name_index(graph)

    parameters = splice_inputs(graph, index, plan.inputs, input_splicer)
    graph.add_parameters(parameters)
    GraphValidator(graph).validate()
    logger.info(graph.summary())

    results = splice_outputs(graph, index, plan.outputs, output_splicer)
    if not results:
        raise SpliceError(
            "No graph outputs left to extract; name at least one output tensor",
            code="EEMPTY_BOUNDARY",
        )
    graph.add_results(results)
    logger.info(graph.summary())

    removed_params, removed_results = prune_boundaries(graph, parameters, results)
    collected = collect_garbage(graph)
    logger.info(graph.summary())

    GraphValidator(graph).validate()
    return SpliceResult(
        parameters=parameters,
        results=results,
        removed_parameters=removed_params,
        removed_results=removed_results,
        collected_nodes=collected,
    )
