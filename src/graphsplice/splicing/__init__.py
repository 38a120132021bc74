"""Subgraph extraction by splicing new inputs/outputs into a graph."""

from .errors import SpliceError, TensorRefError
from .extract import SpliceResult, extract_subgraph, splice_inputs, splice_outputs
from .inputs import EdgeInputSplicer, InputSplicer, PortInputSplicer
from .outputs import CloneOutputSplicer, OutputSplicer, TapOutputSplicer
from .prune import collect_garbage, prune_boundaries
from .refs import TensorRef, parse_tensor_ref


__all__ = [
    "SpliceError",
    "TensorRefError",
    "TensorRef",
    "parse_tensor_ref",
    "InputSplicer",
    "PortInputSplicer",
    "EdgeInputSplicer",
    "OutputSplicer",
    "TapOutputSplicer",
    "CloneOutputSplicer",
    "SpliceResult",
    "splice_inputs",
    "splice_outputs",
    "extract_subgraph",
    "prune_boundaries",
    "collect_garbage",
]
