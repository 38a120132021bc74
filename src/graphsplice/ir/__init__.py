"""Graph IR data structures and analysis utilities."""

from .graph import (
    CONSTANT,
    PARAMETER,
    RESULT,
    RESULT_SUFFIX,
    Graph,
    GraphValidator,
    Node,
    Tensor,
    ValidationError,
)
from .utils import (
    build_consumer_map,
    build_name_index,
    build_producer_map,
    clone_node,
    is_constant_tensor,
    replace_node,
    replace_source,
    unique_node_name,
    unique_tensor_name,
)

__all__ = [
    "Graph",
    "Node",
    "Tensor",
    "GraphValidator",
    "ValidationError",
    "PARAMETER",
    "RESULT",
    "RESULT_SUFFIX",
    "CONSTANT",
    "build_producer_map",
    "build_consumer_map",
    "build_name_index",
    "clone_node",
    "is_constant_tensor",
    "replace_node",
    "replace_source",
    "unique_node_name",
    "unique_tensor_name",
]
