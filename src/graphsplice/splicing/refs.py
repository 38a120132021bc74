from __future__ import annotations

from dataclasses import dataclass

from graphsplice.ir.graph import Node
from graphsplice.splicing.errors import SpliceError, TensorRefError


@dataclass(frozen=True)
class TensorRef:
    """``op_name:port`` reference; ``port`` is None for an operation-level reference."""

    op_name: str
    port: int | None = None

    def __str__(self) -> str:
        if self.port is None:
            return self.op_name
        return f"{self.op_name}:{self.port}"


def parse_tensor_ref(text: str) -> TensorRef:
    """
    Split ``text`` on its last ``:`` into operation name and port.
    Operation names may themselves contain ``:``.
    """
    op_name, sep, port_text = text.rpartition(":")
    if not sep:
        return TensorRef(op_name=text)
    if not op_name:
        raise TensorRefError(f"Tensor reference '{text}' has no operation name")
    try:
        port = int(port_text)
    except ValueError:
        raise TensorRefError(
            f"Tensor reference '{text}' has a non-integer port '{port_text}'"
        ) from None
    if port < 0:
        raise TensorRefError(f"Tensor reference '{text}' has a negative port")
    return TensorRef(op_name=op_name, port=port)


def resolve_op(index: dict[str, Node], ref: TensorRef) -> Node:
    try:
        return index[ref.op_name]
    except KeyError:
        raise SpliceError(
            f"Operation '{ref.op_name}' (from '{ref}') not found in model",
            code="EUNKNOWN_OP",
        ) from None


def port_tensor(node: Node, port: int) -> str:
    if port >= len(node.outputs) or not node.outputs[port]:
        raise SpliceError(
            f"Operation '{node.name}' has no output port {port} "
            f"({len(node.outputs)} outputs)",
            code="EPORT_RANGE",
        )
    return node.outputs[port]
