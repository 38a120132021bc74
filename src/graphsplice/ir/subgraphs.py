"""
Outer-scope reads of control-flow bodies (If branches, Loop and Scan bodies).

A body may read any tensor of the enclosing graph by name without listing it
as a node input. Those names are the body's free names.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator

import onnx


def _bodies(attributes: Iterable[onnx.AttributeProto]) -> Iterator[onnx.GraphProto]:
    for a in attributes:
        if a.type == onnx.AttributeProto.GRAPH:
            yield a.g
        elif a.type == onnx.AttributeProto.GRAPHS:
            yield from a.graphs


def _defined(body: onnx.GraphProto) -> set[str]:
    names = {i.name for i in body.input}
    names.update(init.name for init in body.initializer)
    names.update(init.values.name for init in body.sparse_initializer)
    for node in body.node:
        names.update(o for o in node.output if o)
    return names


def free_names(body: onnx.GraphProto) -> list[str]:
    """Names ``body`` (or any body nested in it) reads but does not define."""
    defined = _defined(body)
    out: list[str] = []
    for node in body.node:
        reads = list(node.input)
        for nested in _bodies(node.attribute):
            reads.extend(free_names(nested))
        for name in reads:
            if name and name not in defined and name not in out:
                out.append(name)
    return out


def captured_names(attributes: Iterable[onnx.AttributeProto]) -> list[str]:
    """Outer-scope tensors read by the subgraph attributes of one node."""
    out: list[str] = []
    for body in _bodies(attributes):
        for name in free_names(body):
            if name not in out:
                out.append(name)
    return out


def rename_captured(attributes: Iterable[onnx.AttributeProto], old: str, new: str) -> int:
    """Make every body read ``new`` where it read ``old`` from the enclosing scope."""
    renamed = 0
    for body in _bodies(attributes):
        if old in _defined(body):
            continue  # shadowed
        for node in body.node:
            for i, name in enumerate(node.input):
                if name == old:
                    node.input[i] = new
                    renamed += 1
            renamed += rename_captured(node.attribute, old, new)
    return renamed
