from __future__ import annotations

from pathlib import Path
from typing import Any

import onnx
from onnx import numpy_helper, shape_inference

from graphsplice.ir.dtypes import ONNX_TO_DTYPE
from graphsplice.ir.graph import (
    CONSTANT,
    PARAMETER,
    RESULT,
    RESULT_SUFFIX,
    Dim,
    Graph,
    GraphValidator,
    Node,
    Tensor,
)
from graphsplice.ir.subgraphs import captured_names
from graphsplice.parsers.base import Parser
from graphsplice.utils import get_logger

logger = get_logger(__name__)


def _dtype_from_value_info(vi: onnx.ValueInfoProto) -> str | None:
    t = vi.type.tensor_type
    elem = t.elem_type
    return ONNX_TO_DTYPE.get(elem)


def _shape_from_value_info(vi: onnx.ValueInfoProto) -> list[Dim] | None:
    tensor_type = vi.type.tensor_type
    if not tensor_type.HasField("shape"):
        return None
    out: list[Dim] = []
    for d in tensor_type.shape.dim:
        if d.HasField("dim_value"):
            out.append(int(d.dim_value))
        elif d.HasField("dim_param"):
            out.append(d.dim_param)
        else:
            out.append(None)
    return out


def _parse_attributes(node: onnx.NodeProto) -> dict[str, Any]:
    attrs: dict[str, Any] = {}
    for a in node.attribute:
        if a.type == onnx.AttributeProto.INT:
            attrs[a.name] = int(a.i)
        elif a.type == onnx.AttributeProto.FLOAT:
            attrs[a.name] = float(a.f)
        elif a.type == onnx.AttributeProto.STRING:
            attrs[a.name] = a.s.decode("utf-8", errors="ignore")
        elif a.type == onnx.AttributeProto.INTS:
            attrs[a.name] = [int(x) for x in a.ints]
        elif a.type == onnx.AttributeProto.FLOATS:
            attrs[a.name] = [float(x) for x in a.floats]
        elif a.type == onnx.AttributeProto.TENSOR:
            attrs[a.name] = numpy_helper.to_array(a.t)
        else:
            # Graph-valued and other attributes are kept only in raw form
            continue
    return attrs


def _merge_value_info(g: Graph, vi: onnx.ValueInfoProto) -> None:
    dtype = _dtype_from_value_info(vi)
    shape = _shape_from_value_info(vi)
    t = g.tensors.get(vi.name)
    if t is None:
        g.add_tensor(Tensor(name=vi.name, dtype=dtype, shape=shape))
        return
    t.dtype = t.dtype or dtype
    t.shape = t.shape if t.shape is not None else shape


def infer_shapes_safe(model: onnx.ModelProto) -> onnx.ModelProto:
    """Run ONNX shape inference; keep the model as-is if inference fails."""
    try:
        return shape_inference.infer_shapes(model)
    except Exception as e:  # onnx raises several unrelated types here
        logger.warning("onnx shape inference failed, continuing without it: %s", e)
        return model


class OnnxParser(Parser):
    """Parse an ONNX model into the operation graph.

    Graph inputs become Parameter nodes named after the input tensor, graph
    outputs become Result nodes named ``<tensor>/sink_port_0``. Unnamed ONNX
    nodes are named ``<op_type>_<index>``.
    """

    def parse(
        self,
        model_or_path: Any,
        *,
        infer_shapes: bool = True,
        validate: bool = True,
    ) -> Graph:
        model = self._load_model(model_or_path)
        if infer_shapes:
            model = infer_shapes_safe(model)
        g = Graph(name=model.graph.name or "graph")
        g.metadata["ir_version"] = int(model.ir_version)
        g.metadata["opset_import"] = [
            (op.domain, int(op.version)) for op in model.opset_import
        ]
        g.metadata["producer_name"] = model.producer_name

        # Initializers -> tensors with const metadata
        init_names: set[str] = set()
        for init in model.graph.initializer:
            name = init.name
            init_names.add(name)
            arr = numpy_helper.to_array(init)
            g.add_tensor(
                Tensor(
                    name=name,
                    dtype=ONNX_TO_DTYPE.get(init.data_type, str(arr.dtype.name)),
                    shape=[int(d) for d in init.dims],
                    metadata={"const": arr, "initializer": init},
                )
            )

        # Inputs -> Parameter nodes (skip ones that are initializers)
        for inp in model.graph.input:
            name = inp.name
            if name in init_names:
                continue
            _merge_value_info(g, inp)
            param = Node(op_type=PARAMETER, inputs=[], outputs=[name], name=name)
            g.add_node(param)
            g.parameters.append(param)

        for vi in list(model.graph.value_info) + list(model.graph.output):
            _merge_value_info(g, vi)

        for idx, n in enumerate(model.graph.node):
            node = Node(
                op_type=n.op_type,
                inputs=list(n.input),
                outputs=list(n.output),
                attributes=_parse_attributes(n),
                metadata={"onnx_attributes": list(n.attribute)},
                name=n.name or f"{n.op_type}_{idx}",
                domain=n.domain,
                captures=captured_names(n.attribute),
            )
            g.add_node(node)
            for out_name in n.output:
                if out_name and out_name not in g.tensors:
                    # Untyped placeholder; shape inference did not reach it
                    g.add_tensor(Tensor(name=out_name, dtype=None, shape=None))
            if n.op_type == CONSTANT and "value" in node.attributes:
                g.tensors[n.output[0]].metadata["const"] = node.attributes["value"]

        for out in model.graph.output:
            result = Node(
                op_type=RESULT,
                inputs=[out.name],
                outputs=[],
                name=out.name + RESULT_SUFFIX,
            )
            g.add_node(result)
            g.results.append(result)

        logger.debug("parsed %s: %s", g.name, g.summary())
        if validate:
            GraphValidator(g).validate()
        return g

    def _load_model(self, model_or_path: Any) -> onnx.ModelProto:
        if isinstance(model_or_path, onnx.ModelProto):
            return model_or_path
        if isinstance(model_or_path, (bytes, bytearray)):
            return onnx.load_model_from_string(bytes(model_or_path))
        if isinstance(model_or_path, (str, Path)):
            return onnx.load(str(model_or_path))
        raise TypeError("Unsupported model type for ONNX parser")
