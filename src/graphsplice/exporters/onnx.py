from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import onnx
from onnx import helper, numpy_helper

from graphsplice.exporters.base import Exporter
from graphsplice.ir.dtypes import to_onnx_elem_type
from graphsplice.ir.graph import Graph, GraphValidator, Tensor, ValidationError
from graphsplice.ir.utils import build_producer_map
from graphsplice.utils import get_logger

logger = get_logger(__name__)

DEFAULT_MODEL_NAME = "simple_model"


@dataclass
class SavedModel:
    """The file pair written by ``OnnxExporter.save``."""

    model_path: Path
    weights_path: Path


def _value_info(t: Tensor) -> onnx.ValueInfoProto:
    return helper.make_tensor_value_info(t.name, to_onnx_elem_type(t.dtype), t.shape)


class OnnxExporter(Exporter):
    """Serialize the operation graph back to an ONNX model."""

    def __init__(self, *, check: bool = True) -> None:
        self.check = check

    def export(self, graph: Graph) -> onnx.ModelProto:
        validator = GraphValidator(graph)
        validator.validate()
        order = validator.toposort()
        producers = build_producer_map(graph)

        used: set[str] = set()
        node_protos: list[onnx.NodeProto] = []
        for node in order:
            used.update(node.reads)
            if node.is_parameter or node.is_result:
                continue
            proto = helper.make_node(
                node.op_type,
                node.inputs,
                node.outputs,
                name=node.name,
                domain=node.domain or None,
            )
            raw = node.metadata.get("onnx_attributes")
            if raw is not None:
                proto.attribute.extend(raw)
            else:
                for key, value in node.attributes.items():
                    proto.attribute.append(helper.make_attribute(key, value))
            node_protos.append(proto)

        initializers: list[onnx.TensorProto] = []
        for name, t in graph.tensors.items():
            if name not in used or not t.is_const or name in producers:
                continue
            init = t.metadata.get("initializer")
            if init is None:
                init = numpy_helper.from_array(t.metadata["const"], name)
            initializers.append(init)

        inputs = [_value_info(graph.tensors[name]) for name in graph.inputs]

        outputs: list[onnx.ValueInfoProto] = []
        seen: set[str] = set()
        for name in graph.outputs:
            if name in seen:
                logger.warning("tensor '%s' is registered as output twice, keeping one", name)
                continue
            seen.add(name)
            outputs.append(_value_info(graph.tensors[name]))

        boundary = set(graph.inputs) | seen
        value_info = [
            _value_info(t)
            for name, t in graph.tensors.items()
            if name in producers
            and name not in boundary
            and t.dtype is not None
            and not t.is_const
        ]

        graph_proto = helper.make_graph(
            node_protos,
            graph.name,
            inputs,
            outputs,
            initializer=initializers,
            value_info=value_info,
        )
        opsets = graph.metadata.get("opset_import") or [
            ("", onnx.defs.onnx_opset_version())
        ]
        model = helper.make_model(
            graph_proto,
            producer_name="graphsplice",
            opset_imports=[helper.make_opsetid(domain, version) for domain, version in opsets],
        )
        model.ir_version = graph.metadata.get("ir_version", onnx.IR_VERSION)

        if self.check:
            try:
                onnx.checker.check_model(model)
            except onnx.checker.ValidationError as e:
                raise ValidationError(
                    f"Exported model failed ONNX checks: {e}", code="EONNX_CHECK"
                ) from e
        return model

    def save(
        self, graph: Graph, directory: str | Path, name: str = DEFAULT_MODEL_NAME
    ) -> SavedModel:
        """
        Write ``<name>.onnx`` and ``<name>.bin`` (all weights as external data)
        into ``directory``, overwriting both.
        """
        out_dir = Path(directory)
        out_dir.mkdir(parents=True, exist_ok=True)
        model_path = out_dir / f"{name}.onnx"
        weights_path = out_dir / f"{name}.bin"

        model = self.export(graph)
        # onnx appends external data to an existing file
        weights_path.unlink(missing_ok=True)
        onnx.save_model(
            model,
            str(model_path),
            save_as_external_data=True,
            all_tensors_to_one_file=True,
            location=weights_path.name,
            size_threshold=0,
        )
        if not weights_path.exists():
            weights_path.touch()
        logger.info("saved subgraph to %s (weights %s)", model_path, weights_path.name)
        return SavedModel(model_path=model_path, weights_path=weights_path)
