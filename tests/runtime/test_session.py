from __future__ import annotations

import numpy as np
import pytest
from onnx import ModelProto

from graphsplice.config import ConfigError, ExtractionPlan, RunConfig
from graphsplice.exporters import OnnxExporter
from graphsplice.parsers.onnx import OnnxParser
from graphsplice.runtime import (
    apply_batch,
    compile_model,
    make_zero_inputs,
    run_model,
    smoke_test,
)
from graphsplice.splicing import extract_subgraph


def saved_subgraph(model: ModelProto, directory, inputs: list[str], outputs: list[str]):
    g = OnnxParser().parse(model)
    extract_subgraph(g, ExtractionPlan(inputs=inputs, outputs=outputs))
    return OnnxExporter().save(g, directory).model_path


def test_apply_batch_overrides_first_input_dim(split_model: ModelProto) -> None:
    batched = apply_batch(split_model, 16)

    dims = batched.graph.input[0].type.tensor_type.shape.dim
    assert [d.dim_value for d in dims] == [16, 4]
    out_dims = batched.graph.output[0].type.tensor_type.shape.dim
    assert out_dims[0].dim_param == "batch"
    assert len(batched.graph.value_info) == 0
    # the source model is left alone
    assert split_model.graph.input[0].type.tensor_type.shape.dim[0].dim_value == 2


def test_fp16_needs_a_capable_device() -> None:
    with pytest.raises(ConfigError) as exc:
        RunConfig(device="cpu", precision="FP16").validate()
    assert exc.value.code == "EPRECISION"


def test_smoke_run_of_saved_subgraph(tmp_path, split_model: ModelProto) -> None:
    pytest.importorskip("onnxruntime")
    path = saved_subgraph(split_model, tmp_path, ["relu:0"], ["mul:0"])

    report = smoke_test(path, RunConfig(enable_profiling=False))

    assert report.output_shapes == {"out": [2, 2]}
    assert report.deterministic
    assert report.iterations == 2
    # sigmoid(0) + tanh(0) = 0.5, scaled by w
    np.testing.assert_allclose(report.outputs["out"], np.array([[0.25, 1.0]] * 2))


def test_batch_size_override(tmp_path, split_model: ModelProto) -> None:
    pytest.importorskip("onnxruntime")
    path = saved_subgraph(split_model, tmp_path, ["relu:0"], ["add:0"])

    compiled = compile_model(path, RunConfig(batch_size=3, enable_profiling=False))
    inputs = make_zero_inputs(compiled)
    report = run_model(compiled, inputs, iterations=3)

    assert inputs["a"].shape == (3, 4)
    assert inputs["a"].dtype == np.float32
    assert report.output_shapes == {"z": [3, 2]}
    assert report.iterations == 3


def test_dynamic_dims_use_configured_size(fanout_model: ModelProto) -> None:
    pytest.importorskip("onnxruntime")

    compiled = compile_model(fanout_model, RunConfig(enable_profiling=False, dynamic_dim=5))

    assert make_zero_inputs(compiled)["x"].shape == (5, 3)


def test_profiling_writes_trace(tmp_path, split_model: ModelProto) -> None:
    pytest.importorskip("onnxruntime")
    path = saved_subgraph(split_model, tmp_path, ["split:1"], ["tanh:0"])

    report = smoke_test(path, RunConfig(num_threads=1), profile_dir=tmp_path / "prof")

    assert report.profile_path is not None
    assert (tmp_path / "prof").exists()


def test_run_requires_an_iteration(split_model: ModelProto) -> None:
    pytest.importorskip("onnxruntime")
    compiled = compile_model(split_model, RunConfig(enable_profiling=False))
    with pytest.raises(ValueError):
        run_model(compiled, make_zero_inputs(compiled), iterations=0)
