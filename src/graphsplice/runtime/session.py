"""
Compile an extracted model with ONNX Runtime and smoke-test it with
zero-filled inputs.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, cast

import numpy as np
import onnx

from graphsplice.config import RunConfig
from graphsplice.utils import get_logger

logger = get_logger(__name__)

DEVICE_PROVIDERS = {
    "cpu": "CPUExecutionProvider",
    "cuda": "CUDAExecutionProvider",
    "tensorrt": "TensorrtExecutionProvider",
    "openvino": "OpenVINOExecutionProvider",
    "rocm": "ROCMExecutionProvider",
    "dml": "DmlExecutionProvider",
}

_ORT_TYPES: dict[str, Any] = {
    "tensor(float)": np.float32,
    "tensor(float16)": np.float16,
    "tensor(double)": np.float64,
    "tensor(int8)": np.int8,
    "tensor(int16)": np.int16,
    "tensor(int32)": np.int32,
    "tensor(int64)": np.int64,
    "tensor(uint8)": np.uint8,
    "tensor(uint16)": np.uint16,
    "tensor(uint32)": np.uint32,
    "tensor(uint64)": np.uint64,
    "tensor(bool)": np.bool_,
}


@dataclass
class CompiledModel:
    session: Any
    input_names: list[str]
    output_names: list[str]
    config: RunConfig


@dataclass
class RunReport:
    outputs: dict[str, np.ndarray]
    iterations: int
    deterministic: bool
    output_shapes: dict[str, list[int]] = field(default_factory=dict)
    profile_path: str | None = None


def apply_batch(model: onnx.ModelProto, batch_size: int) -> onnx.ModelProto:
    """
    Copy of ``model`` whose graph inputs have ``batch_size`` as first dim.
    Output batch dims become symbolic and intermediate value_info is dropped,
    so the runtime re-infers them.
    """
    out = onnx.ModelProto()
    out.CopyFrom(model)
    initializers = {init.name for init in out.graph.initializer}
    for inp in out.graph.input:
        if inp.name in initializers:
            continue
        dims = inp.type.tensor_type.shape.dim
        if not dims:
            logger.debug("input %s has no batch dimension, left as is", inp.name)
            continue
        dims[0].Clear()
        dims[0].dim_value = batch_size
    for outp in out.graph.output:
        dims = outp.type.tensor_type.shape.dim
        if dims:
            dims[0].Clear()
            dims[0].dim_param = "batch"
    del out.graph.value_info[:]
    return out


def _session_options(ort: Any, config: RunConfig, profile_dir: Path | None) -> Any:
    so = ort.SessionOptions()
    so.intra_op_num_threads = config.num_threads
    so.inter_op_num_threads = config.num_streams
    if config.performance_mode == "throughput" and config.num_streams > 1:
        so.execution_mode = ort.ExecutionMode.ORT_PARALLEL
    else:
        so.execution_mode = ort.ExecutionMode.ORT_SEQUENTIAL
    so.enable_profiling = config.enable_profiling
    if config.enable_profiling and profile_dir is not None:
        profile_dir.mkdir(parents=True, exist_ok=True)
        so.profile_file_prefix = str(profile_dir / "graphsplice_profile")
    return so


def _providers(ort: Any, config: RunConfig) -> list[Any]:
    provider = DEVICE_PROVIDERS.get(config.device.lower(), f"{config.device}ExecutionProvider")
    available = ort.get_available_providers()
    if provider not in available:
        logger.warning("%s not available, falling back to CPU", provider)
        provider = "CPUExecutionProvider"
    if config.precision == "FP16" and provider == "TensorrtExecutionProvider":
        return [(provider, {"trt_fp16_enable": True})]
    return [provider]


def compile_model(
    model: onnx.ModelProto | str | Path,
    config: RunConfig | None = None,
    *,
    profile_dir: str | Path | None = None,
) -> CompiledModel:
    """Build an inference session for ``model`` (a proto or a saved model path)."""
    import onnxruntime as ort  # type: ignore

    config = config or RunConfig()
    config.validate()

    source: Any
    if config.batch_size is not None:
        proto = model if isinstance(model, onnx.ModelProto) else onnx.load(str(model))
        source = apply_batch(proto, config.batch_size).SerializeToString()
    elif isinstance(model, onnx.ModelProto):
        source = model.SerializeToString()
    else:
        source = str(model)

    so = _session_options(ort, config, Path(profile_dir) if profile_dir else None)
    session = ort.InferenceSession(source, sess_options=so, providers=_providers(ort, config))
    input_names = [i.name for i in session.get_inputs()]
    output_names = [o.name for o in session.get_outputs()]
    logger.info(
        "compiled model on %s: inputs=%s outputs=%s",
        session.get_providers()[0],
        input_names,
        output_names,
    )
    return CompiledModel(
        session=session,
        input_names=input_names,
        output_names=output_names,
        config=config,
    )


def make_zero_inputs(compiled: CompiledModel) -> dict[str, np.ndarray]:
    """Zero-filled buffers for every model input; dynamic dims are resolved from config."""
    config = compiled.config
    inputs: dict[str, np.ndarray] = {}
    for inp in compiled.session.get_inputs():
        shape: list[int] = []
        for i, dim in enumerate(inp.shape):
            if isinstance(dim, int) and dim >= 0:
                shape.append(dim)
            elif i == 0 and config.batch_size is not None:
                shape.append(config.batch_size)
            else:
                shape.append(config.dynamic_dim)
        dtype = _ORT_TYPES.get(inp.type)
        if dtype is None:
            raise ValueError(f"Input '{inp.name}' has unsupported type {inp.type}")
        logger.info("input %s %s %s", inp.name, inp.type, shape)
        inputs[inp.name] = np.zeros(shape, dtype=dtype)
    return inputs


def _same_outputs(a: dict[str, np.ndarray], b: dict[str, np.ndarray]) -> bool:
    for name, x in a.items():
        y = b[name]
        if x.shape != y.shape or x.dtype != y.dtype:
            return False
        equal_nan = np.issubdtype(x.dtype, np.floating)
        if not np.array_equal(x, y, equal_nan=equal_nan):
            return False
    return True


def run_model(
    compiled: CompiledModel,
    inputs: dict[str, np.ndarray],
    iterations: int | None = None,
) -> RunReport:
    """
    Run the session ``iterations`` times with the same inputs and report
    whether every run produced identical outputs.
    """
    n = iterations if iterations is not None else compiled.config.iterations
    if n < 1:
        raise ValueError(f"iterations must be >= 1, got {n}")
    first: dict[str, np.ndarray] | None = None
    deterministic = True
    for _ in range(n):
        values = compiled.session.run(None, inputs)
        current = dict(zip(compiled.output_names, values))
        if first is None:
            first = current
        elif not _same_outputs(first, current):
            deterministic = False

    profile_path = None
    if compiled.config.enable_profiling:
        profile_path = compiled.session.end_profiling()

    outputs = cast(dict[str, np.ndarray], first)
    shapes = {name: list(arr.shape) for name, arr in outputs.items()}
    for name, shape in shapes.items():
        logger.info("output %s shape %s", name, shape)
    if not deterministic:
        logger.warning("outputs differ between runs with identical inputs")
    return RunReport(
        outputs=outputs,
        iterations=n,
        deterministic=deterministic,
        output_shapes=shapes,
        profile_path=profile_path,
    )


def smoke_test(
    model: onnx.ModelProto | str | Path,
    config: RunConfig | None = None,
    *,
    profile_dir: str | Path | None = None,
) -> RunReport:
    """Compile ``model`` and run it on zero-filled inputs."""
    compiled = compile_model(model, config, profile_dir=profile_dir)
    return run_model(compiled, make_zero_inputs(compiled))
