from __future__ import annotations

from pathlib import Path

import pytest
from onnx import ModelProto
from prefect.testing.utilities import prefect_test_harness

from graphsplice.config import ExtractionPlan, RunConfig
from graphsplice.flows import pipeline
from graphsplice.flows.pipeline import download_from_s3, resolve_model, subgraph_extraction_flow
from graphsplice.parsers.onnx import OnnxParser
from graphsplice.splicing import extract_subgraph


@pytest.fixture(autouse=True, scope="module")
def prefect_backend():
    with prefect_test_harness():
        yield


@pytest.fixture
def model_file(tmp_path, split_model: ModelProto) -> Path:
    path = tmp_path / "model.onnx"
    path.write_bytes(split_model.SerializeToString())
    return path


class FakeS3:
    def __init__(self, payload: bytes) -> None:
        self.payload = payload
        self.downloads: list[tuple[str, str]] = []

    def download_file(self, bucket: str, key: str, filename: str) -> None:
        self.downloads.append((bucket, key))
        Path(filename).write_bytes(self.payload)


@pytest.fixture
def fake_s3(monkeypatch, split_model: ModelProto) -> FakeS3:
    s3 = FakeS3(split_model.SerializeToString())

    def client(service: str) -> FakeS3:
        assert service == "s3"
        return s3

    monkeypatch.setattr(pipeline.boto3, "client", client)
    return s3


def boundary(graph) -> dict[str, tuple]:
    return {
        name: (graph.tensors[name].dtype, graph.tensors[name].shape)
        for name in graph.inputs + graph.outputs
    }


def test_resolve_local_model(model_file: Path) -> None:
    assert resolve_model(str(model_file)) == model_file


def test_resolve_missing_model(tmp_path) -> None:
    with pytest.raises(FileNotFoundError):
        resolve_model(str(tmp_path / "nope.onnx"))


def test_flow_writes_the_spliced_model(
    tmp_path, model_file: Path, split_model: ModelProto
) -> None:
    plan = ExtractionPlan(inputs=["relu:0"], outputs=["add:0"])
    out_dir = tmp_path / "out"

    written = subgraph_extraction_flow(
        str(model_file), plan, output_dir=str(out_dir), name="cut", run=False
    )

    assert written == str(out_dir / "cut.onnx")
    assert (out_dir / "cut.onnx").exists()
    assert (out_dir / "cut.bin").exists()

    expected = OnnxParser().parse(split_model)
    extract_subgraph(expected, ExtractionPlan(inputs=["relu:0"], outputs=["add:0"]))
    saved = OnnxParser().parse(written)
    assert saved.inputs == expected.inputs
    assert saved.outputs == expected.outputs
    assert boundary(saved) == boundary(expected)


def test_flow_smoke_runs_the_saved_model(tmp_path, model_file: Path) -> None:
    pytest.importorskip("onnxruntime")
    plan = ExtractionPlan(inputs=["relu:0"], outputs=["mul:0"])

    written = subgraph_extraction_flow(
        str(model_file),
        plan,
        output_dir=str(tmp_path),
        run_config=RunConfig(enable_profiling=False, num_threads=1),
    )

    assert Path(written).exists()


def test_flow_downloads_s3_models(tmp_path, fake_s3: FakeS3) -> None:
    plan = ExtractionPlan(inputs=["relu:0"], outputs=["add:0"])

    written = subgraph_extraction_flow(
        "s3://models/nets/split.onnx", plan, output_dir=str(tmp_path), run=False
    )

    assert fake_s3.downloads == [("models", "nets/split.onnx")]
    assert OnnxParser().parse(written).outputs == ["z"]


def test_download_from_s3_writes_a_temporary_model(fake_s3: FakeS3) -> None:
    path = download_from_s3("s3://models/split.onnx")

    assert fake_s3.downloads == [("models", "split.onnx")]
    assert path.suffix == ".onnx"
    assert path.read_bytes() == fake_s3.payload
    path.unlink()


def test_download_from_s3_rejects_uris_without_a_key(fake_s3: FakeS3) -> None:
    with pytest.raises(ValueError):
        download_from_s3("s3://models")
    assert fake_s3.downloads == []
