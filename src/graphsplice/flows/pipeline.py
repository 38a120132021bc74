from __future__ import annotations

import tempfile
from pathlib import Path
from typing import Any, cast

import boto3
from prefect import flow, get_run_logger, task
from prefect.cache_policies import NO_CACHE

from graphsplice.config import ExtractionPlan, RunConfig
from graphsplice.exporters.onnx import DEFAULT_MODEL_NAME, OnnxExporter
from graphsplice.ir import Graph
from graphsplice.parsers.onnx import OnnxParser
from graphsplice.runtime import smoke_test
from graphsplice.splicing import extract_subgraph


@task
def download_from_s3(s3_uri: str) -> Path:
    """
    Download a model from S3 to a temporary file. s3_uri like s3://bucket/key
    Requires AWS credentials in environment.
    """
    logger = get_run_logger()
    _, rest = s3_uri.split("s3://", 1)
    bucket, _, key = rest.partition("/")
    if not bucket or not key:
        raise ValueError(f"s3_uri must look like s3://bucket/key, got {s3_uri}")
    s3 = boto3.client("s3")
    tmp = Path(tempfile.mkstemp(prefix="graphsplice_model_", suffix=".onnx")[1])
    s3.download_file(bucket, key, str(tmp))
    logger.info(f"Downloaded {s3_uri} to {tmp}")
    return tmp


def resolve_model(model_uri: str) -> Path:
    if model_uri.startswith("s3://"):
        return cast(Path, download_from_s3(model_uri))
    path = Path(model_uri)
    if not path.exists():
        raise FileNotFoundError(f"Model not found: {model_uri}")
    return path


@task
def load_model(local_path: Path) -> Graph:
    logger = get_run_logger()
    logger.info(f"Loading model at {local_path}")
    graph = OnnxParser().parse(local_path)
    logger.info(graph.summary())
    return graph


# Graph arguments are mutated in place, never cached
@task(cache_policy=NO_CACHE)
def splice_model(graph: Graph, plan: ExtractionPlan) -> Graph:
    logger = get_run_logger()
    logger.info(f"Splicing inputs {plan.inputs} and outputs {plan.outputs}")
    result = extract_subgraph(graph, plan)
    if result.removed_parameters or result.removed_results:
        logger.info(
            f"Pruned parameters {result.removed_parameters}, results {result.removed_results}"
        )
    logger.info(f"Collected {result.collected_nodes} unreachable nodes")
    return graph


@task(cache_policy=NO_CACHE)
def save_model(graph: Graph, output_dir: str, name: str) -> Path:
    logger = get_run_logger()
    saved = OnnxExporter().save(graph, output_dir, name)
    logger.info(f"Wrote {saved.model_path} and {saved.weights_path}")
    return saved.model_path


@task
def smoke_test_model(model_path: Path, run_config: RunConfig, output_dir: str) -> dict[str, Any]:
    logger = get_run_logger()
    logger.info(f"Running {model_path} on {run_config.device} with zero inputs")
    report = smoke_test(model_path, run_config, profile_dir=output_dir)
    if not report.deterministic:
        logger.warning("Outputs differ between runs")
    return {
        "output_shapes": report.output_shapes,
        "deterministic": report.deterministic,
        "profile": report.profile_path,
    }


@flow(name="graphsplice-subgraph-extraction")
def subgraph_extraction_flow(
    model_uri: str,
    plan: ExtractionPlan,
    output_dir: str = ".",
    name: str = DEFAULT_MODEL_NAME,
    run_config: RunConfig | None = None,
    run: bool = True,
) -> str:
    """
    Orchestrates the extraction:
    resolve → load → splice → save → smoke test
    """
    path = resolve_model(model_uri)
    graph = load_model(path)
    graph = splice_model(graph, plan)
    model_path = save_model(graph, output_dir, name)
    if run:
        smoke_test_model(model_path, run_config or RunConfig(), output_dir)
    return str(model_path)
