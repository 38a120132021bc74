from __future__ import annotations

from typing import List, NoReturn, Optional

import typer

from graphsplice.config import ConfigError, ExtractionConfig, load_config
from graphsplice.exporters.onnx import DEFAULT_MODEL_NAME
from graphsplice.flows.pipeline import subgraph_extraction_flow
from graphsplice.ir import ValidationError
from graphsplice.parsers.onnx import OnnxParser
from graphsplice.plugins.registry import global_registry
from graphsplice.splicing import SpliceError, parse_tensor_ref
from graphsplice.utils import configure_logging

app = typer.Typer(help="Cut a subgraph out of an ONNX model")


def _fail(e: ValidationError | SpliceError | ConfigError) -> NoReturn:
    typer.echo(f"error[{e.code}]: {e}", err=True)
    raise typer.Exit(code=1)


def _check_strategy(kind: str, name: str) -> None:
    if global_registry.get(kind, name) is None:
        known = ", ".join(global_registry.names(kind))
        raise ConfigError(f"Unknown {kind.replace('_', ' ')} strategy '{name}' (known: {known})")


def _build_config(
    plan_file: str | None,
    inputs: list[str] | None,
    outputs: list[str] | None,
    strategies: dict[str, str | None],
    run_overrides: dict[str, object],
) -> ExtractionConfig:
    cfg = load_config(plan_file) if plan_file else ExtractionConfig()
    if inputs:
        cfg.plan.inputs = list(inputs)
    if outputs:
        cfg.plan.outputs = list(outputs)
    for key, value in strategies.items():
        if value is not None:
            setattr(cfg.plan, key, value)
    for key, value in run_overrides.items():
        if value is not None:
            setattr(cfg.run, key, value)

    _check_strategy("input_splicer", cfg.plan.input_strategy)
    _check_strategy("output_splicer", cfg.plan.output_strategy)
    for ref in cfg.plan.inputs + cfg.plan.outputs:
        parse_tensor_ref(ref)
    cfg.run.validate()
    return cfg


@app.command()
def extract(
    model: str = typer.Argument(..., help="Path or s3://bucket/key of the ONNX model"),
    inputs: Optional[List[str]] = typer.Option(
        None, "--input", "-i", help="Tensor reference (op:port) to turn into an input"
    ),
    outputs: Optional[List[str]] = typer.Option(
        None, "--output", "-o", help="Tensor reference (op:port or op) to turn into an output"
    ),
    plan: Optional[str] = typer.Option(None, "--plan", help="JSON plan file"),
    input_strategy: Optional[str] = typer.Option(None, help="port or edges"),
    output_strategy: Optional[str] = typer.Option(None, help="tap or clone"),
    output_dir: str = typer.Option(".", help="Directory for the model file pair"),
    name: str = typer.Option(DEFAULT_MODEL_NAME, help="Base name of the written files"),
    device: Optional[str] = typer.Option(None, help="Execution device, e.g. cpu or cuda"),
    batch_size: Optional[int] = typer.Option(None, help="Override dim 0 of every input"),
    threads: Optional[int] = typer.Option(None, help="Intra-op threads"),
    streams: Optional[int] = typer.Option(None, help="Inter-op streams"),
    performance_mode: Optional[str] = typer.Option(None, help="throughput or latency"),
    precision: Optional[str] = typer.Option(None, help="FP32 or FP16"),
    profiling: Optional[bool] = typer.Option(None, "--profiling/--no-profiling"),
    run: bool = typer.Option(True, "--run/--no-run", help="Smoke-test the extracted model"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
) -> None:
    """
    Extract the subgraph between the given inputs and outputs, save it as
    <name>.onnx / <name>.bin and run it once on zero inputs.
    """
    configure_logging(verbose)
    try:
        cfg = _build_config(
            plan,
            inputs,
            outputs,
            {"input_strategy": input_strategy, "output_strategy": output_strategy},
            {
                "device": device,
                "batch_size": batch_size,
                "num_threads": threads,
                "num_streams": streams,
                "performance_mode": performance_mode,
                "precision": precision,
                "enable_profiling": profiling,
            },
        )
        model_path = subgraph_extraction_flow(
            model_uri=model,
            plan=cfg.plan,
            output_dir=output_dir,
            name=name,
            run_config=cfg.run,
            run=run,
        )
    except (ValidationError, SpliceError, ConfigError) as e:
        _fail(e)
    typer.echo(f"Subgraph written to: {model_path}")


@app.command("inspect")
def inspect_model(
    model: str = typer.Argument(..., help="Path to the ONNX model"),
    ops: bool = typer.Option(False, "--ops", help="List every operation and its output ports"),
) -> None:
    """Show the model boundary, and optionally the port names to reference."""
    try:
        graph = OnnxParser().parse(model)
    except ValidationError as e:
        _fail(e)
    typer.echo(graph.summary())
    for p in graph.parameters:
        t = graph.get_tensor(p.outputs[0])
        typer.echo(f"input  {p.outputs[0]} {t.dtype if t else None} {t.shape if t else None}")
    for r in graph.results:
        t = graph.get_tensor(r.inputs[0])
        typer.echo(f"output {r.inputs[0]} {t.dtype if t else None} {t.shape if t else None}")
    if ops:
        for node in graph.nodes:
            if node.is_parameter or node.is_result:
                continue
            for port, tensor_name in enumerate(node.outputs):
                typer.echo(f"{node.name}:{port} {node.op_type} -> {tensor_name}")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
