"""Extraction plan and runtime configuration."""

from __future__ import annotations

import json
import types
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Union, get_args, get_origin, get_type_hints

PERFORMANCE_MODES = ("throughput", "latency")
PRECISIONS = ("FP32", "FP16")
# Devices that execute FP16 when asked to
FP16_DEVICES = ("tensorrt",)


class ConfigError(ValueError):
    def __init__(self, message: str, code: str = "ECONFIG") -> None:
        super().__init__(message)
        self.code = code


@dataclass
class ExtractionPlan:
    """Which tensors become the new graph inputs/outputs, and how."""

    inputs: list[str] = field(default_factory=list)
    outputs: list[str] = field(default_factory=list)
    input_strategy: str = "port"
    output_strategy: str = "tap"


@dataclass
class RunConfig:
    """Compilation and smoke-run settings for the extracted model."""

    device: str = "cpu"
    batch_size: int | None = None
    num_threads: int = 4
    num_streams: int = 1
    performance_mode: str = "throughput"
    precision: str = "FP32"
    enable_profiling: bool = True
    iterations: int = 2
    dynamic_dim: int = 1

    def validate(self) -> None:
        if self.batch_size is not None and self.batch_size < 1:
            raise ConfigError(f"batch_size must be >= 1, got {self.batch_size}")
        if self.num_threads < 1:
            raise ConfigError(f"num_threads must be >= 1, got {self.num_threads}")
        if self.num_streams < 1:
            raise ConfigError(f"num_streams must be >= 1, got {self.num_streams}")
        if self.iterations < 1:
            raise ConfigError(f"iterations must be >= 1, got {self.iterations}")
        if self.dynamic_dim < 1:
            raise ConfigError(f"dynamic_dim must be >= 1, got {self.dynamic_dim}")
        if self.performance_mode not in PERFORMANCE_MODES:
            raise ConfigError(
                f"performance_mode must be one of {PERFORMANCE_MODES}, "
                f"got '{self.performance_mode}'"
            )
        if self.precision not in PRECISIONS:
            raise ConfigError(f"precision must be one of {PRECISIONS}, got '{self.precision}'")
        if self.precision == "FP16" and self.device.lower() not in FP16_DEVICES:
            raise ConfigError(
                f"precision FP16 is not available on device '{self.device}'",
                code="EPRECISION",
            )


@dataclass
class ExtractionConfig:
    plan: ExtractionPlan = field(default_factory=ExtractionPlan)
    run: RunConfig = field(default_factory=RunConfig)


def _matches(value: Any, hint: Any) -> bool:
    origin = get_origin(hint)
    if origin in (Union, types.UnionType):
        return any(_matches(value, arg) for arg in get_args(hint))
    if hint is type(None):
        return value is None
    if origin is list:
        (item,) = get_args(hint)
        return isinstance(value, list) and all(_matches(v, item) for v in value)
    if hint is int:
        # bool is an int subclass, but true/false is never a count
        return isinstance(value, int) and not isinstance(value, bool)
    return isinstance(value, hint)


def _type_name(hint: Any) -> str:
    return str(hint) if get_origin(hint) else hint.__name__


def _build(cls: type, data: dict[str, Any], where: str) -> Any:
    known = {f.name for f in fields(cls)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigError(f"Unknown keys in {where}: {', '.join(unknown)}")
    hints = get_type_hints(cls)
    for key, value in data.items():
        if not _matches(value, hints[key]):
            raise ConfigError(
                f"'{key}' in {where} must be {_type_name(hints[key])}, got {value!r}"
            )
    return cls(**data)


def load_config(path: str | Path) -> ExtractionConfig:
    """
    Read a JSON plan file:

        {"inputs": ["op:0"], "outputs": ["op2:0"], "input_strategy": "port",
         "run": {"batch_size": 16, "num_threads": 4}}
    """
    try:
        data = json.loads(Path(path).read_text())
    except OSError as e:
        raise ConfigError(f"Cannot read plan file {path}: {e}") from e
    except json.JSONDecodeError as e:
        raise ConfigError(f"Plan file {path} is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"Plan file {path} must contain a JSON object")

    run_data = data.pop("run", {})
    if not isinstance(run_data, dict):
        raise ConfigError(f"'run' in {path} must be an object")
    plan = _build(ExtractionPlan, data, str(path))
    run = _build(RunConfig, run_data, f"{path} (run)")
    return ExtractionConfig(plan=plan, run=run)
