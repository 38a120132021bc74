"""Compilation and smoke-run of extracted models."""

from .session import (
    CompiledModel,
    RunReport,
    apply_batch,
    compile_model,
    make_zero_inputs,
    run_model,
    smoke_test,
)

__all__ = [
    "CompiledModel",
    "RunReport",
    "apply_batch",
    "compile_model",
    "make_zero_inputs",
    "run_model",
    "smoke_test",
]
