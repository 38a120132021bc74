"""Graph cleanup passes and pipelines."""

from .passes import Pass, Pipeline
from .passes_impl import DeadCodeEliminationPass, UnusedTensorEliminationPass


def build_cleanup_pipeline(*, drop_tensors: bool = True) -> Pipeline:
    passes: list[Pass] = [DeadCodeEliminationPass()]
    if drop_tensors:
        passes.append(UnusedTensorEliminationPass())
    return Pipeline(passes)

__all__ = [
    "Pipeline",
    "Pass",
    "DeadCodeEliminationPass",
    "UnusedTensorEliminationPass",
    "build_cleanup_pipeline",
]
