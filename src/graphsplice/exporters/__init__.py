"""Model exporters."""

from .base import Exporter
from .onnx import DEFAULT_MODEL_NAME, OnnxExporter, SavedModel

__all__ = ["Exporter", "OnnxExporter", "SavedModel", "DEFAULT_MODEL_NAME"]
