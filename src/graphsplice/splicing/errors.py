from __future__ import annotations


class SpliceError(Exception):
    """Splicing failure with a short machine-readable code."""

    def __init__(self, message: str, code: str = "ESPLICE") -> None:
        super().__init__(message)
        self.code = code


class TensorRefError(SpliceError, ValueError):
    def __init__(self, message: str) -> None:
        super().__init__(message, code="EREF")
