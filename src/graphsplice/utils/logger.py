from __future__ import annotations

import logging

_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"
_ROOT = "graphsplice"


def get_logger(name: str) -> logging.Logger:
    """Logger under the package namespace, e.g. ``get_logger(__name__)``."""
    if name != _ROOT and not name.startswith(_ROOT + "."):
        name = f"{_ROOT}.{name}"
    return logging.getLogger(name)


def configure_logging(verbose: bool = False) -> None:
    """Attach a single stream handler to the package logger."""
    root = logging.getLogger(_ROOT)
    root.setLevel(logging.DEBUG if verbose else logging.INFO)
    if not any(getattr(h, "_graphsplice", False) for h in root.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(_FORMAT))
        handler._graphsplice = True  # type: ignore[attr-defined]
        root.addHandler(handler)
