from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, TypeVar

F = TypeVar("F", bound=Callable[[], Any])


@dataclass
class RegisteredComponent:
    kind: str
    name: str
    factory: Callable[[], Any]


class Registry:
    """Named factories grouped by kind, e.g. ``("input_splicer", "port")``."""

    def __init__(self) -> None:
        self._items: dict[tuple[str, str], RegisteredComponent] = {}

    def register(self, kind: str, name: str, factory: Callable[[], Any]) -> None:
        if (kind, name) in self._items:
            raise ValueError(f"{kind} '{name}' is already registered")
        self._items[(kind, name)] = RegisteredComponent(kind=kind, name=name, factory=factory)

    def component(self, kind: str, name: str) -> Callable[[F], F]:
        """Class decorator form of ``register``."""

        def decorate(factory: F) -> F:
            self.register(kind, name, factory)
            return factory

        return decorate

    def get(self, kind: str, name: str) -> RegisteredComponent | None:
        return self._items.get((kind, name))

    def names(self, kind: str) -> list[str]:
        return [name for (k, name) in self._items if k == kind]

    def create(self, kind: str, name: str) -> Any:
        item = self.get(kind, name)
        if not item:
            known = ", ".join(self.names(kind)) or "none"
            raise KeyError(f"No {kind} named '{name}' (known: {known})")
        return item.factory()


global_registry = Registry()
