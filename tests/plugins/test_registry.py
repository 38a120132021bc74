from __future__ import annotations

import pytest

from graphsplice.plugins.registry import Registry, global_registry
from graphsplice.splicing import EdgeInputSplicer, PortInputSplicer, TapOutputSplicer


def test_splicing_strategies_are_registered() -> None:
    assert global_registry.names("input_splicer") == ["port", "edges"]
    assert sorted(global_registry.names("output_splicer")) == ["clone", "tap"]
    assert isinstance(global_registry.create("input_splicer", "port"), PortInputSplicer)
    assert isinstance(global_registry.create("input_splicer", "edges"), EdgeInputSplicer)
    assert isinstance(global_registry.create("output_splicer", "tap"), TapOutputSplicer)


def test_each_create_returns_a_fresh_instance() -> None:
    a = global_registry.create("input_splicer", "port")
    b = global_registry.create("input_splicer", "port")
    assert a is not b


def test_unknown_component_lists_known_names() -> None:
    reg = Registry()
    reg.register("output_splicer", "tap", TapOutputSplicer)
    with pytest.raises(KeyError, match="known: tap"):
        reg.create("output_splicer", "mirror")


def test_duplicate_registration_is_rejected() -> None:
    reg = Registry()

    @reg.component("input_splicer", "port")
    class First(PortInputSplicer):
        pass

    assert reg.get("input_splicer", "port").factory is First
    with pytest.raises(ValueError):
        reg.register("input_splicer", "port", PortInputSplicer)
