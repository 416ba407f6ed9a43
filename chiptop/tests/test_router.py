"""
Tests for the address-map-driven router.
"""

import pytest

from chiptop.builder import TopologyBuilder
from chiptop.errors import ElaborationError
from chiptop.model import AddressMap, PortDirection, PortRef, Protocol, bus_port
from chiptop.router import AddressMapRouter

SCOPE = "L2toMMIO"


@pytest.fixture
def nested_map():
    return AddressMap.model_validate(
        {
            "entries": [
                {"name": "uart", "base": 0x1000, "size": 0x100},
                {
                    "name": "bridge",
                    "base": 0x2000,
                    "size": 0x2000,
                    "entries": [
                        {"name": "a", "base": 0x2000, "size": 0x1000},
                        {"name": "b", "base": 0x3000, "size": 0x1000},
                    ],
                },
                {"name": "gpio", "base": 0x8000, "size": 0x100},
            ]
        }
    )


@pytest.fixture
def module():
    graph = TopologyBuilder("top")
    top = graph.root
    top.add_port(bus_port("mmio", Protocol.TILELINK, PortDirection.IN, SCOPE))
    return top


@pytest.fixture
def router(module, nested_map):
    r = AddressMapRouter(module, "router", nested_map, SCOPE)
    module.connect(module.io("mmio"), r.ingress)
    return r


def test_one_egress_per_entry(router):
    instance = router.handle.instance
    assert instance.kind == "AddressMapRouter"
    assert [p.name for p in instance.ports] == ["in", "out_uart", "out_bridge", "out_gpio"]
    assert all(p.scope == SCOPE for p in instance.ports)
    assert instance.params["entries"][1] == {"name": "bridge", "base": 0x2000, "size": 0x2000}


def test_nested_map_gets_child_router(module, router):
    child = module._graph.get_instance("top/router_1")
    assert [p.name for p in child.ports] == ["in", "out_a", "out_b"]
    assert module.is_driven(PortRef(instance="top/router_1", port="in"))


def test_port_lookup(router):
    assert router.port("uart") == PortRef(instance="top/router", port="out_uart")
    assert router.port("bridge:b") == PortRef(instance="top/router_1", port="out_b")


@pytest.mark.parametrize("name", ["nope", "uart:x", "bridge:c"])
def test_port_lookup_unknown(router, name):
    with pytest.raises(KeyError):
        router.port(name)


def test_leaf_names(router):
    assert router.names == ["uart", "bridge:a", "bridge:b", "gpio"]


@pytest.mark.parametrize(
    "address, entry",
    [(0x1000, "uart"), (0x10FF, "uart"), (0x2004, "bridge:a"), (0x3FFF, "bridge:b"), (0x8000, "gpio")],
)
def test_decode(router, address, entry):
    assert router.decode(address) == entry


def test_route(router):
    assert router.route(0x3000) == PortRef(instance="top/router_1", port="out_b")


def test_decode_unmapped(router):
    with pytest.raises(KeyError, match="not mapped"):
        router.decode(0x1100)


def test_empty_map_rejected(module):
    with pytest.raises(ElaborationError, match="at least one address map entry"):
        AddressMapRouter(module, "router", AddressMap(), SCOPE)


def test_child_names_do_not_collide(module):
    address_map = AddressMap.model_validate(
        {
            "entries": [
                {
                    "name": "a",
                    "base": 0x0,
                    "size": 0x2000,
                    "entries": [
                        {
                            "name": "b",
                            "base": 0x0,
                            "size": 0x1000,
                            "entries": [{"name": "c", "base": 0x0, "size": 0x1000}],
                        }
                    ],
                },
                {
                    "name": "a_b",
                    "base": 0x2000,
                    "size": 0x1000,
                    "entries": [{"name": "d", "base": 0x2000, "size": 0x1000}],
                },
            ]
        }
    )
    router = AddressMapRouter(module, "router", address_map, SCOPE)

    assert router.port("a:b:c") == PortRef(instance="top/router_0_0", port="out_c")
    assert router.port("a_b:d") == PortRef(instance="top/router_1", port="out_d")
