"""
Protocol converters and clock-domain-crossing primitives.

Each primitive is a black box specified only by its typed ports. The
functions below add one instance to a module and return its handle; the
primitive kinds and port names they use are the contract that netlist
consumers rely on.

Port naming:
    converters name ports after their protocol (``nasti``/``tl``/``ahb``);
    queues, adapters and bridges use ``inner`` (towards the compute
    subsystem) and ``outer`` (towards the chip boundary).
"""

from typing import Dict, Optional

from chiptop.builder import InstanceHandle, ModuleBuilder
from chiptop.model.port import PortDirection, Protocol, bus_port, signal_port

IN = PortDirection.IN
OUT = PortDirection.OUT

# Queue depths inserted between a TileLink→AXI converter and an AXI port
AXI_QUEUE_DEPTHS: Dict[str, int] = {"ar": 1, "aw": 1, "w": 2, "r": 2, "b": 1}

# Queue depths inserted on a TileLink pass-through
TILELINK_QUEUE_DEPTHS: Dict[str, int] = {"acquire": 2, "grant": 2}

# AXI AxCACHE forced on memory traffic: normal, non-cacheable, bufferable
MEM_AXI_CACHE_ATTRIBUTES = 0b0011

# Clock divider of the narrow-link serializer
NARROW_DIVIDE = 8


def axi_to_tilelink(module: ModuleBuilder, name: str, scope: str) -> InstanceHandle:
    """AXI slave in, TileLink client out."""
    return module.add(
        name,
        "AxiToTileLinkConverter",
        [bus_port("nasti", Protocol.AXI, IN), bus_port("tl", Protocol.TILELINK, OUT, scope)],
        params={"tl_id": scope},
    )


def tilelink_to_axi(module: ModuleBuilder, name: str, scope: str) -> InstanceHandle:
    """TileLink manager in, AXI master out."""
    return module.add(
        name,
        "TileLinkToAxiConverter",
        [bus_port("tl", Protocol.TILELINK, IN, scope), bus_port("nasti", Protocol.AXI, OUT)],
        params={"tl_id": scope},
    )


def ahb_bridge(module: ModuleBuilder, name: str, scope: str, atomics: bool) -> InstanceHandle:
    """TileLink manager in, AHB master out; optionally executes atomics."""
    return module.add(
        name,
        "AhbBridge",
        [bus_port("tl", Protocol.TILELINK, IN, scope), bus_port("ahb", Protocol.AHB, OUT)],
        params={"tl_id": scope, "atomics": atomics},
    )


def axi_arbiter(module: ModuleBuilder, name: str, n_masters: int) -> InstanceHandle:
    """N AXI masters merged onto one AXI port."""
    ports = [bus_port(f"in_{i}", Protocol.AXI, IN) for i in range(n_masters)]
    ports.append(bus_port("out", Protocol.AXI, OUT))
    return module.add(name, "AxiArbiter", ports, params={"n_masters": n_masters})


def axi_queue(
    module: ModuleBuilder, name: str, depths: Optional[Dict[str, int]] = None
) -> InstanceHandle:
    """Per-channel AXI queues; back-pressure buffering between two AXI ports."""
    return module.add(
        name,
        "AxiQueue",
        [bus_port("inner", Protocol.AXI, IN), bus_port("outer", Protocol.AXI, OUT)],
        params={"depths": dict(depths or AXI_QUEUE_DEPTHS)},
    )


def tilelink_queue(module: ModuleBuilder, name: str, scope: str) -> InstanceHandle:
    """Queued TileLink pass-through."""
    return module.add(
        name,
        "TileLinkQueue",
        [
            bus_port("inner", Protocol.TILELINK, IN, scope),
            bus_port("outer", Protocol.TILELINK, OUT, scope),
        ],
        params={"tl_id": scope, "depths": dict(TILELINK_QUEUE_DEPTHS)},
    )


def axi_cache_override(module: ModuleBuilder, name: str, cache: int) -> InstanceHandle:
    """Forces the cache attributes of every AXI read and write command."""
    return module.add(
        name,
        "AxiCacheOverride",
        [bus_port("inner", Protocol.AXI, IN), bus_port("outer", Protocol.AXI, OUT)],
        params={"ar_cache": cache, "aw_cache": cache},
    )


def tilelink_width_adapter(
    module: ModuleBuilder, name: str, inner_scope: str, outer_scope: str
) -> InstanceHandle:
    """Re-beats TileLink traffic from one parameter scope's width to another's."""
    return module.add(
        name,
        "TileLinkWidthAdapter",
        [
            bus_port("inner", Protocol.TILELINK, IN, inner_scope),
            bus_port("outer", Protocol.TILELINK, OUT, outer_scope),
        ],
        params={"inner_tl_id": inner_scope, "outer_tl_id": outer_scope},
    )


def axi_serializer(
    module: ModuleBuilder, name: str, width: int, divide: int = NARROW_DIVIDE
) -> InstanceHandle:
    """Serializes one AXI port over a narrow link of ``width`` bits."""
    return module.add(
        name,
        "AxiSerializer",
        [
            bus_port("nasti", Protocol.AXI, IN),
            signal_port("narrow", Protocol.NARROW, OUT, width=width),
        ],
        params={"width": width, "divide": divide},
    )


def _clock_inputs():
    return [
        signal_port("clock", Protocol.CLOCK, IN),
        signal_port("reset", Protocol.RESET, IN),
    ]


# Clock-domain-crossing bridge kind per bus family
ASYNC_BRIDGE_KINDS: Dict[Protocol, str] = {
    Protocol.AXI: "AsyncAxiBridge",
    Protocol.AHB: "AsyncAhbBridge",
    Protocol.TILELINK: "AsyncTileLinkBridge",
}


def async_bridge_to(
    module: ModuleBuilder, name: str, protocol: Protocol = Protocol.AXI, scope: Optional[str] = None
) -> InstanceHandle:
    """Bus crossing from the implicit clock out to the ``clock``/``reset`` domain."""
    return module.add(
        name,
        ASYNC_BRIDGE_KINDS[protocol],
        [
            bus_port("inner", protocol, IN, scope),
            bus_port("outer", protocol, OUT, scope, clock="clock", reset="reset"),
            *_clock_inputs(),
        ],
        params={"direction": "to"},
    )


def async_bridge_from(
    module: ModuleBuilder, name: str, protocol: Protocol = Protocol.AXI, scope: Optional[str] = None
) -> InstanceHandle:
    """Bus crossing from the ``clock``/``reset`` domain into the implicit clock."""
    return module.add(
        name,
        ASYNC_BRIDGE_KINDS[protocol],
        [
            bus_port("outer", protocol, IN, scope, clock="clock", reset="reset"),
            bus_port("inner", protocol, OUT, scope),
            *_clock_inputs(),
        ],
        params={"direction": "from"},
    )


def async_debug_from(module: ModuleBuilder, name: str) -> InstanceHandle:
    """Debug bus crossing from the ``clock``/``reset`` domain into the implicit clock."""
    outer = signal_port("outer", Protocol.DEBUG, IN)
    return module.add(
        name,
        "AsyncDebugBridge",
        [
            outer.model_copy(update={"clock": "clock", "reset": "reset"}),
            signal_port("inner", Protocol.DEBUG, OUT),
            *_clock_inputs(),
        ],
        params={"direction": "from"},
    )


def jtag_dtm(module: ModuleBuilder, name: str) -> InstanceHandle:
    """JTAG debug transport module, synchronizing into the implicit clock."""
    return module.add(
        name,
        "JtagDtm",
        [signal_port("jtag", Protocol.JTAG, IN), signal_port("debug", Protocol.DEBUG, OUT)],
        params={"synchronized": True},
    )


def reset_synchronizer(module: ModuleBuilder, name: str) -> InstanceHandle:
    """Synchronizes an asynchronous reset to ``clock``."""
    return module.add(
        name,
        "ResetSynchronizer",
        [
            signal_port("reset", Protocol.RESET, IN),
            signal_port("clock", Protocol.CLOCK, IN),
            signal_port("out", Protocol.RESET, OUT),
        ],
    )
