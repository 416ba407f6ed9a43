"""
Top-level assembly of the chip.

``TopologyAssembler`` owns the topology builder for the whole elaboration:
it instantiates the compute subsystem and the periphery, lays out the chip
boundary resolved from the configuration, and wires the three together,
inserting clock-domain crossings, the debug transport and the narrow link
where configured.

Example:
    >>> from chiptop.model import Configuration, Protocol
    >>> from chiptop.top import elaborate
    >>> topology = elaborate(Configuration(n_mem_channels=2, export_mmio=False))
    >>> [p.name for p in topology.boundary_ports_of(Protocol.AXI)]
    ['mem_axi_0', 'mem_axi_1']
"""

import logging
from typing import List

from chiptop.builder import ModuleBuilder, TopologyBuilder
from chiptop.coreplex import ComputeSubsystem, CoreplexHandle, build_default_coreplex
from chiptop.errors import PortCountError
from chiptop.model.config import Configuration
from chiptop.model.port import Channel, PortDirection, Protocol, signal_port
from chiptop.model.port_group import PortGroup, Present
from chiptop.model.topology import PortRef, Topology
from chiptop.periphery import PeripheryRouter
from chiptop.primitives import (
    async_bridge_from,
    async_bridge_to,
    async_debug_from,
    axi_serializer,
    jtag_dtm,
    reset_synchronizer,
)
from chiptop.resolver import ResolvedConfig, resolve

logger = logging.getLogger(__name__)


class TopologyAssembler:
    """
    Elaborates one configuration into a frozen ``Topology``.
    """

    def __init__(self, config: Configuration, name: str = "top"):
        self.config = config
        self.resolved: ResolvedConfig = resolve(config)
        self.graph = TopologyBuilder(name)
        self.top: ModuleBuilder = self.graph.root

    def build(self) -> Topology:
        """Run every elaboration step and freeze the result.

        Raises:
            ElaborationError: On the first violated constraint.
        """
        resolved = self.resolved
        extra_ports = list(self.config.extra_top_ports(resolved.inner_params))

        coreplex = self._build_coreplex()
        self._add_boundary(coreplex, extra_ports)
        periphery = PeripheryRouter(self.top, resolved, extra_ports).build()

        self._connect_clocks(coreplex)
        self._connect_coreplex(coreplex, periphery)
        self._connect_debug(coreplex)
        self._connect_mmio(periphery)
        self._connect_memory(periphery)
        self._connect_bus(periphery)

        top_extra = {c.name: self.top.io(c.name) for c in extra_ports}
        for name, ref in top_extra.items():
            self.top.connect(periphery.extra[name], ref)
        self.config.connect_extra_ports(
            self.top, top_extra, coreplex.extra, resolved.inner_params
        )

        self._tie_off_interrupts(coreplex)
        return self.graph.freeze()

    # --- Compute subsystem and boundary ---

    def _build_coreplex(self) -> CoreplexHandle:
        builder = self.config.build_coreplex or build_default_coreplex
        subsystem: ComputeSubsystem = builder(self.resolved)
        coreplex = subsystem.instantiate(self.top)

        resolved = self.resolved
        checks = [
            ("memory", len(coreplex.mem), resolved.n_mem_channels),
            ("external client", len(coreplex.ext_clients), resolved.n_external_clients),
            ("MMIO", len(coreplex.mmio), len(resolved.ext_io_map)),
        ]
        for what, actual, expected in checks:
            if actual != expected:
                raise PortCountError(
                    f"Compute subsystem {what} ports do not match the configuration",
                    expected=expected,
                    actual=actual,
                    location=coreplex.name,
                )
        logger.info(
            "Compute subsystem '%s': %d memory, %d client port(s)",
            subsystem.kind,
            len(coreplex.mem),
            len(coreplex.ext_clients),
        )
        return coreplex

    def _add_boundary(self, coreplex: CoreplexHandle, extra_ports: List[Channel]) -> None:
        channels = self.resolved.boundary.channels()
        if isinstance(coreplex.success, Present):
            channels.append(signal_port("success", Protocol.SIGNAL, PortDirection.OUT))
        channels += extra_ports
        self.top.add_ports(channels)
        logger.debug("Chip boundary has %d ports", len(channels))

    # --- Wiring ---

    def _connect_clocks(self, coreplex: CoreplexHandle) -> None:
        top = self.top
        top.connect(top.io("clock"), coreplex.oms_clk)
        sync = reset_synchronizer(top, "reset_sync")
        top.connect(top.io("clock"), sync.port("clock"))
        top.connect(top.io("reset"), sync.port("reset"))
        top.connect(sync.port("out"), coreplex.oms_reset)
        for core_clk in coreplex.core_clk:
            top.connect(top.io("clock"), core_clk)
        for success in coreplex.success:
            top.connect(success, top.io("success"))

    def _connect_coreplex(self, coreplex: CoreplexHandle, periphery: PeripheryRouter) -> None:
        top = self.top
        top.connect_all(coreplex.mem, periphery.mem_in)
        top.connect_all(periphery.clients_out, coreplex.ext_clients)
        for mmio, mmio_in in zip(coreplex.mmio, periphery.mmio_in):
            top.connect(mmio, mmio_in)

    def _connect_debug(self, coreplex: CoreplexHandle) -> None:
        top, config = self.top, self.config
        if config.include_jtag_dtm:
            dtm = jtag_dtm(top, "jtag_dtm")
            top.connect(top.io("jtag"), dtm.port("jtag"))
            top.connect(dtm.port("debug"), coreplex.debug)
            logger.debug("Debug transport: JTAG")
        elif config.async_debug_bus:
            bridge = async_debug_from(top, "debug_async")
            top.connect(top.io("debug"), bridge.port("outer"))
            top.connect(top.io("debug_clk"), bridge.port("clock"))
            top.connect(top.io("debug_rst"), bridge.port("reset"))
            top.connect(bridge.port("inner"), coreplex.debug)
            logger.debug("Debug transport: asynchronous debug bus")
        else:
            top.connect(top.io("debug"), coreplex.debug)
            logger.debug("Debug transport: debug bus")

    def _connect_group(self, sources: List[PortRef], group: PortGroup) -> None:
        """Drive boundary ``group`` from ``sources``.

        Channels that name their own clock cross into it through an async
        bridge ``{group}_async_{i}``.
        """
        top = self.top
        if len(sources) != len(group):
            raise PortCountError(
                f"Boundary group '{group.name}' does not pair with its drivers",
                expected=len(group),
                actual=len(sources),
                location=top.name,
            )
        for i, (source, channel) in enumerate(zip(sources, group.channels)):
            if not channel.is_explicitly_clocked:
                top.connect(source, top.io(channel.name))
                continue
            bridge = async_bridge_to(top, f"{group.name}_async_{i}", group.protocol, channel.scope)
            top.connect(source, bridge.port("inner"))
            top.connect(bridge.port("outer"), top.io(channel.name))
            top.connect(top.io(channel.clock), bridge.port("clock"))
            top.connect(top.io(channel.reset), bridge.port("reset"))

    def _connect_mmio(self, periphery: PeripheryRouter) -> None:
        boundary = self.resolved.boundary
        self._connect_group(periphery.mmio_axi, boundary.mmio_axi)
        self._connect_group(periphery.mmio_ahb, boundary.mmio_ahb)
        self._connect_group(periphery.mmio_tl, boundary.mmio_tl)

    def _connect_memory(self, periphery: PeripheryRouter) -> None:
        top, config, boundary = self.top, self.config, self.resolved.boundary
        if config.narrow_if:
            serializer = axi_serializer(top, "mem_serializer", config.narrow_width)
            top.connect(periphery.mem_axi[0], serializer.port("nasti"))
            top.connect(serializer.port("narrow"), top.io("mem_narrow"))
            logger.debug("Memory serialized over a %d-bit narrow link", config.narrow_width)
        else:
            self._connect_group(periphery.mem_axi, boundary.mem_axi)
        self._connect_group(periphery.mem_ahb, boundary.mem_ahb)
        self._connect_group(periphery.mem_tl, boundary.mem_tl)

    def _connect_bus(self, periphery: PeripheryRouter) -> None:
        top = self.top
        channels = self.resolved.boundary.bus_axi.channels
        for i, (ref, channel) in enumerate(zip(periphery.bus_axi, channels)):
            if channel.is_explicitly_clocked:
                bridge = async_bridge_from(top, f"bus_axi_async_{i}")
                top.connect(top.io(channel.name), bridge.port("outer"))
                top.connect(top.io(channel.clock), bridge.port("clock"))
                top.connect(top.io(channel.reset), bridge.port("reset"))
                top.connect(bridge.port("inner"), ref)
            else:
                top.connect(top.io(channel.name), ref)

    def _tie_off_interrupts(self, coreplex: CoreplexHandle) -> None:
        tied = 0
        for ref in coreplex.interrupts:
            if not self.top.is_driven(ref):
                self.top.tie_off(ref, 0)
                tied += 1
        if tied:
            logger.debug("Tied off %d unconnected interrupt(s)", tied)


def elaborate(config: Configuration, name: str = "top") -> Topology:
    """Elaborate ``config`` into a fully connected, frozen topology.

    Raises:
        ConfigurationError: If configuration parameters contradict each other.
        PortCountError: If ports offered and ports required disagree.
        ProtocolMismatchError: If incompatible ports are connected.
    """
    logger.info("Elaborating '%s'", name)
    return TopologyAssembler(config, name).build()

