"""
Periphery routing.

Builds the peripheral side of the chip as a module of its own:

- external-bus ingress: N AXI masters arbitrated onto the first client port
  of the compute subsystem;
- MMIO egress: the compute subsystem's MMIO port decoded through the
  external I/O address map, feeding extra devices and the external MMIO
  ports of each protocol family;
- memory egress: one conversion stage per memory channel.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from chiptop.builder import InstanceHandle, ModuleBuilder
from chiptop.errors import DevicePortCountError, PortCountError, UnconnectedMMIOPortError
from chiptop.model.port import Channel, PortDirection, Protocol, bus_port
from chiptop.model.port_group import OptionalGroup, Present, present_if
from chiptop.model.topology import PortRef
from chiptop.primitives import (
    MEM_AXI_CACHE_ATTRIBUTES,
    ahb_bridge,
    axi_arbiter,
    axi_cache_override,
    axi_queue,
    axi_to_tilelink,
    tilelink_queue,
    tilelink_to_axi,
    tilelink_width_adapter,
)
from chiptop.resolver import ResolvedConfig
from chiptop.router import AddressMapRouter
from chiptop.utils import indexed_names

logger = logging.getLogger(__name__)

# Stage of a conversion chain: (instance, input port, output port)
Stage = Tuple[InstanceHandle, str, str]


@dataclass(frozen=True)
class MMIOBinding:
    """External address map entry bound to one external MMIO port."""

    entry: str
    protocol: Protocol
    index: int

    @property
    def port_name(self) -> str:
        family = {Protocol.AXI: "axi", Protocol.AHB: "ahb", Protocol.TILELINK: "tl"}
        return f"mmio_{family[self.protocol]}_{self.index}"


class PeripheryRouter:
    """
    Periphery module: all peripheral-side wiring of the chip.
    """

    KIND = "Periphery"

    def __init__(
        self,
        parent: ModuleBuilder,
        resolved: ResolvedConfig,
        extra_ports: List[Channel],
        name: str = "periphery",
    ):
        self.resolved = resolved
        self.config = resolved.config
        self.extra_ports = list(extra_ports)
        self.module = parent.add_module(
            name,
            self.KIND,
            self._io_ports(),
            params={"tl_id": resolved.inner_params.tl_id},
        )
        self.mmio_router: Optional[AddressMapRouter] = None
        self.mmio_bindings: List[MMIOBinding] = []

    def _io_ports(self) -> List[Channel]:
        """Ports of the periphery module, directions as seen from outside it."""
        IN, OUT = PortDirection.IN, PortDirection.OUT
        resolved, config = self.resolved, self.config
        outermost = resolved.outermost_params.tl_id
        outermost_mmio = resolved.outermost_mmio_params.tl_id

        def group(prefix: str, protocol: Protocol, direction, count: int, scope=None):
            return [bus_port(n, protocol, direction, scope) for n in indexed_names(prefix, count)]

        ports = group("mem_in", Protocol.TILELINK, IN, config.n_mem_channels, outermost)
        ports += group(
            "clients_out",
            Protocol.TILELINK,
            OUT,
            resolved.n_external_clients,
            resolved.inner_params.tl_id,
        )
        if isinstance(resolved.ext_io_map, Present):
            ports.append(bus_port("mmio_in", Protocol.TILELINK, IN, outermost_mmio))
        ports += group("mem_axi", Protocol.AXI, OUT, resolved.mem_channels(Protocol.AXI))
        ports += group("mem_ahb", Protocol.AHB, OUT, resolved.mem_channels(Protocol.AHB))
        ports += group(
            "mem_tl", Protocol.TILELINK, OUT, resolved.mem_channels(Protocol.TILELINK), outermost
        )
        ports += group("bus_axi", Protocol.AXI, IN, config.n_ext_bus_axi_channels)
        ports += group("mmio_axi", Protocol.AXI, OUT, config.n_ext_mmio_axi_channels)
        ports += group("mmio_ahb", Protocol.AHB, OUT, config.n_ext_mmio_ahb_channels)
        ports += group(
            "mmio_tl", Protocol.TILELINK, OUT, config.n_ext_mmio_tl_channels, outermost_mmio
        )
        ports += self.extra_ports
        return ports

    # --- Port references (module ports) ---

    @property
    def name(self) -> str:
        return self.module.name

    @property
    def mem_in(self) -> List[PortRef]:
        return self.module.ports("mem_in")

    @property
    def clients_out(self) -> List[PortRef]:
        return self.module.ports("clients_out")

    @property
    def mmio_in(self) -> OptionalGroup:
        return present_if(
            isinstance(self.resolved.ext_io_map, Present), [PortRef(instance=self.name, port="mmio_in")]
        )

    @property
    def mem_axi(self) -> List[PortRef]:
        return self.module.ports("mem_axi")

    @property
    def mem_ahb(self) -> List[PortRef]:
        return self.module.ports("mem_ahb")

    @property
    def mem_tl(self) -> List[PortRef]:
        return self.module.ports("mem_tl")

    @property
    def bus_axi(self) -> List[PortRef]:
        return self.module.ports("bus_axi")

    @property
    def mmio_axi(self) -> List[PortRef]:
        return self.module.ports("mmio_axi")

    @property
    def mmio_ahb(self) -> List[PortRef]:
        return self.module.ports("mmio_ahb")

    @property
    def mmio_tl(self) -> List[PortRef]:
        return self.module.ports("mmio_tl")

    @property
    def extra(self) -> Dict[str, PortRef]:
        return {c.name: self.module.port(c.name) for c in self.extra_ports}

    # --- Elaboration ---

    def build(self) -> "PeripheryRouter":
        """Elaborate every stage of the periphery; returns self."""
        self._build_bus_arbiter()
        if isinstance(self.resolved.ext_io_map, Present):
            self._build_mmio_network(self.resolved.ext_io_map.items[0])
        self._build_memory()
        return self

    def _pipe(self, source: PortRef, stages: List[Stage], sink: PortRef) -> None:
        """Connect ``source`` through each stage in order into ``sink``."""
        current = source
        for handle, inp, out in stages:
            self.module.connect(current, handle.port(inp))
            current = handle.port(out)
        self.module.connect(current, sink)

    def _build_bus_arbiter(self) -> None:
        n_bus = self.config.n_ext_bus_axi_channels
        if n_bus == 0:
            return
        clients = self.clients_out
        if not clients:
            raise PortCountError(
                "External bus channels need a compute subsystem client port",
                expected=1,
                actual=0,
                location=self.name,
            )
        m = self.module
        arbiter = axi_arbiter(m, "bus_arbiter", n_bus)
        converter = axi_to_tilelink(m, "bus_converter", self.resolved.inner_params.tl_id)
        m.connect_all(self.bus_axi, arbiter.ports("in"))
        self._pipe(arbiter.port("out"), [(converter, "nasti", "tl")], clients[0])
        logger.debug("Arbitrating %d external bus channel(s) onto '%s'", n_bus, clients[0])

    def _build_mmio_network(self, ext_map) -> None:
        m = self.module
        router = AddressMapRouter(m, "mmio_router", ext_map, self.resolved.mmio_params.tl_id)
        self.mmio_router = router
        m.connect(m.io("mmio_in"), router.ingress)

        devices = self.config.extra_devices
        device_mmio: Dict[str, PortRef] = {}
        for entry in devices.addr_map_entries:
            if entry not in router.names:
                if ext_map.get(entry) is not None:
                    problem = "is a sub-map of"
                else:
                    problem = "is not in"
                raise DevicePortCountError(
                    f"Extra device entry '{entry}' {problem} the external I/O address map",
                    location=f"address_map:{entry}",
                )
            device_mmio[entry] = router.port(entry)

        # The bus arbiter takes the first client port
        clients = self.clients_out
        device_clients = clients[len(clients) - self.resolved.n_device_clients :]
        if len(device_clients) != devices.n_client_ports:
            raise DevicePortCountError(
                "Extra devices client ports do not match the free client ports",
                expected=devices.n_client_ports,
                actual=len(device_clients),
                location=self.name,
            )
        if not devices.is_empty:
            logger.info(
                "Building extra devices on %s with %d client port(s)",
                list(device_mmio),
                len(device_clients),
            )
        devices.builder(m, device_mmio, device_clients, self.extra, self.resolved.device_params)

        external: List[Tuple[str, PortRef]] = []
        for full_name in router.names:
            if full_name in device_mmio:
                continue
            adapter = tilelink_width_adapter(
                m,
                f"mmio_width_adapter_{len(external)}",
                self.resolved.mmio_params.tl_id,
                self.resolved.outermost_mmio_params.tl_id,
            )
            m.connect(router.port(full_name), adapter.port("inner"))
            external.append((full_name, adapter.port("outer")))
        self._connect_external_mmio(external)

    def _connect_external_mmio(self, ports: List[Tuple[str, PortRef]]) -> None:
        """Bind each entry to the AXI, then AHB, then TileLink external ports."""
        config, m = self.config, self.module
        scope = self.resolved.outermost_mmio_params.tl_id
        axi_end = config.n_ext_mmio_axi_channels
        ahb_end = axi_end + config.n_ext_mmio_ahb_channels
        tl_end = ahb_end + config.n_ext_mmio_tl_channels

        for i, (entry, ref) in enumerate(ports):
            if i < axi_end:
                k = i
                converter = tilelink_to_axi(m, f"mmio_axi_converter_{k}", scope)
                queue = axi_queue(m, f"mmio_axi_queue_{k}")
                self._pipe(
                    ref,
                    [(converter, "tl", "nasti"), (queue, "inner", "outer")],
                    self.mmio_axi[k],
                )
                binding = MMIOBinding(entry, Protocol.AXI, k)
            elif i < ahb_end:
                k = i - axi_end
                bridge = ahb_bridge(m, f"mmio_ahb_bridge_{k}", scope, atomics=True)
                self._pipe(ref, [(bridge, "tl", "ahb")], self.mmio_ahb[k])
                binding = MMIOBinding(entry, Protocol.AHB, k)
            elif i < tl_end:
                k = i - ahb_end
                queue = tilelink_queue(m, f"mmio_tl_queue_{k}", scope)
                self._pipe(ref, [(queue, "inner", "outer")], self.mmio_tl[k])
                binding = MMIOBinding(entry, Protocol.TILELINK, k)
            else:
                raise UnconnectedMMIOPortError(entry, i, tl_end)
            self.mmio_bindings.append(binding)
            logger.debug("MMIO entry '%s' bound to %s", entry, binding.port_name)

        if len(ports) != tl_end:
            raise PortCountError(
                "External MMIO ports outnumber the external address map entries",
                expected=tl_end,
                actual=len(ports),
                location=self.name,
            )

    def _build_memory(self) -> None:
        resolved, m = self.resolved, self.module
        mem_in = self.mem_in
        family_ports = {
            Protocol.AXI: self.mem_axi,
            Protocol.AHB: self.mem_ahb,
            Protocol.TILELINK: self.mem_tl,
        }
        active = family_ports[self.config.mem_protocol]
        if len(active) != len(mem_in):
            raise PortCountError(
                f"{self.config.mem_protocol.value} memory ports do not pair with "
                f"the compute subsystem memory ports",
                expected=len(mem_in),
                actual=len(active),
                location=self.name,
            )

        outermost = resolved.outermost_params.tl_id
        for i, (nasti, tl) in enumerate(zip(self.mem_axi, mem_in)):
            converter = tilelink_to_axi(m, f"mem_axi_converter_{i}", outermost)
            queue = axi_queue(m, f"mem_axi_queue_{i}")
            cache = axi_cache_override(m, f"mem_axi_cache_{i}", MEM_AXI_CACHE_ATTRIBUTES)
            self._pipe(
                tl,
                [(converter, "tl", "nasti"), (queue, "inner", "outer"), (cache, "inner", "outer")],
                nasti,
            )
        for i, (ahb, tl) in enumerate(zip(self.mem_ahb, mem_in)):
            bridge = ahb_bridge(m, f"mem_ahb_bridge_{i}", outermost, atomics=False)
            self._pipe(tl, [(bridge, "tl", "ahb")], ahb)
        for i, (mem_tl, tl) in enumerate(zip(self.mem_tl, mem_in)):
            queue = tilelink_queue(m, f"mem_tl_queue_{i}", outermost)
            self._pipe(tl, [(queue, "inner", "outer")], mem_tl)
        logger.debug("Built %d %s memory stage(s)", len(mem_in), self.config.mem_protocol.value)
