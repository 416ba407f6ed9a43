"""
Configuration resolution.

Turns the declarative ``Configuration`` into concrete, mutually consistent
topology decisions: per-family memory channel counts, the parameter scopes
used at each hierarchy boundary, and the layout of the chip boundary with
every optional port group resolved to ``Present`` or ``Absent``.
"""

import logging
from dataclasses import dataclass, field
from typing import List

from chiptop.errors import ConfigurationError
from chiptop.model.address_map import AddressMap
from chiptop.model.clock_reset import ClockDomainPair, clock_domain_pairs
from chiptop.model.config import Configuration, ParameterScope
from chiptop.model.port import Channel, PortDirection, Protocol, signal_port
from chiptop.model.port_group import Absent, OptionalGroup, PortGroup, Present, present_if

logger = logging.getLogger(__name__)

# TileLink parameter scope ids
INNER_TL_ID = "L1toL2"
OUTERMOST_TL_ID = "Outermost"
OUTERMOST_MMIO_TL_ID = "MMIO_Outermost"
MMIO_TL_ID = "L2toMMIO"


@dataclass(frozen=True)
class ChipBoundary:
    """
    Port groups of the chip boundary, directions as seen from outside the chip.
    """

    clock: Channel
    reset: Channel
    mem_clocks: OptionalGroup
    mem_axi: PortGroup
    mem_ahb: PortGroup
    mem_tl: PortGroup
    mem_narrow: OptionalGroup
    bus_clocks: OptionalGroup
    bus_axi: PortGroup
    mmio_clocks: OptionalGroup
    mmio_axi: PortGroup
    mmio_ahb: PortGroup
    mmio_tl: PortGroup
    debug_clocks: OptionalGroup
    debug: OptionalGroup
    jtag: OptionalGroup

    def channels(self) -> List[Channel]:
        """Every boundary channel in declaration order."""
        channels = [self.clock, self.reset]

        def pairs(group: OptionalGroup) -> List[Channel]:
            return [c for pair in group for c in pair.channels]

        channels += pairs(self.mem_clocks)
        for group in (self.mem_axi, self.mem_ahb, self.mem_tl):
            channels += list(group.channels)
        channels += list(self.mem_narrow)
        channels += pairs(self.bus_clocks)
        channels += list(self.bus_axi.channels)
        channels += pairs(self.mmio_clocks)
        for group in (self.mmio_axi, self.mmio_ahb, self.mmio_tl):
            channels += list(group.channels)
        channels += pairs(self.debug_clocks)
        channels += list(self.debug)
        channels += list(self.jtag)
        return channels


@dataclass(frozen=True)
class ResolvedConfig:
    """
    Concrete decisions derived from one ``Configuration``.
    """

    config: Configuration
    n_mem_axi_channels: int
    n_mem_ahb_channels: int
    n_mem_tl_channels: int
    n_external_clients: int
    ext_io_map: OptionalGroup
    boundary: ChipBoundary
    inner_params: ParameterScope = field(default_factory=lambda: ParameterScope(tl_id=INNER_TL_ID))
    outermost_params: ParameterScope = field(
        default_factory=lambda: ParameterScope(tl_id=OUTERMOST_TL_ID)
    )
    outermost_mmio_params: ParameterScope = field(
        default_factory=lambda: ParameterScope(tl_id=OUTERMOST_MMIO_TL_ID)
    )
    mmio_params: ParameterScope = field(default_factory=lambda: ParameterScope(tl_id=MMIO_TL_ID))
    # Devices are slaves on their MMIO ports and masters on their client ports
    device_params: ParameterScope = field(
        default_factory=lambda: ParameterScope(
            tl_id=MMIO_TL_ID, inner_tl_id=MMIO_TL_ID, outer_tl_id=INNER_TL_ID
        )
    )

    @property
    def n_mem_channels(self) -> int:
        return self.config.n_mem_channels

    def mem_channels(self, protocol: Protocol) -> int:
        """Memory channels exposed for ``protocol``."""
        return {
            Protocol.AXI: self.n_mem_axi_channels,
            Protocol.AHB: self.n_mem_ahb_channels,
            Protocol.TILELINK: self.n_mem_tl_channels,
        }.get(protocol, 0)

    @property
    def n_device_clients(self) -> int:
        """Client ports left for extra devices after the bus arbiter."""
        return self.n_external_clients - (1 if self.config.n_ext_bus_axi_channels > 0 else 0)


def _validate(config: Configuration) -> None:
    if config.narrow_if:
        if config.n_mem_channels != 1:
            raise ConfigurationError(
                f"Narrow link requires exactly one memory channel, "
                f"got {config.n_mem_channels}",
                location="narrow_if",
            )
        if config.mem_protocol != Protocol.AXI:
            raise ConfigurationError(
                f"Narrow link serializes an AXI memory channel, "
                f"memory protocol is {config.mem_protocol.value}",
                location="narrow_if",
            )
    if config.async_mem_channels and config.narrow_if:
        logger.warning("The narrow link is not clock-crossed; async_mem_channels is ignored")
    if not config.export_mmio and config.n_ext_mmio_channels > 0:
        raise ConfigurationError(
            f"{config.n_ext_mmio_channels} external MMIO channel(s) configured "
            f"but MMIO export is disabled",
            location="export_mmio",
        )


def _resolve_ext_io_map(config: Configuration) -> OptionalGroup:
    if not config.export_mmio:
        return Absent()
    try:
        ext_map: AddressMap = config.address_map.sub_map(config.ext_io_path)
    except KeyError as e:
        raise ConfigurationError(
            f"External I/O address map not found: {e.args[0]}", location="address_map"
        ) from None
    return Present((ext_map,))


def _mem_counts(config: Configuration) -> dict:
    return {
        protocol: (config.n_mem_channels if config.mem_protocol == protocol else 0)
        for protocol in (Protocol.AXI, Protocol.AHB, Protocol.TILELINK)
    }


def _resolve_boundary(config: Configuration, counts: dict) -> ChipBoundary:
    IN, OUT = PortDirection.IN, PortDirection.OUT

    mem_pairs = clock_domain_pairs("mem", config.n_mem_channels)
    bus_pairs = clock_domain_pairs("bus", config.n_ext_bus_axi_channels)
    mmio_pairs = clock_domain_pairs("mmio", config.n_ext_mmio_axi_channels)

    cross_mem = config.async_mem_channels and not config.narrow_if

    def mem_group(name: str, protocol: Protocol, count: int, scope=None) -> PortGroup:
        # Only the active family has channels, one clock domain each
        clocks = mem_pairs if cross_mem and count else None
        return PortGroup.of(name, protocol, OUT, count, scope=scope, clocks=clocks)

    mem_axi = mem_group("mem_axi", Protocol.AXI, 0 if config.narrow_if else counts[Protocol.AXI])
    bus_axi = PortGroup.of(
        "bus_axi",
        Protocol.AXI,
        IN,
        config.n_ext_bus_axi_channels,
        clocks=bus_pairs if config.async_bus_channels else None,
    )
    mmio_axi = PortGroup.of(
        "mmio_axi",
        Protocol.AXI,
        OUT,
        config.n_ext_mmio_axi_channels,
        clocks=mmio_pairs if config.async_mmio_channels else None,
    )

    generic_debug = not config.include_jtag_dtm
    return ChipBoundary(
        clock=signal_port("clock", Protocol.CLOCK, IN),
        reset=signal_port("reset", Protocol.RESET, IN),
        mem_clocks=present_if(cross_mem, mem_pairs),
        mem_axi=mem_axi,
        mem_ahb=mem_group("mem_ahb", Protocol.AHB, counts[Protocol.AHB]),
        mem_tl=mem_group(
            "mem_tl", Protocol.TILELINK, counts[Protocol.TILELINK], scope=OUTERMOST_TL_ID
        ),
        mem_narrow=present_if(
            config.narrow_if,
            [signal_port("mem_narrow", Protocol.NARROW, OUT, width=config.narrow_width)],
        ),
        bus_clocks=present_if(config.async_bus_channels, bus_pairs),
        bus_axi=bus_axi,
        mmio_clocks=present_if(config.async_mmio_channels, mmio_pairs),
        mmio_axi=mmio_axi,
        mmio_ahb=PortGroup.of("mmio_ahb", Protocol.AHB, OUT, config.n_ext_mmio_ahb_channels),
        mmio_tl=PortGroup.of(
            "mmio_tl",
            Protocol.TILELINK,
            OUT,
            config.n_ext_mmio_tl_channels,
            scope=OUTERMOST_MMIO_TL_ID,
        ),
        debug_clocks=present_if(
            config.async_debug_bus and generic_debug,
            [ClockDomainPair.inputs("debug_clk", "debug_rst")],
        ),
        debug=present_if(generic_debug, [signal_port("debug", Protocol.DEBUG, IN)]),
        jtag=present_if(not generic_debug, [signal_port("jtag", Protocol.JTAG, IN)]),
    )


def resolve(config: Configuration) -> ResolvedConfig:
    """Resolve ``config`` into concrete topology decisions.

    Raises:
        ConfigurationError: If configuration parameters contradict each other.
    """
    _validate(config)
    counts = _mem_counts(config)
    ext_io_map = _resolve_ext_io_map(config)

    n_external_clients = config.n_external_clients
    if n_external_clients is None:
        n_external_clients = 1 if config.n_ext_bus_axi_channels > 0 else 0
        if isinstance(ext_io_map, Present):
            n_external_clients += config.extra_devices.n_client_ports

    resolved = ResolvedConfig(
        config=config,
        n_mem_axi_channels=counts[Protocol.AXI],
        n_mem_ahb_channels=counts[Protocol.AHB],
        n_mem_tl_channels=counts[Protocol.TILELINK],
        n_external_clients=n_external_clients,
        ext_io_map=ext_io_map,
        boundary=_resolve_boundary(config, counts),
    )
    logger.info(
        "Resolved %d %s memory channel(s), %d external client(s), MMIO export %s",
        config.n_mem_channels,
        config.mem_protocol.value,
        n_external_clients,
        "on" if isinstance(ext_io_map, Present) else "off",
    )
    return resolved
