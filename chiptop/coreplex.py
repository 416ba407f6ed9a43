"""
Compute subsystem interface.

The compute subsystem is an external collaborator; only its port contract
matters here. ``ComputeSubsystem`` describes that contract, and
``build_default_coreplex`` derives a reference subsystem from the
configuration, used when the configuration names no builder of its own.
"""

from typing import Any, Dict, List, Tuple

from pydantic import Field

from chiptop.builder import InstanceHandle, ModuleBuilder
from chiptop.model.base import FrozenModel
from chiptop.model.port import Channel, PortDirection, Protocol, bus_port, signal_port
from chiptop.model.port_group import OptionalGroup, present_if
from chiptop.model.topology import PortRef
from chiptop.resolver import (
    INNER_TL_ID,
    OUTERMOST_MMIO_TL_ID,
    OUTERMOST_TL_ID,
    ResolvedConfig,
)
from chiptop.utils import indexed_names


class ComputeSubsystem(FrozenModel):
    """
    Port contract of the compute subsystem.

    Memory and client port lists are order-stable: port ``i`` of each list is
    always the same channel.
    """

    kind: str = Field(default="Coreplex", description="Instance kind")
    n_mem_channels: int = Field(..., description="Memory egress ports", ge=0)
    n_external_clients: int = Field(..., description="External client ingress ports", ge=0)
    has_mmio: bool = Field(..., description="Has an MMIO egress port")
    has_success_flag: bool = Field(default=False, description="Drives a success output")
    has_core_clock: bool = Field(default=False, description="Takes a separate core clock")
    n_interrupts: int = Field(default=0, description="Interrupt inputs", ge=0)
    extra_ports: Tuple[Channel, ...] = Field(default=(), description="Extra-port bundle")
    params: Dict[str, Any] = Field(default_factory=dict, description="Opaque parameters")

    def ports(self) -> List[Channel]:
        """Every port, directions as seen from outside the subsystem."""
        IN, OUT = PortDirection.IN, PortDirection.OUT
        ports = [
            bus_port(name, Protocol.TILELINK, OUT, OUTERMOST_TL_ID)
            for name in indexed_names("mem", self.n_mem_channels)
        ]
        if self.has_mmio:
            ports.append(bus_port("mmio", Protocol.TILELINK, OUT, OUTERMOST_MMIO_TL_ID))
        ports += [
            bus_port(name, Protocol.TILELINK, IN, INNER_TL_ID)
            for name in indexed_names("ext_clients", self.n_external_clients)
        ]
        ports += [
            signal_port("debug", Protocol.DEBUG, IN),
            signal_port("oms_clk", Protocol.CLOCK, IN),
            signal_port("oms_reset", Protocol.RESET, IN),
        ]
        if self.has_core_clock:
            ports.append(signal_port("core_clk", Protocol.CLOCK, IN))
        if self.has_success_flag:
            ports.append(signal_port("success", Protocol.SIGNAL, OUT))
        ports += [
            signal_port(name, Protocol.SIGNAL, IN)
            for name in indexed_names("interrupts", self.n_interrupts)
        ]
        ports += list(self.extra_ports)
        return ports

    def instantiate(self, module: ModuleBuilder, name: str = "coreplex") -> "CoreplexHandle":
        handle = module.add(name, self.kind, self.ports(), params=self.params)
        return CoreplexHandle(self, handle)


class CoreplexHandle:
    """Typed access to the ports of an instantiated compute subsystem."""

    def __init__(self, subsystem: ComputeSubsystem, handle: InstanceHandle):
        self.subsystem = subsystem
        self.handle = handle

    @property
    def name(self) -> str:
        return self.handle.name

    @property
    def mem(self) -> List[PortRef]:
        return self.handle.ports("mem")

    @property
    def mmio(self) -> OptionalGroup:
        return present_if(self.subsystem.has_mmio, [PortRef(instance=self.name, port="mmio")])

    @property
    def ext_clients(self) -> List[PortRef]:
        return self.handle.ports("ext_clients")

    @property
    def debug(self) -> PortRef:
        return self.handle.port("debug")

    @property
    def oms_clk(self) -> PortRef:
        return self.handle.port("oms_clk")

    @property
    def oms_reset(self) -> PortRef:
        return self.handle.port("oms_reset")

    @property
    def core_clk(self) -> OptionalGroup:
        return present_if(
            self.subsystem.has_core_clock, [PortRef(instance=self.name, port="core_clk")]
        )

    @property
    def success(self) -> OptionalGroup:
        return present_if(
            self.subsystem.has_success_flag, [PortRef(instance=self.name, port="success")]
        )

    @property
    def interrupts(self) -> List[PortRef]:
        return self.handle.ports("interrupts")

    @property
    def extra(self) -> Dict[str, PortRef]:
        return {c.name: self.handle.port(c.name) for c in self.subsystem.extra_ports}


def build_default_coreplex(resolved: ResolvedConfig) -> ComputeSubsystem:
    """Reference compute subsystem whose port lists match the configuration."""
    config = resolved.config
    return ComputeSubsystem(
        n_mem_channels=config.n_mem_channels,
        n_external_clients=resolved.n_external_clients,
        has_mmio=config.export_mmio,
        has_success_flag=config.has_success_flag,
        has_core_clock=config.has_core_clock,
        n_interrupts=config.n_interrupts,
    )
