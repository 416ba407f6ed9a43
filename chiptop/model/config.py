"""
Top-level configuration of a chip.

The configuration is supplied once and never mutated: every component reads
the same frozen ``Configuration`` value, passed to it explicitly.
"""

from typing import Any, Callable, List, Optional, Sequence, Tuple

from pydantic import Field, field_validator, model_validator

from chiptop.utils import resolve_callable

from .address_map import AddressMap
from .base import FrozenModel
from .port import BUS_FAMILIES, Channel, Protocol


class ParameterScope(FrozenModel):
    """
    Named parameter scope handed to builders at a hierarchy boundary.

    ``tl_id`` selects the TileLink numbering used for ports created in this
    scope. Devices additionally see the scope of their slave side
    (``inner_tl_id``) and of their master side (``outer_tl_id``).
    """

    tl_id: str = Field(..., description="TileLink parameter scope id")
    inner_tl_id: Optional[str] = Field(default=None, description="Scope of device MMIO ports")
    outer_tl_id: Optional[str] = Field(default=None, description="Scope of device client ports")


def no_extra_ports(params: ParameterScope) -> List[Channel]:
    """Default extra-ports builder: the bundle is empty."""
    return []


def connect_no_extra_ports(module, top_extra, coreplex_extra, params) -> None:
    """Default extra-ports connector: nothing to connect."""


def no_device(module, mmio, clients, extra, params) -> None:
    """Default device builder for an empty device registry."""


class StaticExtraPorts:
    """Extra-ports builder returning a fixed list of channels.

    Used when the extra bundle is written out as data (e.g. in YAML) instead
    of being produced by a function.
    """

    def __init__(self, channels: Sequence[Channel]):
        self.channels = tuple(channels)

    def __call__(self, params: ParameterScope) -> List[Channel]:
        return list(self.channels)

    def __eq__(self, other: object) -> bool:
        return isinstance(other, StaticExtraPorts) and self.channels == other.channels

    def __hash__(self) -> int:
        return hash(self.channels)

    def __repr__(self) -> str:
        return f"StaticExtraPorts({[c.name for c in self.channels]})"


def _to_callable(v: Any) -> Any:
    if isinstance(v, str):
        return resolve_callable(v)
    return v


class ExtraDevices(FrozenModel):
    """
    Registry of extra devices attached to the external MMIO network.

    ``builder`` is called once with ``(module, mmio, clients, extra, params)``:
    the periphery module builder, the device MMIO ports keyed by entry name,
    the client ports in order, the extra-port bundle and the device scope.
    """

    addr_map_entries: Tuple[str, ...] = Field(
        default=(), description="Names of the external I/O entries the devices claim"
    )
    n_client_ports: int = Field(default=0, description="Client ports the devices use", ge=0)
    builder: Callable[..., Any] = Field(default=no_device, description="Device builder")

    @field_validator("builder", mode="before")
    @classmethod
    def load_builder(cls, v: Any) -> Any:
        return _to_callable(v)

    @property
    def is_empty(self) -> bool:
        return not self.addr_map_entries and self.n_client_ports == 0


class Configuration(FrozenModel):
    """
    Declarative description of the chip's top-level interconnect.
    """

    # Memory channels
    mem_protocol: Protocol = Field(
        default=Protocol.AXI, description="Protocol family of the memory channels"
    )
    n_mem_channels: int = Field(default=1, description="Number of memory channels", ge=0)

    # External bus and MMIO channels
    n_ext_bus_axi_channels: int = Field(default=0, description="External AXI masters", ge=0)
    n_ext_mmio_axi_channels: int = Field(default=0, description="External AXI MMIO ports", ge=0)
    n_ext_mmio_ahb_channels: int = Field(default=0, description="External AHB MMIO ports", ge=0)
    n_ext_mmio_tl_channels: int = Field(
        default=0, description="External TileLink MMIO ports", ge=0
    )
    n_external_clients: Optional[int] = Field(
        default=None, description="Compute subsystem client ports (derived when unset)", ge=0
    )

    # Clock domain crossings
    async_bus_channels: bool = Field(default=False, description="External bus is asynchronous")
    async_mem_channels: bool = Field(default=False, description="Memory is asynchronous")
    async_mmio_channels: bool = Field(default=False, description="AXI MMIO is asynchronous")
    async_debug_bus: bool = Field(default=False, description="Debug bus is asynchronous")

    # Address map
    address_map: AddressMap = Field(default_factory=AddressMap, description="Global address map")
    ext_io_path: str = Field(default="io:ext", description="Path of the external I/O sub-map")
    export_mmio: bool = Field(
        default=False, description="Route MMIO off the compute subsystem (on when a map is given)"
    )

    # Debug, narrow link, compute subsystem features
    include_jtag_dtm: bool = Field(default=False, description="Debug over JTAG")
    narrow_if: bool = Field(default=False, description="Serialize memory over a narrow link")
    narrow_width: int = Field(default=8, description="Narrow link width in bits", ge=1)
    has_success_flag: bool = Field(default=False, description="Compute subsystem success flag")
    n_interrupts: int = Field(default=0, description="Compute subsystem interrupt inputs", ge=0)
    has_core_clock: bool = Field(default=False, description="Separate core clock input")

    # Builders
    extra_top_ports: Callable[..., Any] = Field(
        default=no_extra_ports, description="Builds the extra-ports bundle"
    )
    connect_extra_ports: Callable[..., Any] = Field(
        default=connect_no_extra_ports, description="Connects boundary and compute extra ports"
    )
    extra_devices: ExtraDevices = Field(
        default_factory=ExtraDevices, description="Devices on the external MMIO network"
    )
    build_coreplex: Optional[Callable[..., Any]] = Field(
        default=None, description="Builds the compute subsystem (reference model when unset)"
    )

    @model_validator(mode="before")
    @classmethod
    def default_export_mmio(cls, data: Any) -> Any:
        """Export MMIO by default whenever an address map is given."""
        if not isinstance(data, dict):
            return data
        keys = ("export_mmio", "exportMmio")
        if any(data.get(k) is not None for k in keys):
            return data
        data = {k: v for k, v in data.items() if k not in keys}
        data["export_mmio"] = data.get("address_map", data.get("addressMap")) is not None
        return data

    @field_validator("mem_protocol", mode="before")
    @classmethod
    def normalize_mem_protocol(cls, v: Any) -> Any:
        protocol = Protocol.from_string(v) if isinstance(v, str) else v
        if isinstance(protocol, Protocol) and protocol not in BUS_FAMILIES:
            raise ValueError(f"Memory protocol must be a bus family, got '{protocol.value}'")
        return protocol

    @field_validator("extra_top_ports", mode="before")
    @classmethod
    def load_extra_top_ports(cls, v: Any) -> Any:
        """Accept a callable, a ``module:attr`` path, or a list of channels."""
        if isinstance(v, (list, tuple)):
            return StaticExtraPorts(
                [c if isinstance(c, Channel) else Channel.model_validate(c) for c in v]
            )
        return _to_callable(v)

    @field_validator("connect_extra_ports", "build_coreplex", mode="before")
    @classmethod
    def load_callables(cls, v: Any) -> Any:
        return _to_callable(v)

    @property
    def n_ext_mmio_channels(self) -> int:
        return self.n_ext_mmio_axi_channels + self.n_ext_mmio_ahb_channels + self.n_ext_mmio_tl_channels
