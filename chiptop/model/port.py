"""
Port definitions for topology instances.
"""

from enum import Enum
from typing import Any, Optional

from pydantic import Field, field_validator

from chiptop.utils import normalize_protocol_key

from .base import FrozenModel

DEFAULT_BUS_WIDTH = 64


class Protocol(str, Enum):
    """Wire protocol carried by a port.

    AXI, AHB and TILELINK are the three bus protocol families. The remaining
    members are the signal kinds found on the chip boundary.
    """

    AXI = "axi"
    AHB = "ahb"
    TILELINK = "tilelink"
    DEBUG = "debug"
    JTAG = "jtag"
    NARROW = "narrow"
    CLOCK = "clock"
    RESET = "reset"
    SIGNAL = "signal"
    EXTRA = "extra"

    @classmethod
    def from_string(cls, value: str) -> "Protocol":
        """Parse a protocol from its value, name or a common alias."""
        if isinstance(value, cls):
            return value
        try:
            return cls(value.lower())
        except ValueError:
            pass
        try:
            return cls[normalize_protocol_key(value)]
        except KeyError:
            raise ValueError(f"Unknown protocol '{value}'") from None

    @property
    def is_bus_family(self) -> bool:
        """Check if this is one of the three bus protocol families."""
        return self in BUS_FAMILIES

    @property
    def is_point_to_point(self) -> bool:
        """Check if every end of a port of this protocol takes exactly one connection."""
        return self in POINT_TO_POINT


BUS_FAMILIES = (Protocol.AXI, Protocol.AHB, Protocol.TILELINK)

POINT_TO_POINT = frozenset(
    {
        Protocol.AXI,
        Protocol.AHB,
        Protocol.TILELINK,
        Protocol.DEBUG,
        Protocol.JTAG,
        Protocol.NARROW,
    }
)


class PortDirection(str, Enum):
    """Port direction as seen from outside the instance that owns the port.

    For bus protocols ``OUT`` is the master side (issues requests) and ``IN``
    the slave side.
    """

    IN = "in"
    OUT = "out"

    @classmethod
    def from_string(cls, value: str) -> "PortDirection":
        """Normalize common direction aliases into ``PortDirection``."""
        normalized = value.lower().strip()
        mapping = {
            "in": cls.IN,
            "input": cls.IN,
            "slave": cls.IN,
            "sink": cls.IN,
            "out": cls.OUT,
            "output": cls.OUT,
            "master": cls.OUT,
            "source": cls.OUT,
        }
        if normalized not in mapping:
            raise ValueError(f"Unknown port direction '{value}'")
        return mapping[normalized]

    def flip(self) -> "PortDirection":
        return PortDirection.OUT if self == PortDirection.IN else PortDirection.IN


class Channel(FrozenModel):
    """
    A directional port of exactly one protocol.

    ``clock`` and ``reset`` name the ports of the same instance that clock
    this channel; None means the implicit clock of the enclosing module.
    ``scope`` records the TileLink parameter scope for TileLink ports.
    """

    name: str = Field(..., description="Port name")
    protocol: Protocol = Field(..., description="Wire protocol")
    direction: PortDirection = Field(..., description="Port direction")
    width: int = Field(default=1, description="Width in bits", ge=1)
    clock: Optional[str] = Field(default=None, description="Associated clock port")
    reset: Optional[str] = Field(default=None, description="Associated reset port")
    scope: Optional[str] = Field(default=None, description="TileLink parameter scope id")
    description: str = Field(default="", description="Port description")

    @field_validator("protocol", mode="before")
    @classmethod
    def normalize_protocol(cls, v: Any) -> Any:
        if isinstance(v, str):
            return Protocol.from_string(v)
        return v

    @field_validator("direction", mode="before")
    @classmethod
    def normalize_direction(cls, v: Any) -> Any:
        if isinstance(v, str):
            return PortDirection.from_string(v)
        return v

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Port name cannot be empty")
        if "." in v:
            raise ValueError(f"Port name '{v}' cannot contain '.'")
        return v

    @property
    def is_output(self) -> bool:
        return self.direction == PortDirection.OUT

    @property
    def is_explicitly_clocked(self) -> bool:
        """Check if the channel names its own clock instead of the implicit one."""
        return self.clock is not None

    def flipped(self) -> "Channel":
        """Return a copy with the opposite direction."""
        return self.model_copy(update={"direction": self.direction.flip()})


def bus_port(
    name: str,
    protocol: Protocol,
    direction: PortDirection,
    scope: Optional[str] = None,
    clock: Optional[str] = None,
    reset: Optional[str] = None,
) -> Channel:
    """Build a bus-protocol channel with the default bus width."""
    return Channel(
        name=name,
        protocol=protocol,
        direction=direction,
        width=DEFAULT_BUS_WIDTH,
        scope=scope if protocol == Protocol.TILELINK else None,
        clock=clock,
        reset=reset,
    )


def signal_port(
    name: str, protocol: Protocol, direction: PortDirection, width: int = 1
) -> Channel:
    """Build a non-bus channel (clock, reset, flag, debug, ...)."""
    return Channel(name=name, protocol=protocol, direction=direction, width=width)
