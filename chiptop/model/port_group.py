"""
Port groups and optional port presence.

A port group is an ordered, fixed-length vector of equivalent channels.
Groups that exist only under some configuration flag are wrapped in
``Present`` or ``Absent`` once, when the configuration is resolved, so that
later stages match on the wrapper instead of re-reading flags.
"""

from dataclasses import dataclass
from typing import Generic, Iterator, List, Optional, Tuple, TypeVar, Union

from pydantic import Field, model_validator

from chiptop.utils import indexed_names

from .base import FrozenModel
from .clock_reset import ClockDomainPair
from .port import Channel, PortDirection, Protocol, bus_port

T = TypeVar("T")


class PortGroup(FrozenModel):
    """
    Ordered, fixed-length sequence of same-protocol channels for one direction.
    """

    name: str = Field(..., description="Group name, also the channel name prefix")
    protocol: Protocol = Field(..., description="Protocol shared by every channel")
    direction: PortDirection = Field(..., description="Direction shared by every channel")
    channels: Tuple[Channel, ...] = Field(default=(), description="Channels in index order")

    @model_validator(mode="after")
    def check_uniform(self) -> "PortGroup":
        for channel in self.channels:
            if channel.protocol != self.protocol or channel.direction != self.direction:
                raise ValueError(
                    f"Channel '{channel.name}' does not match group '{self.name}' "
                    f"({self.protocol.value}/{self.direction.value})"
                )
        return self

    @classmethod
    def of(
        cls,
        name: str,
        protocol: Protocol,
        direction: PortDirection,
        count: int,
        scope: Optional[str] = None,
        clocks: Optional[List[ClockDomainPair]] = None,
    ) -> "PortGroup":
        """Create ``count`` bus channels named ``{name}_0 .. {name}_{count-1}``.

        When ``clocks`` is given, channel ``i`` is associated with pair ``i``.
        """
        if clocks is not None and len(clocks) != count:
            raise ValueError(
                f"Group '{name}' needs one clock domain per channel "
                f"({count} channels, {len(clocks)} pairs)"
            )
        channels = []
        for i, port_name in enumerate(indexed_names(name, count)):
            pair = clocks[i] if clocks is not None else None
            channels.append(
                bus_port(
                    port_name,
                    protocol,
                    direction,
                    scope=scope,
                    clock=pair.clock.name if pair else None,
                    reset=pair.reset.name if pair else None,
                )
            )
        return cls(name=name, protocol=protocol, direction=direction, channels=tuple(channels))

    @property
    def names(self) -> List[str]:
        return [c.name for c in self.channels]

    def __len__(self) -> int:
        return len(self.channels)


@dataclass(frozen=True)
class Present(Generic[T]):
    """An optional group that exists in this configuration."""

    items: Tuple[T, ...]

    def __iter__(self) -> Iterator[T]:
        return iter(self.items)

    def __len__(self) -> int:
        return len(self.items)


@dataclass(frozen=True)
class Absent:
    """An optional group that does not exist in this configuration."""

    def __iter__(self) -> Iterator:
        return iter(())

    def __len__(self) -> int:
        return 0


OptionalGroup = Union[Present, Absent]


def present_if(flag: bool, items) -> Union[Present, Absent]:
    """Wrap ``items`` in ``Present`` when ``flag`` holds, else ``Absent``."""
    return Present(tuple(items)) if flag else Absent()
