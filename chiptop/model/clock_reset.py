"""
Clock and reset pairs for asynchronous channel groups.
"""

from typing import List, Tuple

from pydantic import Field, field_validator

from .base import FrozenModel
from .port import Channel, PortDirection, Protocol


class ClockDomainPair(FrozenModel):
    """
    (clock, reset) input pair supplying one independently clocked channel.
    """

    clock: Channel = Field(..., description="Clock input")
    reset: Channel = Field(..., description="Reset input, synchronous to ``clock``")

    @field_validator("clock")
    @classmethod
    def validate_clock(cls, v: Channel) -> Channel:
        if v.protocol != Protocol.CLOCK:
            raise ValueError(f"Clock '{v.name}' must use the clock protocol")
        return v

    @field_validator("reset")
    @classmethod
    def validate_reset(cls, v: Channel) -> Channel:
        if v.protocol != Protocol.RESET:
            raise ValueError(f"Reset '{v.name}' must use the reset protocol")
        return v

    @classmethod
    def inputs(cls, clock_name: str, reset_name: str) -> "ClockDomainPair":
        """Create a pair of 1-bit inputs."""
        return cls(
            clock=Channel(name=clock_name, protocol=Protocol.CLOCK, direction=PortDirection.IN),
            reset=Channel(name=reset_name, protocol=Protocol.RESET, direction=PortDirection.IN),
        )

    @property
    def channels(self) -> Tuple[Channel, Channel]:
        return (self.clock, self.reset)


def clock_domain_pairs(prefix: str, count: int) -> List[ClockDomainPair]:
    """One ``{prefix}_clk_i``/``{prefix}_rst_i`` pair per channel."""
    return [
        ClockDomainPair.inputs(f"{prefix}_clk_{i}", f"{prefix}_rst_{i}") for i in range(count)
    ]
