"""
Pydantic data models for chip topology elaboration.

This module holds the configuration, the address map, port and port group
definitions, and the immutable topology graph produced by elaboration.
"""

from .address_map import AddressMap, AddressMapEntry
from .base import ChipBaseModel, FrozenModel, StrictModel
from .clock_reset import ClockDomainPair, clock_domain_pairs
from .config import Configuration, ExtraDevices, ParameterScope, StaticExtraPorts
from .port import BUS_FAMILIES, POINT_TO_POINT, Channel, PortDirection, Protocol, bus_port, signal_port
from .port_group import Absent, OptionalGroup, PortGroup, Present, present_if
from .topology import Connection, Instance, PortRef, TieOff, Topology

__all__ = [
    # Base
    "ChipBaseModel",
    "StrictModel",
    "FrozenModel",
    # Ports
    "Protocol",
    "PortDirection",
    "Channel",
    "BUS_FAMILIES",
    "POINT_TO_POINT",
    "bus_port",
    "signal_port",
    "PortGroup",
    "Present",
    "Absent",
    "OptionalGroup",
    "present_if",
    # Clock/Reset
    "ClockDomainPair",
    "clock_domain_pairs",
    # Address map
    "AddressMap",
    "AddressMapEntry",
    # Configuration
    "Configuration",
    "ExtraDevices",
    "ParameterScope",
    "StaticExtraPorts",
    # Topology
    "Topology",
    "Instance",
    "PortRef",
    "Connection",
    "TieOff",
]
