"""
Topology graph produced by elaboration.

The graph is a hierarchy of instances. Each instance has typed ports; a
``Connection`` joins exactly two port ends inside one module scope. Inside a
module, the module's own ports are seen from the inside (their direction is
flipped), child ports from the outside.

Instances are addressed by ``/``-joined paths (``top/periphery/mmio_router``).
"""

from collections import Counter
from typing import Any, Dict, List, Optional, Tuple

from pydantic import Field

from chiptop.errors import ElaborationError

from .base import FrozenModel
from .port import Channel, PortDirection, Protocol

PATH_SEPARATOR = "/"


class PortRef(FrozenModel):
    """Reference to one port of one instance."""

    instance: str = Field(..., description="Instance path")
    port: str = Field(..., description="Port name")

    def __str__(self) -> str:
        return f"{self.instance}.{self.port}"


class Instance(FrozenModel):
    """
    One node of the topology: a module, a primitive or the compute subsystem.
    """

    name: str = Field(..., description="Full instance path")
    kind: str = Field(..., description="Module or primitive type")
    parent: Optional[str] = Field(default=None, description="Path of the enclosing module")
    is_module: bool = Field(default=False, description="Holds child instances")
    params: Dict[str, Any] = Field(default_factory=dict, description="Elaboration parameters")
    ports: Tuple[Channel, ...] = Field(default=(), description="Ports in declaration order")

    @property
    def leaf_name(self) -> str:
        return self.name.rsplit(PATH_SEPARATOR, 1)[-1]

    def get_port(self, name: str) -> Optional[Channel]:
        return next((p for p in self.ports if p.name == name), None)

    def ports_of(self, protocol: Protocol) -> List[Channel]:
        return [p for p in self.ports if p.protocol == protocol]


class Connection(FrozenModel):
    """Directed connection from a driving port end to a receiving port end."""

    scope: str = Field(..., description="Module in which the connection is made")
    source: PortRef = Field(..., description="Driving end (master side for buses)")
    sink: PortRef = Field(..., description="Receiving end (slave side for buses)")
    protocol: Protocol = Field(..., description="Protocol shared by both ends")

    def __str__(self) -> str:
        return f"{self.source} -> {self.sink}"


class TieOff(FrozenModel):
    """Constant driven into an otherwise unconnected input."""

    target: PortRef = Field(..., description="Tied port")
    value: int = Field(default=0, description="Constant value")


class Topology(FrozenModel):
    """
    Immutable result of elaboration.
    """

    name: str = Field(..., description="Path of the root module (the chip boundary)")
    instances: Tuple[Instance, ...] = Field(default=(), description="Instances, parents first")
    connections: Tuple[Connection, ...] = Field(default=(), description="Connections in order")
    tie_offs: Tuple[TieOff, ...] = Field(default=(), description="Constant tie-offs")

    # --- Lookups ---

    def get_instance(self, name: str) -> Optional[Instance]:
        """Get instance by full path, or by path relative to the root."""
        by_name = {i.name: i for i in self.instances}
        return by_name.get(name) or by_name.get(f"{self.name}{PATH_SEPARATOR}{name}")

    @property
    def root(self) -> Instance:
        root = self.get_instance(self.name)
        if root is None:
            raise ElaborationError(f"Topology '{self.name}' has no root instance")
        return root

    @property
    def boundary_ports(self) -> Tuple[Channel, ...]:
        """Ports of the chip boundary, direction as seen from outside the chip."""
        return self.root.ports

    def boundary_port(self, name: str) -> Optional[Channel]:
        return self.root.get_port(name)

    def boundary_ports_of(
        self, protocol: Protocol, direction: Optional[PortDirection] = None
    ) -> List[Channel]:
        return [
            p
            for p in self.root.ports
            if p.protocol == protocol and (direction is None or p.direction == direction)
        ]

    def instances_of(self, kind: str) -> List[Instance]:
        return [i for i in self.instances if i.kind == kind]

    def children_of(self, name: str) -> List[Instance]:
        return [i for i in self.instances if i.parent == name]

    def driver_of(self, ref: PortRef) -> Optional[PortRef]:
        """Return the port end driving ``ref`` (first match), if any."""
        return next((c.source for c in self.connections if c.sink == ref), None)

    def sinks_of(self, ref: PortRef) -> List[PortRef]:
        return [c.sink for c in self.connections if c.source == ref]

    def tie_off_of(self, ref: PortRef) -> Optional[TieOff]:
        return next((t for t in self.tie_offs if t.target == ref), None)

    def follow(self, ref: PortRef) -> List[PortRef]:
        """Walk downstream from the port end ``ref``.

        Passes through module ports and through primitives that have exactly
        one point-to-point output; stops at fan-out or at a dead end. Returns
        every port end visited, ``ref`` first.
        """
        chain = [ref]
        visited = {ref}
        current = ref
        while True:
            sinks = self.sinks_of(current)
            if len(sinks) != 1 or sinks[0] in visited:
                return chain
            current = sinks[0]
            chain.append(current)
            visited.add(current)

            instance = self.get_instance(current.instance)
            if instance is None or instance.is_module:
                continue
            outputs = [p for p in instance.ports if p.is_output and p.protocol.is_point_to_point]
            if len(outputs) != 1:
                return chain
            current = PortRef(instance=current.instance, port=outputs[0].name)
            chain.append(current)
            visited.add(current)

    # --- Summaries ---

    def kind_counts(self) -> Dict[str, int]:
        """Number of instances per kind, sorted by kind."""
        return dict(sorted(Counter(i.kind for i in self.instances).items()))

    def summary(self) -> Dict[str, Any]:
        """Structural summary: boundary port counts and instance counts."""
        boundary: Dict[str, int] = {}
        for port in self.boundary_ports:
            key = f"{port.protocol.value}_{port.direction.value}"
            boundary[key] = boundary.get(key, 0) + 1
        return {
            "name": self.name,
            "boundary": dict(sorted(boundary.items())),
            "instances": self.kind_counts(),
            "connections": len(self.connections),
            "tieOffs": len(self.tie_offs),
        }
