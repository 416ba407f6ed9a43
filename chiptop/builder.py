"""
Mutable builder for the topology graph.

``TopologyBuilder`` owns the graph while it is being elaborated; components
add instances and connections through a ``ModuleBuilder`` bound to the module
they build. ``freeze()`` checks that every port is connected and returns the
immutable ``Topology``; the builder rejects any change after that.

Connection rules, checked when the connection is made:

- both ends carry the same protocol;
- one end drives and the other receives, where a module's own ports are
  seen from inside the module (direction flipped);
- both ends are visible from the module scope (its own ports or its
  children's ports);
- point-to-point ends (buses, debug, JTAG, narrow link) take one connection;
  other receiving ends take one driver, except uninterpreted extra ports;
- non-bus ends have equal widths.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional, Tuple

from chiptop.errors import ElaborationError, ProtocolMismatchError, UnconnectedPortError
from chiptop.model.port import Channel, PortDirection, Protocol
from chiptop.model.topology import (
    PATH_SEPARATOR,
    Connection,
    Instance,
    PortRef,
    TieOff,
    Topology,
)

logger = logging.getLogger(__name__)

INNER = "inner"
OUTER = "outer"

_End = Tuple[PortRef, str]


class InstanceHandle:
    """Handle returned when an instance is added; hands out port references."""

    def __init__(self, graph: "TopologyBuilder", name: str):
        self._graph = graph
        self.name = name

    @property
    def instance(self) -> Instance:
        return self._graph.get_instance(self.name)

    def port(self, name: str) -> PortRef:
        """Reference port ``name``.

        Raises:
            KeyError: If the instance has no such port.
        """
        if self.instance.get_port(name) is None:
            raise KeyError(f"Instance '{self.name}' has no port '{name}'")
        return PortRef(instance=self.name, port=name)

    def ports(self, prefix: str) -> List[PortRef]:
        """Reference the vector ``{prefix}_0, {prefix}_1, ...`` in index order."""
        refs = []
        while self.instance.get_port(f"{prefix}_{len(refs)}") is not None:
            refs.append(PortRef(instance=self.name, port=f"{prefix}_{len(refs)}"))
        return refs

    def __repr__(self) -> str:
        return f"InstanceHandle({self.name!r})"


class ModuleBuilder(InstanceHandle):
    """Builder scoped to one module: adds children and wires inside the module."""

    @property
    def path(self) -> str:
        return self.name

    def add(
        self,
        name: str,
        kind: str,
        ports: Iterable[Channel],
        params: Optional[Dict[str, Any]] = None,
    ) -> InstanceHandle:
        """Add a leaf instance to this module."""
        path = self._graph.add_instance(self.name, name, kind, ports, params, is_module=False)
        return InstanceHandle(self._graph, path)

    def add_module(
        self,
        name: str,
        kind: str,
        ports: Iterable[Channel] = (),
        params: Optional[Dict[str, Any]] = None,
    ) -> "ModuleBuilder":
        """Add a child module that holds instances of its own."""
        path = self._graph.add_instance(self.name, name, kind, ports, params, is_module=True)
        return ModuleBuilder(self._graph, path)

    def add_port(self, channel: Channel) -> PortRef:
        """Add a port to this module; returns its reference."""
        self._graph.add_port(self.name, channel)
        return PortRef(instance=self.name, port=channel.name)

    def add_ports(self, channels: Iterable[Channel]) -> List[PortRef]:
        return [self.add_port(c) for c in channels]

    def io(self, name: str) -> PortRef:
        """Reference one of this module's own ports."""
        return self.port(name)

    def connect(self, a: PortRef, b: PortRef) -> Connection:
        """Connect two port ends; the driving end is found from directions."""
        return self._graph.connect(self.name, a, b)

    def connect_all(self, sources: List[PortRef], sinks: List[PortRef]) -> List[Connection]:
        """Connect two equally long vectors element by element."""
        if len(sources) != len(sinks):
            raise ProtocolMismatchError(
                f"Cannot connect vectors of {len(sources)} and {len(sinks)} ports",
                location=self.name,
            )
        return [self.connect(a, b) for a, b in zip(sources, sinks)]

    def tie_off(self, ref: PortRef, value: int = 0) -> TieOff:
        """Drive a constant into an unconnected receiving end."""
        return self._graph.tie_off(self.name, ref, value)

    def is_driven(self, ref: PortRef) -> bool:
        """Check whether the receiving end ``ref`` already has a driver."""
        return self._graph.is_driven(self.name, ref)


class TopologyBuilder:
    """
    Owner of the topology graph under construction.
    """

    def __init__(self, name: str = "top", kind: str = "ChipTop"):
        self.name = name
        self._instances: Dict[str, Instance] = {}
        self._connections: List[Connection] = []
        self._tie_offs: List[TieOff] = []
        self._ends: Dict[_End, List[Connection]] = {}
        self._tied: Dict[_End, TieOff] = {}
        self._frozen = False
        self._instances[name] = Instance(name=name, kind=kind, is_module=True)

    @property
    def root(self) -> ModuleBuilder:
        return ModuleBuilder(self, self.name)

    @property
    def is_frozen(self) -> bool:
        return self._frozen

    def get_instance(self, path: str) -> Instance:
        try:
            return self._instances[path]
        except KeyError:
            raise KeyError(f"No instance '{path}'") from None

    # --- Mutation ---

    def _check_mutable(self) -> None:
        if self._frozen:
            raise ElaborationError("Topology is frozen and cannot be modified", location=self.name)

    def add_instance(
        self,
        parent: str,
        name: str,
        kind: str,
        ports: Iterable[Channel],
        params: Optional[Dict[str, Any]],
        is_module: bool,
    ) -> str:
        self._check_mutable()
        if PATH_SEPARATOR in name:
            raise ElaborationError(f"Instance name '{name}' cannot contain '{PATH_SEPARATOR}'")
        if not self.get_instance(parent).is_module:
            raise ElaborationError(f"'{parent}' is not a module", location=parent)
        path = f"{parent}{PATH_SEPARATOR}{name}"
        if path in self._instances:
            raise ElaborationError(f"Duplicate instance '{path}'", location=parent)

        ports = tuple(ports)
        names = [p.name for p in ports]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ElaborationError(f"Duplicate ports {duplicates} on '{path}'", location=path)

        self._instances[path] = Instance(
            name=path,
            kind=kind,
            parent=parent,
            is_module=is_module,
            params=dict(params or {}),
            ports=ports,
        )
        logger.debug("Added %s '%s' with %d ports", kind, path, len(ports))
        return path

    def add_port(self, path: str, channel: Channel) -> None:
        self._check_mutable()
        instance = self.get_instance(path)
        if instance.get_port(channel.name) is not None:
            raise ElaborationError(f"Duplicate port '{channel.name}'", location=path)
        self._instances[path] = instance.model_copy(update={"ports": instance.ports + (channel,)})

    def _resolve_end(self, scope: str, ref: PortRef) -> Tuple[Channel, str, PortDirection]:
        """Return ``(channel, view, effective direction)`` of ``ref`` seen from ``scope``."""
        instance = self.get_instance(ref.instance)
        channel = instance.get_port(ref.port)
        if channel is None:
            raise ProtocolMismatchError(f"Unknown port '{ref}'", location=scope)
        if ref.instance == scope:
            return channel, INNER, channel.direction.flip()
        if instance.parent == scope:
            return channel, OUTER, channel.direction
        raise ProtocolMismatchError(f"Port '{ref}' is not visible from '{scope}'", location=scope)

    def connect(self, scope: str, a: PortRef, b: PortRef) -> Connection:
        self._check_mutable()
        chan_a, view_a, dir_a = self._resolve_end(scope, a)
        chan_b, view_b, dir_b = self._resolve_end(scope, b)

        if chan_a.protocol != chan_b.protocol:
            raise ProtocolMismatchError(
                f"Cannot connect {chan_a.protocol.value} port '{a}' "
                f"to {chan_b.protocol.value} port '{b}'",
                location=scope,
            )
        if dir_a == dir_b:
            side = "drive" if dir_a == PortDirection.OUT else "receive"
            raise ProtocolMismatchError(
                f"Ports '{a}' and '{b}' both {side}", location=scope
            )
        protocol = chan_a.protocol
        if not protocol.is_bus_family and chan_a.width != chan_b.width:
            raise ProtocolMismatchError(
                f"Width mismatch: '{a}' is {chan_a.width} bits, '{b}' is {chan_b.width} bits",
                location=scope,
            )

        if dir_a == PortDirection.OUT:
            source, sink = (a, view_a), (b, view_b)
        else:
            source, sink = (b, view_b), (a, view_a)

        if protocol.is_point_to_point:
            for end in (source, sink):
                if end in self._ends:
                    raise ProtocolMismatchError(
                        f"Port '{end[0]}' is already connected to "
                        f"'{self._ends[end][0]}'",
                        location=scope,
                    )
        elif protocol != Protocol.EXTRA and (sink in self._ends or sink in self._tied):
            raise ProtocolMismatchError(f"Port '{sink[0]}' already has a driver", location=scope)

        connection = Connection(scope=scope, source=source[0], sink=sink[0], protocol=protocol)
        self._connections.append(connection)
        self._ends.setdefault(source, []).append(connection)
        self._ends.setdefault(sink, []).append(connection)
        logger.debug("Connected %s", connection)
        return connection

    def tie_off(self, scope: str, ref: PortRef, value: int) -> TieOff:
        self._check_mutable()
        channel, view, direction = self._resolve_end(scope, ref)
        if channel.protocol.is_point_to_point:
            raise ProtocolMismatchError(
                f"Cannot tie off {channel.protocol.value} port '{ref}'", location=scope
            )
        if direction != PortDirection.IN:
            raise ProtocolMismatchError(f"Cannot tie off driving port '{ref}'", location=scope)
        end = (ref, view)
        if end in self._ends or end in self._tied:
            raise ProtocolMismatchError(f"Port '{ref}' already has a driver", location=scope)
        tie = TieOff(target=ref, value=value)
        self._tie_offs.append(tie)
        self._tied[end] = tie
        return tie

    def is_driven(self, scope: str, ref: PortRef) -> bool:
        _, view, direction = self._resolve_end(scope, ref)
        end = (ref, view)
        if end in self._tied:
            return True
        return any(c.sink == ref for c in self._ends.get(end, []))

    # --- Completion ---

    def _check_complete(self) -> None:
        for instance in self._instances.values():
            views = []
            if instance.parent is not None:
                views.append(OUTER)
            if instance.is_module:
                views.append(INNER)
            for channel in instance.ports:
                if channel.protocol == Protocol.EXTRA:
                    continue
                ref = PortRef(instance=instance.name, port=channel.name)
                for view in views:
                    end = (ref, view)
                    if end in self._ends or end in self._tied:
                        continue
                    direction = channel.direction if view == OUTER else channel.direction.flip()
                    if channel.protocol.is_point_to_point or direction == PortDirection.IN:
                        raise UnconnectedPortError(
                            f"Port '{ref}' ({channel.protocol.value}, {view} side) "
                            f"is left unconnected",
                            location=instance.name,
                        )

    def freeze(self) -> Topology:
        """Check completeness and return the immutable topology.

        Raises:
            UnconnectedPortError: If a port is left unconnected.
        """
        self._check_mutable()
        self._check_complete()
        self._frozen = True
        topology = Topology(
            name=self.name,
            instances=tuple(self._instances.values()),
            connections=tuple(self._connections),
            tie_offs=tuple(self._tie_offs),
        )
        logger.info(
            "Froze topology '%s': %d instances, %d connections",
            self.name,
            len(topology.instances),
            len(topology.connections),
        )
        return topology
