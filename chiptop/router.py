"""
Address-map-driven TileLink router.

One ingress port is fanned out to one egress port per address map entry.
Requests are steered by the address range they fall into; responses travel
back on the channel they came from, so every egress keeps the framing of its
entry. Entries holding a nested map get a router of their own, chained
behind the parent's egress for that entry.
"""

import logging
from typing import Dict, List

from chiptop.builder import InstanceHandle, ModuleBuilder
from chiptop.errors import ElaborationError
from chiptop.model.address_map import PATH_SEPARATOR, AddressMap
from chiptop.model.port import PortDirection, Protocol, bus_port
from chiptop.model.topology import PortRef

logger = logging.getLogger(__name__)

INGRESS = "in"


def egress_port_name(entry_name: str) -> str:
    return f"out_{entry_name}"


class AddressMapRouter:
    """
    Recursive address decoder over an ``AddressMap``.

    Example:
        >>> router = AddressMapRouter(module, "mmio_router", ext_map, "L2toMMIO")
        >>> module.connect(module.io("mmio_in"), router.ingress)
        >>> uart = router.port("uart")
    """

    KIND = "AddressMapRouter"

    def __init__(self, module: ModuleBuilder, name: str, address_map: AddressMap, scope: str):
        if not address_map.entries:
            raise ElaborationError(f"Router '{name}' needs at least one address map entry")

        self.address_map = address_map
        self.scope = scope

        ports = [bus_port(INGRESS, Protocol.TILELINK, PortDirection.IN, scope)]
        ports.extend(
            bus_port(egress_port_name(e.name), Protocol.TILELINK, PortDirection.OUT, scope)
            for e in address_map.entries
        )
        self.handle: InstanceHandle = module.add(
            name,
            self.KIND,
            ports,
            params={
                "tl_id": scope,
                "entries": [
                    {"name": e.name, "base": e.base_address, "size": e.size}
                    for e in address_map.entries
                ],
            },
        )

        self._children: Dict[str, "AddressMapRouter"] = {}
        # Child router names carry the entry index, never the entry name
        for index, entry in enumerate(address_map.entries):
            if entry.is_submap:
                child = AddressMapRouter(module, f"{name}_{index}", entry.as_map(), scope)
                module.connect(self.handle.port(egress_port_name(entry.name)), child.ingress)
                self._children[entry.name] = child
        logger.debug(
            "Router '%s' decodes %d entries (%d nested)",
            name,
            len(address_map.entries),
            len(self._children),
        )

    @property
    def name(self) -> str:
        return self.handle.name

    @property
    def ingress(self) -> PortRef:
        return self.handle.port(INGRESS)

    @property
    def names(self) -> List[str]:
        """Full names of every leaf egress, in address map order."""
        return [name for name, _ in self.address_map.flatten()]

    def port(self, name: str) -> PortRef:
        """Return the egress for entry ``name`` (``:``-joined for nested entries).

        Raises:
            KeyError: If the map has no entry of that name.
        """
        head, _, rest = name.partition(PATH_SEPARATOR)
        if self.address_map.get(head) is None:
            raise KeyError(f"Router '{self.name}' has no entry '{name}'")
        if rest:
            if head not in self._children:
                raise KeyError(f"Router '{self.name}' entry '{head}' holds no nested map")
            return self._children[head].port(rest)
        return self.handle.port(egress_port_name(head))

    def decode(self, address: int) -> str:
        """Return the full name of the entry that serves ``address``.

        Raises:
            KeyError: If the address is not mapped.
        """
        return self.address_map.decode(address)

    def route(self, address: int) -> PortRef:
        """Return the egress port a request to ``address`` leaves on."""
        return self.port(self.decode(address))
