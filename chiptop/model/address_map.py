"""
Address map definitions.

An address map is an ordered partition of an address space into named
regions. A region may itself hold a nested map; nested entries use absolute
addresses and must lie inside their parent. Full names of nested entries are
joined with ``:`` (``io:ext:uart``).
"""

from typing import Any, List, Optional, Tuple

from pydantic import Field, field_validator, model_validator

from chiptop.utils import parse_size

from .base import FrozenModel
from .port import Protocol

PATH_SEPARATOR = ":"


def _check_entries(owner: str, entries: Tuple["AddressMapEntry", ...]) -> None:
    """Check that ``entries`` are uniquely named and do not overlap."""
    seen = set()
    for entry in entries:
        if entry.name in seen:
            raise ValueError(f"Duplicate address map entry '{entry.name}' in {owner}")
        seen.add(entry.name)

    for i, first in enumerate(entries):
        for second in entries[i + 1 :]:
            if first.overlaps(second):
                raise ValueError(
                    f"Overlapping address map entries in {owner}: "
                    f"'{first.name}' {first.hex_range} and '{second.name}' {second.hex_range}"
                )


class AddressMapEntry(FrozenModel):
    """
    Named address region, optionally holding a nested map.

    ``protocol`` optionally records the bus family the region's target speaks.
    """

    name: str = Field(..., description="Entry name (unique within its map)")
    base_address: int = Field(..., alias="base", description="Region start address", ge=0)
    size: int = Field(..., description="Region size in bytes", ge=1)
    protocol: Optional[Protocol] = Field(default=None, description="Target protocol family")
    entries: Tuple["AddressMapEntry", ...] = Field(
        default=(), description="Nested entries (absolute addresses)"
    )
    description: str = Field(default="", description="Entry description")

    @field_validator("base_address", "size", mode="before")
    @classmethod
    def parse_numbers(cls, v: Any) -> Any:
        """Accept ``"0x8000_0000"`` and ``"4K"`` style values."""
        if isinstance(v, str):
            return parse_size(v)
        return v

    @field_validator("protocol", mode="before")
    @classmethod
    def normalize_protocol(cls, v: Any) -> Any:
        if isinstance(v, str):
            protocol = Protocol.from_string(v)
            if not protocol.is_bus_family:
                raise ValueError(f"Address map target must be a bus family, got '{v}'")
            return protocol
        return v

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Address map entry name cannot be empty")
        if PATH_SEPARATOR in v:
            raise ValueError(f"Address map entry name '{v}' cannot contain '{PATH_SEPARATOR}'")
        return v

    @model_validator(mode="after")
    def check_nested(self) -> "AddressMapEntry":
        _check_entries(f"'{self.name}'", self.entries)
        for child in self.entries:
            if child.base_address < self.base_address or child.end_address > self.end_address:
                raise ValueError(
                    f"Entry '{child.name}' {child.hex_range} lies outside "
                    f"its parent '{self.name}' {self.hex_range}"
                )
        return self

    @property
    def end_address(self) -> int:
        """First address past the region."""
        return self.base_address + self.size

    @property
    def is_submap(self) -> bool:
        return len(self.entries) > 0

    @property
    def hex_range(self) -> str:
        return f"[{hex(self.base_address)} : {hex(self.end_address)}]"

    def contains_address(self, address: int) -> bool:
        return self.base_address <= address < self.end_address

    def overlaps(self, other: "AddressMapEntry") -> bool:
        return not (
            self.end_address <= other.base_address or other.end_address <= self.base_address
        )

    def as_map(self) -> "AddressMap":
        """Return the nested entries as an address map of their own."""
        return AddressMap(entries=self.entries)


AddressMapEntry.model_rebuild()


class AddressMap(FrozenModel):
    """
    Ordered, non-overlapping set of uniquely named address map entries.
    """

    entries: Tuple[AddressMapEntry, ...] = Field(default=(), description="Entries in order")

    @model_validator(mode="after")
    def check_entries(self) -> "AddressMap":
        _check_entries("address map", self.entries)
        return self

    def __len__(self) -> int:
        return len(self.entries)

    @property
    def names(self) -> List[str]:
        """Names of the top-level entries, in order."""
        return [entry.name for entry in self.entries]

    def get(self, path: str) -> Optional[AddressMapEntry]:
        """Find an entry by name or by ``:``-joined path into nested maps."""
        head, _, rest = path.partition(PATH_SEPARATOR)
        entry = next((e for e in self.entries if e.name == head), None)
        if entry is None or not rest:
            return entry
        return entry.as_map().get(rest)

    def sub_map(self, path: str) -> "AddressMap":
        """Return the nested map found at ``path``.

        Raises:
            KeyError: If no entry exists at ``path`` or it holds no nested map.
        """
        entry = self.get(path)
        if entry is None:
            raise KeyError(f"No address map entry '{path}'")
        if not entry.is_submap:
            raise KeyError(f"Address map entry '{path}' holds no nested map")
        return entry.as_map()

    def flatten(self) -> List[Tuple[str, AddressMapEntry]]:
        """Return ``(full_name, entry)`` for every leaf region, depth first."""
        leaves: List[Tuple[str, AddressMapEntry]] = []
        for entry in self.entries:
            if entry.is_submap:
                for name, leaf in entry.as_map().flatten():
                    leaves.append((f"{entry.name}{PATH_SEPARATOR}{name}", leaf))
            else:
                leaves.append((entry.name, entry))
        return leaves

    def decode(self, address: int) -> str:
        """Return the full name of the leaf region that contains ``address``.

        Raises:
            KeyError: If no region contains the address.
        """
        for entry in self.entries:
            if entry.contains_address(address):
                if not entry.is_submap:
                    return entry.name
                return f"{entry.name}{PATH_SEPARATOR}{entry.as_map().decode(address)}"
        raise KeyError(f"Address {hex(address)} is not mapped")

    @property
    def total_address_space(self) -> int:
        """Span from the lowest base to the highest end address."""
        if not self.entries:
            return 0
        return max(e.end_address for e in self.entries) - min(e.base_address for e in self.entries)
