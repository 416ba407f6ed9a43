"""
Tests for address map models.
"""

import pytest
from pydantic import ValidationError

from chiptop.model import AddressMap, AddressMapEntry, Protocol


def entry(name, base, size, **kwargs):
    return AddressMapEntry(name=name, base=base, size=size, **kwargs)


class TestAddressMapEntry:
    def test_sizes_and_addresses_accept_notation(self):
        e = AddressMapEntry.model_validate({"name": "uart", "base": "0x6000_0000", "size": "4K"})
        assert e.base_address == 0x6000_0000
        assert e.size == 4096
        assert e.end_address == 0x6000_1000
        assert e.hex_range == "[0x60000000 : 0x60001000]"

    def test_protocol_must_be_bus_family(self):
        assert entry("a", 0, 16, protocol="ahb").protocol == Protocol.AHB
        with pytest.raises(ValidationError, match="bus family"):
            entry("a", 0, 16, protocol="jtag")

    def test_name_cannot_hold_separator(self):
        with pytest.raises(ValidationError, match="cannot contain"):
            entry("io:ext", 0, 16)

    def test_zero_size_rejected(self):
        with pytest.raises(ValidationError):
            entry("a", 0, 0)

    def test_nested_entries_inside_parent(self):
        with pytest.raises(ValidationError, match="lies outside its parent"):
            entry("io", 0x1000, 0x1000, entries=(entry("uart", 0x2000, 0x100),))

    def test_contains_and_overlaps(self):
        a = entry("a", 0x1000, 0x1000)
        b = entry("b", 0x1800, 0x1000)
        c = entry("c", 0x2000, 0x1000)
        assert a.contains_address(0x1000)
        assert not a.contains_address(0x2000)
        assert a.overlaps(b)
        assert not a.overlaps(c)


class TestAddressMap:
    def test_duplicate_names_rejected(self):
        with pytest.raises(ValidationError, match="Duplicate address map entry 'a'"):
            AddressMap(entries=(entry("a", 0, 16), entry("a", 16, 16)))

    def test_overlap_rejected(self):
        with pytest.raises(ValidationError, match="Overlapping"):
            AddressMap(entries=(entry("a", 0, 32), entry("b", 16, 16)))

    def test_get_and_sub_map(self, address_map):
        amap = address_map("uart", "spi")
        assert amap.names == ["io", "mem"]
        assert amap.get("io:ext:spi").base_address == 0x6000_1000
        assert amap.get("io:nothing") is None
        assert amap.sub_map("io:ext").names == ["uart", "spi"]

    def test_sub_map_errors(self, address_map):
        amap = address_map("uart")
        with pytest.raises(KeyError, match="No address map entry"):
            amap.sub_map("io:missing")
        with pytest.raises(KeyError, match="holds no nested map"):
            amap.sub_map("mem")

    def test_flatten_uses_full_names(self, address_map):
        names = [name for name, _ in address_map("uart", "spi").flatten()]
        assert names == ["io:int:plic", "io:ext:uart", "io:ext:spi", "mem"]

    def test_decode_nested(self, address_map):
        amap = address_map("uart", "spi")
        assert amap.decode(0x6000_1004) == "io:ext:spi"
        assert amap.decode(0x4000_0000) == "io:int:plic"
        assert amap.decode(0x8000_0000) == "mem"

    def test_decode_unmapped(self, address_map):
        with pytest.raises(KeyError, match="0x10 is not mapped"):
            address_map("uart").decode(0x10)

    def test_total_address_space(self, address_map):
        assert address_map().total_address_space == 0x9000_0000 - 0x4000_0000
        assert AddressMap().total_address_space == 0
