"""
Tests for the configuration and port models.
"""

import pytest
from pydantic import ValidationError

from chiptop.model import (
    Channel,
    Configuration,
    ExtraDevices,
    PortDirection,
    PortGroup,
    Protocol,
    StaticExtraPorts,
    clock_domain_pairs,
)
from chiptop.model.config import ParameterScope, no_device


class TestProtocol:
    @pytest.mark.parametrize(
        "raw, expected",
        [("axi", Protocol.AXI), ("AHB", Protocol.AHB), ("tl", Protocol.TILELINK)],
    )
    def test_from_string(self, raw, expected):
        assert Protocol.from_string(raw) is expected

    def test_unknown(self):
        with pytest.raises(ValueError, match="Unknown protocol"):
            Protocol.from_string("pcie")

    def test_families(self):
        assert Protocol.TILELINK.is_bus_family
        assert not Protocol.DEBUG.is_bus_family
        assert Protocol.JTAG.is_point_to_point
        assert not Protocol.CLOCK.is_point_to_point
        assert not Protocol.EXTRA.is_point_to_point


class TestChannel:
    def test_direction_aliases(self):
        ch = Channel(name="a", protocol="axi", direction="master")
        assert ch.direction == PortDirection.OUT
        assert ch.flipped().direction == PortDirection.IN

    def test_invalid_name(self):
        with pytest.raises(ValidationError, match="cannot contain"):
            Channel(name="a.b", protocol="signal", direction="in")

    def test_frozen(self):
        ch = Channel(name="a", protocol="signal", direction="in")
        with pytest.raises(ValidationError):
            ch.width = 4


class TestPortGroup:
    def test_of_associates_clock_pairs(self):
        group = PortGroup.of(
            "mem_axi", Protocol.AXI, PortDirection.OUT, 2, clocks=clock_domain_pairs("mem", 2)
        )
        assert group.names == ["mem_axi_0", "mem_axi_1"]
        assert [c.clock for c in group.channels] == ["mem_clk_0", "mem_clk_1"]
        assert [c.reset for c in group.channels] == ["mem_rst_0", "mem_rst_1"]

    def test_of_requires_one_pair_per_channel(self):
        with pytest.raises(ValueError, match="one clock domain per channel"):
            PortGroup.of(
                "mem_axi", Protocol.AXI, PortDirection.OUT, 2, clocks=clock_domain_pairs("mem", 1)
            )

    def test_uniform(self):
        with pytest.raises(ValidationError, match="does not match group"):
            PortGroup(
                name="g",
                protocol=Protocol.AXI,
                direction=PortDirection.OUT,
                channels=(Channel(name="g_0", protocol="ahb", direction="out"),),
            )


class TestConfiguration:
    def test_defaults(self):
        config = Configuration()
        assert config.mem_protocol == Protocol.AXI
        assert config.n_mem_channels == 1
        assert config.ext_io_path == "io:ext"
        assert not config.export_mmio
        assert config.n_external_clients is None
        assert config.extra_devices.is_empty

    def test_export_mmio_follows_address_map(self, address_map):
        assert Configuration(address_map=address_map("uart")).export_mmio
        assert Configuration.model_validate({"addressMap": address_map("uart")}).export_mmio
        assert not Configuration(address_map=address_map("uart"), export_mmio=False).export_mmio
        assert Configuration(export_mmio=True).export_mmio

    def test_mem_protocol_from_string(self):
        assert Configuration(mem_protocol="tl").mem_protocol == Protocol.TILELINK

    def test_mem_protocol_must_be_bus_family(self):
        with pytest.raises(ValidationError, match="bus family"):
            Configuration(mem_protocol="jtag")

    def test_camel_case_aliases(self):
        config = Configuration.model_validate({"nMemChannels": 2, "narrowIf": True})
        assert config.n_mem_channels == 2
        assert config.narrow_if

    def test_frozen(self):
        config = Configuration()
        with pytest.raises(ValidationError):
            config.n_mem_channels = 3

    def test_unknown_field_rejected(self):
        with pytest.raises(ValidationError):
            Configuration(n_memory_channels=2)

    def test_n_ext_mmio_channels(self):
        config = Configuration(
            n_ext_mmio_axi_channels=1, n_ext_mmio_ahb_channels=2, n_ext_mmio_tl_channels=3
        )
        assert config.n_ext_mmio_channels == 6

    def test_extra_ports_as_data(self):
        config = Configuration(
            extra_top_ports=[{"name": "gpio", "protocol": "extra", "direction": "out", "width": 8}]
        )
        assert isinstance(config.extra_top_ports, StaticExtraPorts)
        (port,) = config.extra_top_ports(ParameterScope(tl_id="L1toL2"))
        assert port.name == "gpio"
        assert port.width == 8

    def test_callables_from_paths(self):
        config = Configuration(
            extra_devices={"builder": "chiptop.model.config:no_device"},
            build_coreplex="chiptop.coreplex:build_default_coreplex",
        )
        assert config.extra_devices.builder is no_device
        assert callable(config.build_coreplex)

    def test_bad_callable_path(self):
        with pytest.raises(ValidationError, match="Cannot load callable"):
            Configuration(connect_extra_ports="chiptop.model.config:nothing_here")


def test_extra_devices_empty():
    assert ExtraDevices().is_empty
    assert not ExtraDevices(addr_map_entries=("uart",)).is_empty
