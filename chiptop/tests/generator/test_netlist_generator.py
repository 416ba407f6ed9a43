"""
Tests for netlist and summary generation.
"""

import pytest
import yaml

from chiptop.generator.netlist_generator import NetlistGenerator
from chiptop.model import Configuration
from chiptop.top import elaborate


@pytest.fixture
def topology(address_map):
    config = Configuration(
        address_map=address_map("uart", "spi"),
        n_ext_mmio_axi_channels=1,
        n_ext_mmio_tl_channels=1,
        n_interrupts=1,
    )
    return elaborate(config)


def test_netlist_lists_every_module_and_instance(topology):
    netlist = NetlistGenerator().generate_netlist(topology)

    assert netlist.startswith("# Structural netlist of 'top'")
    assert "module top : ChipTop" in netlist
    assert "module top/periphery : Periphery" in netlist
    for instance in topology.instances:
        if instance.parent is not None:
            assert f"inst {instance.leaf_name} : {instance.kind}" in netlist
    assert netlist.count("endmodule") == 2


def test_netlist_connections_are_module_relative(topology):
    netlist = NetlistGenerator().generate_netlist(topology)

    assert "conn axi periphery.mmio_axi_0 -> io.mmio_axi_0" in netlist
    assert "conn tilelink io.mmio_in -> mmio_router.in" in netlist
    assert "tie  coreplex.interrupts_0 = 0" in netlist


def test_netlist_port_lines(topology):
    netlist = NetlistGenerator().generate_netlist(topology)
    port_lines = [line for line in netlist.splitlines() if line.startswith("  port ")]
    in_top = topology.root.ports + topology.get_instance("periphery").ports
    assert len(port_lines) == len(in_top)
    assert any("mmio_tl_0 @MMIO_Outermost" in line for line in port_lines)


def test_summary_yaml(topology):
    summary = yaml.safe_load(NetlistGenerator().generate_summary(topology))
    assert summary == topology.summary()


def test_write_files(tmp_path, topology):
    written = NetlistGenerator().write_files(topology, tmp_path / "out")
    assert sorted(written) == ["top.netlist", "top_summary.yml"]
    assert all(path.exists() for path in written.values())
    assert "module top : ChipTop" in written["top.netlist"].read_text()
