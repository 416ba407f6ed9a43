"""
Tests for top-level elaboration.
"""

import pytest

from chiptop.coreplex import ComputeSubsystem, build_default_coreplex
from chiptop.errors import ElaborationError, PortCountError
from chiptop.model import (
    Configuration,
    ExtraDevices,
    PortDirection,
    PortRef,
    Protocol,
    bus_port,
    signal_port,
)
from chiptop.top import TopologyAssembler, elaborate


def boundary_names(topology, protocol):
    return [p.name for p in topology.boundary_ports_of(protocol)]


def top_ref(port):
    return PortRef(instance="top", port=port)


class TestMemoryChannels:
    @pytest.mark.parametrize("n", [1, 2, 4])
    def test_axi_channels_exposed(self, n):
        topology = elaborate(Configuration(n_mem_channels=n, export_mmio=False))
        assert boundary_names(topology, Protocol.AXI) == [f"mem_axi_{i}" for i in range(n)]
        assert boundary_names(topology, Protocol.AHB) == []
        assert boundary_names(topology, Protocol.TILELINK) == []

    @pytest.mark.parametrize("protocol, prefix", [("ahb", "mem_ahb"), ("tl", "mem_tl")])
    def test_other_families(self, protocol, prefix):
        topology = elaborate(
            Configuration(mem_protocol=protocol, n_mem_channels=2, export_mmio=False)
        )
        names = [p.name for p in topology.boundary_ports if p.name.startswith("mem_")]
        assert names == [f"{prefix}_0", f"{prefix}_1"]

    def test_memory_path(self):
        topology = elaborate(Configuration(export_mmio=False))
        chain = topology.follow(PortRef(instance="top/coreplex", port="mem_0"))
        assert [topology.get_instance(r.instance).kind for r in chain[1:-1:2]] == [
            "Periphery",
            "TileLinkToAxiConverter",
            "AxiQueue",
            "AxiCacheOverride",
        ]
        assert chain[-1] == top_ref("mem_axi_0")

    def test_async_memory_has_clock_per_channel(self):
        topology = elaborate(
            Configuration(n_mem_channels=2, async_mem_channels=True, export_mmio=False)
        )
        assert boundary_names(topology, Protocol.CLOCK) == ["clock", "mem_clk_0", "mem_clk_1"]
        assert boundary_names(topology, Protocol.RESET) == ["reset", "mem_rst_0", "mem_rst_1"]
        assert topology.boundary_port("mem_axi_1").clock == "mem_clk_1"
        bridges = topology.instances_of("AsyncAxiBridge")
        assert [b.params["direction"] for b in bridges] == ["to", "to"]
        bridge = PortRef(instance="top/mem_axi_async_1", port="clock")
        assert topology.driver_of(bridge) == top_ref("mem_clk_1")

    @pytest.mark.parametrize(
        "protocol, kind, group",
        [("ahb", "AsyncAhbBridge", "mem_ahb"), ("tl", "AsyncTileLinkBridge", "mem_tl")],
    )
    def test_async_memory_crosses_every_family(self, protocol, kind, group):
        topology = elaborate(
            Configuration(
                mem_protocol=protocol, n_mem_channels=2, async_mem_channels=True, export_mmio=False
            )
        )
        assert boundary_names(topology, Protocol.CLOCK) == ["clock", "mem_clk_0", "mem_clk_1"]
        assert len(topology.instances_of(kind)) == 2
        bridge = f"top/{group}_async_1"
        assert topology.driver_of(top_ref(f"{group}_1")) == PortRef(instance=bridge, port="outer")
        assert topology.driver_of(PortRef(instance=bridge, port="reset")) == top_ref("mem_rst_1")

    def test_narrow_link_ignores_async_memory(self):
        topology = elaborate(
            Configuration(narrow_if=True, async_mem_channels=True, export_mmio=False)
        )
        assert boundary_names(topology, Protocol.CLOCK) == ["clock"]
        assert topology.instances_of("AsyncAxiBridge") == []
        assert topology.instances_of("AxiSerializer")

    def test_sync_memory_has_no_clock_ports(self):
        topology = elaborate(Configuration(n_mem_channels=2, export_mmio=False))
        assert boundary_names(topology, Protocol.CLOCK) == ["clock"]
        assert topology.instances_of("AsyncAxiBridge") == []

    def test_narrow_link_replaces_axi(self):
        topology = elaborate(Configuration(narrow_if=True, narrow_width=16, export_mmio=False))
        assert boundary_names(topology, Protocol.AXI) == []
        assert topology.boundary_port("mem_narrow").width == 16
        (serializer,) = topology.instances_of("AxiSerializer")
        assert serializer.params == {"width": 16, "divide": 8}
        assert topology.driver_of(top_ref("mem_narrow")) == PortRef(
            instance="top/mem_serializer", port="narrow"
        )


class TestDebug:
    @pytest.mark.parametrize("jtag", [True, False])
    @pytest.mark.parametrize("async_debug", [True, False])
    def test_exactly_one_transport(self, jtag, async_debug):
        topology = elaborate(
            Configuration(include_jtag_dtm=jtag, async_debug_bus=async_debug, export_mmio=False)
        )
        present = [n for n in ("jtag", "debug") if topology.boundary_port(n) is not None]
        assert present == (["jtag"] if jtag else ["debug"])

    def test_jtag_adapter(self):
        topology = elaborate(Configuration(include_jtag_dtm=True, export_mmio=False))
        assert topology.driver_of(PortRef(instance="top/coreplex", port="debug")) == PortRef(
            instance="top/jtag_dtm", port="debug"
        )

    def test_async_debug_bridge(self):
        topology = elaborate(Configuration(async_debug_bus=True, export_mmio=False))
        assert topology.boundary_port("debug_clk") is not None
        assert topology.driver_of(PortRef(instance="top/coreplex", port="debug")) == PortRef(
            instance="top/debug_async", port="inner"
        )

    def test_direct_debug(self):
        topology = elaborate(Configuration(export_mmio=False))
        assert topology.instances_of("AsyncDebugBridge") == []
        assert topology.driver_of(PortRef(instance="top/coreplex", port="debug")) == top_ref(
            "debug"
        )


class TestMMIO:
    def egress(self, topology, entry):
        start = PortRef(instance="top/periphery/mmio_router", port=f"out_{entry}")
        return topology.follow(start)[-1]

    def test_partition_order(self, address_map):
        config = Configuration(
            address_map=address_map("uart", "spi", "gpio"),
            n_ext_mmio_axi_channels=1,
            n_ext_mmio_ahb_channels=1,
            n_ext_mmio_tl_channels=1,
        )
        topology = elaborate(config)
        assert self.egress(topology, "uart") == top_ref("mmio_axi_0")
        assert self.egress(topology, "spi") == top_ref("mmio_ahb_0")
        assert self.egress(topology, "gpio") == top_ref("mmio_tl_0")

    def test_async_mmio_crossing(self, address_map):
        config = Configuration(
            address_map=address_map("a", "b"),
            n_ext_mmio_axi_channels=2,
            async_mmio_channels=True,
        )
        topology = elaborate(config)
        assert boundary_names(topology, Protocol.CLOCK) == ["clock", "mmio_clk_0", "mmio_clk_1"]
        assert self.egress(topology, "b") == top_ref("mmio_axi_1")
        assert topology.driver_of(top_ref("mmio_axi_1")) == PortRef(
            instance="top/mmio_axi_async_1", port="outer"
        )

    def test_no_export_no_router(self):
        topology = elaborate(Configuration(export_mmio=False))
        assert topology.instances_of("AddressMapRouter") == []
        assert topology.get_instance("coreplex").get_port("mmio") is None


class TestBus:
    def test_bus_reaches_coreplex(self):
        topology = elaborate(Configuration(export_mmio=False, n_ext_bus_axi_channels=2))
        chain = topology.follow(top_ref("bus_axi_1"))
        assert PortRef(instance="top/coreplex", port="ext_clients_0") in chain

    def test_async_bus(self):
        topology = elaborate(
            Configuration(export_mmio=False, n_ext_bus_axi_channels=2, async_bus_channels=True)
        )
        bridges = topology.instances_of("AsyncAxiBridge")
        assert [b.params["direction"] for b in bridges] == ["from", "from"]
        assert topology.boundary_port("bus_axi_0").clock == "bus_clk_0"


class TestCoreplex:
    def test_clock_and_reset(self):
        topology = elaborate(Configuration(export_mmio=False, has_core_clock=True))
        coreplex = "top/coreplex"
        assert topology.driver_of(PortRef(instance=coreplex, port="oms_clk")) == top_ref("clock")
        assert topology.driver_of(PortRef(instance=coreplex, port="core_clk")) == top_ref("clock")
        assert topology.driver_of(PortRef(instance=coreplex, port="oms_reset")) == PortRef(
            instance="top/reset_sync", port="out"
        )

    def test_success_flag(self):
        topology = elaborate(Configuration(export_mmio=False, has_success_flag=True))
        success = topology.boundary_port("success")
        assert success.direction == PortDirection.OUT
        assert topology.driver_of(top_ref("success")) == PortRef(
            instance="top/coreplex", port="success"
        )

    def test_no_success_flag(self):
        assert elaborate(Configuration(export_mmio=False)).boundary_port("success") is None

    def test_interrupts_tied_off(self):
        topology = elaborate(Configuration(export_mmio=False, n_interrupts=3))
        targets = [t.target.port for t in topology.tie_offs]
        assert targets == ["interrupts_0", "interrupts_1", "interrupts_2"]
        assert all(t.value == 0 for t in topology.tie_offs)

    def test_port_count_mismatch(self):
        def two_memories(resolved):
            return build_default_coreplex(resolved).model_copy(update={"n_mem_channels": 2})

        config = Configuration(export_mmio=False, build_coreplex=two_memories)
        with pytest.raises(PortCountError, match=r"memory ports .* \(expected 1, got 2\)"):
            elaborate(config)


class TestExtraPorts:
    def test_forwarded_and_connected_last(self):
        seen = {}

        def connect(module, top_extra, coreplex_extra, params):
            # Everything else is wired when the callback runs
            seen["mem_wired"] = module.is_driven(top_ref("mem_axi_0"))
            seen["params"] = params.tl_id
            module.connect(top_extra["ext_irq"], coreplex_extra["irq"])
            module.connect(top_extra["ext_irq"], PortRef(instance="top/coreplex", port="interrupts_0"))

        def coreplex_with_irq(resolved):
            return build_default_coreplex(resolved).model_copy(
                update={"extra_ports": (signal_port("irq", Protocol.SIGNAL, PortDirection.IN),)}
            )

        config = Configuration(
            export_mmio=False,
            n_interrupts=2,
            extra_top_ports=[{"name": "ext_irq", "protocol": "signal", "direction": "in"}],
            connect_extra_ports=connect,
            build_coreplex=coreplex_with_irq,
        )
        topology = elaborate(config)

        assert seen == {"mem_wired": True, "params": "L1toL2"}
        assert topology.boundary_port("ext_irq") is not None
        assert topology.get_instance("periphery").get_port("ext_irq") is not None
        assert [t.target.port for t in topology.tie_offs] == ["interrupts_1"]

    def test_extra_protocol_bundle(self):
        config = Configuration(
            export_mmio=False,
            extra_top_ports=[{"name": "gpio", "protocol": "extra", "direction": "out", "width": 8}],
        )
        topology = elaborate(config)
        assert topology.driver_of(top_ref("gpio")) == PortRef(instance="top/periphery", port="gpio")


class TestElaboration:
    def test_deterministic(self, address_map):
        config = Configuration(
            address_map=address_map("uart", "spi"),
            n_mem_channels=2,
            n_ext_bus_axi_channels=1,
            n_ext_mmio_axi_channels=1,
            n_ext_mmio_tl_channels=1,
            async_mem_channels=True,
        )
        assert elaborate(config) == elaborate(config)

    def test_default_configuration(self):
        topology = elaborate(Configuration())
        assert topology.instances_of("AddressMapRouter") == []
        assert boundary_names(topology, Protocol.AXI) == ["mem_axi_0"]

    def test_summary(self):
        summary = elaborate(Configuration(export_mmio=False)).summary()
        assert summary["name"] == "top"
        assert summary["boundary"] == {"axi_out": 1, "clock_in": 1, "debug_in": 1, "reset_in": 1}
        assert summary["instances"]["Coreplex"] == 1

    def test_frozen_after_build(self):
        assembler = TopologyAssembler(Configuration(export_mmio=False))
        assembler.build()
        with pytest.raises(ElaborationError, match="frozen"):
            assembler.top.add("late", "Leaf", [bus_port("x", Protocol.AXI, PortDirection.IN)])

    def test_devices_on_full_chip(self, address_map):
        def build_uart(module, mmio, clients, extra, params):
            dev = module.add(
                "uart",
                "Uart",
                [
                    bus_port("ctrl", Protocol.TILELINK, PortDirection.IN, params.inner_tl_id),
                    bus_port("dma", Protocol.TILELINK, PortDirection.OUT, params.outer_tl_id),
                ],
            )
            module.connect(mmio["uart"], dev.port("ctrl"))
            module.connect(dev.port("dma"), clients[0])

        config = Configuration(
            address_map=address_map("uart", "spi"),
            n_ext_mmio_tl_channels=1,
            extra_devices=ExtraDevices(
                addr_map_entries=("uart",), n_client_ports=1, builder=build_uart
            ),
        )
        topology = elaborate(config)
        assert topology.get_instance("periphery/uart").kind == "Uart"
        chain = topology.follow(PortRef(instance="top/periphery/uart", port="dma"))
        assert PortRef(instance="top/coreplex", port="ext_clients_0") in chain

    def test_coreplex_contract_kind(self):
        config = Configuration(
            export_mmio=False,
            build_coreplex=lambda resolved: ComputeSubsystem(
                kind="RocketTile", n_mem_channels=1, n_external_clients=0, has_mmio=False
            ),
        )
        topology = elaborate(config)
        assert topology.get_instance("coreplex").kind == "RocketTile"
