"""
YAML parser for chip configurations.

Loads a configuration file and converts it to the frozen ``Configuration``
model. The file is grouped into sections; every key is optional and falls
back to the model default.

Example:
    name: demo_chip
    memory:
      protocol: AXI
      channels: 2
      async: true
    externalBus:
      axiChannels: 1
    mmio:
      axiChannels: 1
      ahbChannels: 1
    debug:
      jtag: true
    addressMap:
      - name: io
        base: 0x4000_0000
        size: 1G
        entries:
          - name: ext
            base: 0x6000_0000
            size: 512M
            entries:
              - {name: uart, base: 0x6000_0000, size: 4K}
              - {name: spi, base: 0x6000_1000, size: 4K}
    extraDevices:
      entries: [uart]
      builder: my_devices:build_uart
"""

from pathlib import Path
from typing import Any, Dict, Iterable, Optional, Union

import yaml
from pydantic import ValidationError

from chiptop.model import AddressMap, Configuration, ExtraDevices
from chiptop.utils import filter_none

from .errors import ParseError

# Section → accepted keys
_SECTIONS: Dict[str, Iterable[str]] = {
    "memory": ("protocol", "channels", "async", "narrow"),
    "externalBus": ("axiChannels", "async"),
    "mmio": ("export", "axiChannels", "ahbChannels", "tlChannels", "async", "extIoPath"),
    "debug": ("jtag", "async"),
    "coreplex": ("externalClients", "successFlag", "interrupts", "coreClock", "builder"),
    "extraDevices": ("entries", "clientPorts", "builder"),
}

_TOP_LEVEL = {"name", "addressMap", "extraPorts", "connectExtraPorts", *_SECTIONS}


class YamlConfigParser:
    """
    Parser for chip configuration YAML files.

    Handles:
    - Sectioned configuration keys (memory, externalBus, mmio, debug, coreplex)
    - Nested address maps with hex and K/M/G sizes
    - Builder callbacks named as ``module:attribute``
    - Validation and error reporting with file context
    """

    def __init__(self):
        self._current_file: Optional[Path] = None
        self.name: Optional[str] = None

    def parse_file(self, file_path: Union[str, Path]) -> Configuration:
        """
        Parse a configuration YAML file.

        Args:
            file_path: Path to the configuration file

        Returns:
            Configuration: Validated configuration

        Raises:
            ParseError: If parsing or validation fails
        """
        file_path = Path(file_path).resolve()
        self._current_file = file_path

        if not file_path.exists():
            raise ParseError(f"File not found: {file_path}")

        with open(file_path, "r", encoding="utf-8") as f:
            return self.parse_string(f.read(), file_path)

    def parse_string(self, text: str, file_path: Optional[Path] = None) -> Configuration:
        """Parse configuration YAML held in memory."""
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as e:
            mark = getattr(e, "problem_mark", None)
            line_num = mark.line + 1 if mark else None
            raise ParseError(f"YAML syntax error: {e}", file_path, line_num)

        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ParseError("Root element must be a YAML object/dictionary", file_path)

        try:
            return self._parse_configuration(data, file_path)
        except ValidationError as e:
            errors = []
            for error in e.errors():
                loc = " -> ".join(str(x) for x in error["loc"])
                errors.append(f"{loc}: {error['msg']}")
            raise ParseError("Validation failed:\n  " + "\n  ".join(errors), file_path)

    def _section(self, data: Dict[str, Any], name: str, file_path: Optional[Path]) -> Dict[str, Any]:
        """Return section ``name`` after checking its type and keys."""
        section = data.get(name)
        if section is None:
            return {}
        if not isinstance(section, dict):
            raise ParseError("Section must be a mapping", file_path, section=name)
        unknown = sorted(set(section) - set(_SECTIONS[name]))
        if unknown:
            raise ParseError(
                f"Unknown keys {unknown}; expected one of {list(_SECTIONS[name])}",
                file_path,
                section=name,
            )
        return section

    def _parse_configuration(self, data: Dict[str, Any], file_path: Optional[Path]) -> Configuration:
        """Parse the whole configuration structure."""
        unknown = sorted(set(data) - _TOP_LEVEL)
        if unknown:
            raise ParseError(f"Unknown top-level keys: {unknown}", file_path)

        self.name = data.get("name")

        memory = self._section(data, "memory", file_path)
        bus = self._section(data, "externalBus", file_path)
        mmio = self._section(data, "mmio", file_path)
        debug = self._section(data, "debug", file_path)
        coreplex = self._section(data, "coreplex", file_path)

        narrow_if, narrow_width = self._parse_narrow(memory.get("narrow"), file_path)

        fields = {
            "mem_protocol": memory.get("protocol"),
            "n_mem_channels": memory.get("channels"),
            "async_mem_channels": memory.get("async"),
            "narrow_if": narrow_if,
            "narrow_width": narrow_width,
            "n_ext_bus_axi_channels": bus.get("axiChannels"),
            "async_bus_channels": bus.get("async"),
            "export_mmio": mmio.get("export"),
            "n_ext_mmio_axi_channels": mmio.get("axiChannels"),
            "n_ext_mmio_ahb_channels": mmio.get("ahbChannels"),
            "n_ext_mmio_tl_channels": mmio.get("tlChannels"),
            "async_mmio_channels": mmio.get("async"),
            "ext_io_path": mmio.get("extIoPath"),
            "include_jtag_dtm": debug.get("jtag"),
            "async_debug_bus": debug.get("async"),
            "n_external_clients": coreplex.get("externalClients"),
            "has_success_flag": coreplex.get("successFlag"),
            "n_interrupts": coreplex.get("interrupts"),
            "has_core_clock": coreplex.get("coreClock"),
            "build_coreplex": coreplex.get("builder"),
            "address_map": self._parse_address_map(data.get("addressMap"), file_path),
            "extra_top_ports": data.get("extraPorts"),
            "connect_extra_ports": data.get("connectExtraPorts"),
            "extra_devices": self._parse_extra_devices(data, file_path),
        }
        return Configuration(**filter_none(fields))

    def _parse_narrow(self, narrow: Any, file_path: Optional[Path]):
        """``narrow`` is either a flag or a mapping holding the link width."""
        if narrow is None or isinstance(narrow, bool):
            return narrow, None
        if isinstance(narrow, dict):
            unknown = sorted(set(narrow) - {"width"})
            if unknown:
                raise ParseError(f"Unknown narrow link keys: {unknown}", file_path, section="memory")
            return True, narrow.get("width")
        raise ParseError("narrow must be a boolean or {width: N}", file_path, section="memory")

    def _parse_address_map(self, entries: Any, file_path: Optional[Path]) -> Optional[AddressMap]:
        """Parse the address map from a list of (possibly nested) entries."""
        if entries is None:
            return None
        if not isinstance(entries, list):
            raise ParseError("addressMap must be a list of entries", file_path, section="addressMap")
        return AddressMap.model_validate({"entries": entries})

    def _parse_extra_devices(
        self, data: Dict[str, Any], file_path: Optional[Path]
    ) -> Optional[ExtraDevices]:
        devices = self._section(data, "extraDevices", file_path)
        if not devices:
            return None
        entries = devices.get("entries", [])
        if isinstance(entries, str):
            entries = [entries]
        return ExtraDevices(
            **filter_none(
                {
                    "addr_map_entries": tuple(entries),
                    "n_client_ports": devices.get("clientPorts"),
                    "builder": devices.get("builder"),
                }
            )
        )
