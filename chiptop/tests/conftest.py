import os
import sys

import pytest

# Add the project root to sys.path so that chiptop is importable
# This is needed because of the flat layout structure
project_root = os.path.abspath(os.path.join(os.path.dirname(__file__), "../.."))
if project_root not in sys.path:
    sys.path.insert(0, project_root)

from chiptop.model import AddressMap  # noqa: E402

EXT_BASE = 0x6000_0000
EXT_ENTRY_SIZE = 0x1000


def make_address_map(*ext_names):
    """Global map with ``io:ext`` holding one 4K entry per name, in order."""
    ext = {"name": "ext", "base": EXT_BASE, "size": 0x1000_0000}
    if ext_names:
        ext["entries"] = [
            {"name": n, "base": EXT_BASE + i * EXT_ENTRY_SIZE, "size": EXT_ENTRY_SIZE}
            for i, n in enumerate(ext_names)
        ]
    return AddressMap.model_validate(
        {
            "entries": [
                {
                    "name": "io",
                    "base": 0x4000_0000,
                    "size": 0x4000_0000,
                    "entries": [
                        {
                            "name": "int",
                            "base": 0x4000_0000,
                            "size": 0x1000_0000,
                            "entries": [{"name": "plic", "base": 0x4000_0000, "size": "64M"}],
                        },
                        ext,
                    ],
                },
                {"name": "mem", "base": 0x8000_0000, "size": "256M"},
            ]
        }
    )


@pytest.fixture
def address_map():
    """Factory fixture: ``address_map("uart", "spi")``."""
    return make_address_map
