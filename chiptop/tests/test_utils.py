"""
Tests for chiptop.utils helpers.
"""

import pytest

from chiptop.model.config import no_device
from chiptop.utils import (
    filter_none,
    indexed_names,
    normalize_protocol_key,
    parse_size,
    resolve_callable,
)


@pytest.mark.parametrize(
    "value, expected",
    [
        (4096, 4096),
        ("4096", 4096),
        ("0x1000", 0x1000),
        ("0x4000_0000", 0x4000_0000),
        ("4K", 4096),
        ("4KB", 4096),
        ("1M", 1024 * 1024),
        ("2GiB", 2 * 1024 * 1024 * 1024),
    ],
)
def test_parse_size(value, expected):
    assert parse_size(value) == expected


@pytest.mark.parametrize("value", ["", "four", "0xZZ", True])
def test_parse_size_rejects_invalid(value):
    with pytest.raises(ValueError):
        parse_size(value)


def test_normalize_protocol_key():
    assert normalize_protocol_key("tl") == "TILELINK"
    assert normalize_protocol_key("AXI4") == "AXI"
    assert normalize_protocol_key("ahb-lite") == "AHB"
    assert normalize_protocol_key("debug") == "DEBUG"


@pytest.mark.parametrize("alias, canonical", [("nasti", "AXI"), ("Hasti", "AHB")])
def test_deprecated_protocol_alias_warns(alias, canonical):
    with pytest.warns(DeprecationWarning, match=f"'{alias.upper()}' is deprecated. Use '{canonical}'"):
        assert normalize_protocol_key(alias) == canonical


def test_indexed_names():
    assert indexed_names("mem_axi", 3) == ["mem_axi_0", "mem_axi_1", "mem_axi_2"]
    assert indexed_names("mem_axi", 0) == []


def test_resolve_callable():
    assert resolve_callable("chiptop.model.config:no_device") is no_device


@pytest.mark.parametrize(
    "path, message",
    [
        ("chiptop.model.config", "expected 'module:attribute'"),
        ("chiptop.model.config:missing", "Cannot load callable"),
        ("chiptop.no_such_module:f", "Cannot load callable"),
        ("chiptop.model.port:DEFAULT_BUS_WIDTH", "does not name a callable"),
    ],
)
def test_resolve_callable_errors(path, message):
    with pytest.raises(ValueError, match=message):
        resolve_callable(path)


def test_filter_none():
    assert filter_none({"a": 1, "b": None, "c": 0}) == {"a": 1, "c": 0}
