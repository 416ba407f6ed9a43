"""Shared utility helpers for chiptop."""

import importlib
import re
import warnings
from typing import Any, Callable, List, Union

_SIZE_SUFFIXES = {
    "K": 1024,
    "M": 1024 * 1024,
    "G": 1024 * 1024 * 1024,
}


def parse_size(value: Union[int, str]) -> int:
    """Parse a size or address like ``4096``, ``"0x1000"``, ``"4K"`` or ``"1M"``.

    Underscores are accepted as digit separators (``"0x4000_0000"``).

    Raises:
        ValueError: If the notation is empty or invalid.
    """
    if isinstance(value, bool):
        raise ValueError(f"Invalid size: {value!r}")
    if isinstance(value, int):
        return value

    clean = str(value).strip().replace("_", "")
    if not clean:
        raise ValueError("Empty size notation")

    match = re.fullmatch(r"(\d+)\s*([KMG])i?B?", clean, re.IGNORECASE)
    if match:
        return int(match.group(1)) * _SIZE_SUFFIXES[match.group(2).upper()]

    try:
        return int(clean, 0)
    except ValueError:
        raise ValueError(f"Invalid size notation: '{value}'") from None


# Alias → canonical protocol key
_PROTOCOL_ALIASES: dict[str, str] = {
    "NASTI": "AXI",
    "AXI4": "AXI",
    "HASTI": "AHB",
    "AHB-LITE": "AHB",
    "AHBLITE": "AHB",
    "TL": "TILELINK",
    "TILE-LINK": "TILELINK",
}

_DEPRECATED_ALIASES = {"NASTI", "HASTI"}


def normalize_protocol_key(raw: str) -> str:
    """Normalize a protocol string to its canonical key (e.g. 'tl' → 'TILELINK')."""
    upper = raw.upper() if isinstance(raw, str) else str(raw).upper()
    canonical = _PROTOCOL_ALIASES.get(upper, upper)
    if upper in _DEPRECATED_ALIASES:
        warnings.warn(
            f"Protocol alias '{upper}' is deprecated. Use '{canonical}' instead.",
            DeprecationWarning,
            stacklevel=2,
        )
    return canonical


def indexed_names(prefix: str, count: int) -> List[str]:
    """Return ``[prefix_0, prefix_1, ...]`` for a port vector."""
    return [f"{prefix}_{i}" for i in range(count)]


def resolve_callable(path: str) -> Callable[..., Any]:
    """Import a callable given as ``"package.module:attribute"``.

    Raises:
        ValueError: If the path is malformed or does not name a callable.
    """
    module_name, sep, attr = path.partition(":")
    if not sep or not module_name or not attr:
        raise ValueError(f"Invalid callable path '{path}': expected 'module:attribute'")
    try:
        target: Any = importlib.import_module(module_name)
        for part in attr.split("."):
            target = getattr(target, part)
    except (ImportError, AttributeError) as e:
        raise ValueError(f"Cannot load callable '{path}': {e}") from None
    if not callable(target):
        raise ValueError(f"'{path}' does not name a callable")
    return target


def filter_none(data: dict) -> dict:
    """Remove keys with None values from a dictionary.

    Passing None explicitly to pydantic fields that have defaults causes
    validation errors; dropping the key lets pydantic use its own default.
    """
    return {k: v for k, v in data.items() if v is not None}
