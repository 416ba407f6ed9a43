"""Exceptions raised while loading configuration files."""

from pathlib import Path
from typing import Optional


class ParseError(Exception):
    """A configuration file could not be read or does not validate."""

    def __init__(
        self,
        message: str,
        file_path: Optional[Path] = None,
        line: Optional[int] = None,
        section: Optional[str] = None,
    ):
        self.file_path = file_path
        self.line = line
        self.section = section
        super().__init__(self._format_message(message))

    def _format_message(self, message: str) -> str:
        """Prefix the message with whatever file context is known."""
        parts = []
        if self.file_path:
            parts.append(f"File: {self.file_path}")
        if self.line is not None:
            parts.append(f"Line: {self.line}")
        if self.section:
            parts.append(f"Section: {self.section}")
        parts.append(message)
        return " | ".join(parts)
