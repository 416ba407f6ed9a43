"""Elaboration errors.

Every failure is raised while the topology is being built and aborts the
whole build. There is nothing to retry: an error always points at a defect
in the configuration or in a caller-supplied builder.
"""

from typing import Optional


class ElaborationError(Exception):
    """Error during topology elaboration."""

    def __init__(self, message: str, location: Optional[str] = None):
        self.location = location
        super().__init__(self._format_message(message))

    def _format_message(self, message: str) -> str:
        """Format error message with location information."""
        if self.location:
            return f"{self.location} | {message}"
        return message


class ConfigurationError(ElaborationError):
    """Configuration parameters contradict each other."""


class PortCountError(ElaborationError):
    """Number of ports offered does not match the number required."""

    def __init__(
        self,
        message: str,
        expected: Optional[int] = None,
        actual: Optional[int] = None,
        location: Optional[str] = None,
    ):
        self.expected = expected
        self.actual = actual
        if expected is not None and actual is not None:
            message = f"{message} (expected {expected}, got {actual})"
        super().__init__(message, location)


class UnconnectedMMIOPortError(PortCountError):
    """An external address-map entry falls outside every MMIO port range."""

    def __init__(self, entry: str, index: int, available: int):
        self.entry = entry
        self.index = index
        super().__init__(
            f"Unconnected external MMIO port '{entry}' at index {index}: "
            f"only {available} external MMIO port(s) configured",
            location=f"address_map:{entry}",
        )


class DevicePortCountError(PortCountError):
    """An extra device was offered a different number of ports than it declares."""


class UnconnectedPortError(PortCountError):
    """A port was left unconnected when the topology was frozen."""


class ProtocolMismatchError(ElaborationError):
    """Two ports cannot be connected to each other."""
