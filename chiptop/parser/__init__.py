"""
YAML parser for chip configurations.
"""

from .config_parser import YamlConfigParser
from .errors import ParseError

__all__ = ["YamlConfigParser", "ParseError"]
