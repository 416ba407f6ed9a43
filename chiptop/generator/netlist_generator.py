"""
Netlist generation for elaborated topologies.

Renders a frozen ``Topology`` as a structural netlist (one block per module
listing its ports, child instances, connections and tie-offs) and as a YAML
summary of its boundary and instance counts.
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from jinja2 import Environment, FileSystemLoader

from chiptop.model.topology import Connection, Instance, PATH_SEPARATOR, PortRef, TieOff, Topology

logger = logging.getLogger(__name__)


@dataclass
class ModuleView:
    """One module of the topology with everything made inside it."""

    instance: Instance
    children: List[Instance] = field(default_factory=list)
    connections: List[Connection] = field(default_factory=list)
    tie_offs: List[TieOff] = field(default_factory=list)


def _local(ref: PortRef, scope: str) -> str:
    """Name ``ref`` relative to ``scope``: ``io.port`` for the module's own ports."""
    if ref.instance == scope:
        return f"io.{ref.port}"
    prefix = f"{scope}{PATH_SEPARATOR}"
    name = ref.instance[len(prefix):] if ref.instance.startswith(prefix) else ref.instance
    return f"{name}.{ref.port}"


def _params(params: Dict[str, Any]) -> str:
    return "(" + ", ".join(f"{k}={v}" for k, v in params.items()) + ")"


class NetlistGenerator:
    """
    Renders topologies through the Jinja2 templates next to this module.
    """

    def __init__(self, template_dir: Optional[str] = None):
        if template_dir is None:
            template_dir = os.path.join(os.path.dirname(__file__), "templates")

        self.template_dir = template_dir
        self.env = Environment(
            loader=FileSystemLoader(template_dir),
            trim_blocks=True,
            lstrip_blocks=True,
        )
        self.env.filters["local"] = _local
        self.env.filters["params"] = _params

    def modules(self, topology: Topology) -> List[ModuleView]:
        """Group children, connections and tie-offs by enclosing module, parents first."""
        views = {i.name: ModuleView(i) for i in topology.instances if i.is_module}
        for instance in topology.instances:
            if instance.parent in views:
                views[instance.parent].children.append(instance)
        for conn in topology.connections:
            views[conn.scope].connections.append(conn)
        for tie in topology.tie_offs:
            target = topology.get_instance(tie.target.instance)
            scope = tie.target.instance if target.parent is None else target.parent
            views[scope].tie_offs.append(tie)
        return list(views.values())

    def generate_netlist(self, topology: Topology) -> str:
        template = self.env.get_template("netlist.txt.j2")
        return template.render(topology=topology, modules=self.modules(topology))

    def generate_summary(self, topology: Topology) -> str:
        return yaml.dump(topology.summary(), default_flow_style=False, sort_keys=False)

    def generate_all(self, topology: Topology) -> Dict[str, str]:
        """
        Generate every output file for the topology.

        Returns:
            Dictionary mapping filename to content
        """
        return {
            f"{topology.name}.netlist": self.generate_netlist(topology),
            f"{topology.name}_summary.yml": self.generate_summary(topology),
        }

    def write_files(self, topology: Topology, output_dir: Union[str, Path]) -> Dict[str, Path]:
        """
        Generate and write all files to ``output_dir``.

        Returns:
            Dictionary mapping filename to written file path
        """
        output_path = Path(output_dir)
        output_path.mkdir(parents=True, exist_ok=True)

        written = {}
        for filename, content in self.generate_all(topology).items():
            file_path = output_path / filename
            file_path.write_text(content)
            written[filename] = file_path
            logger.info("Wrote %s", file_path)
        return written
