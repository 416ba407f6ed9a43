#!/usr/bin/env python3
"""
chiptop - chip top-level interconnect elaboration tool.

Usage:
    python scripts/chiptop.py elaborate chip.yml --output ./build
    python scripts/chiptop.py elaborate chip.yml --json --progress
    python scripts/chiptop.py summary chip.yml
    python scripts/chiptop.py decode chip.yml 0x60001000

Subcommands:
    elaborate   Elaborate the configuration and write the netlist and summary
    summary     Print the boundary and instance summary of the elaborated chip
    decode      Decode an address against the configured address map
"""
import argparse
import json
import logging
import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

import yaml

from chiptop.generator.netlist_generator import NetlistGenerator
from chiptop.parser import YamlConfigParser
from chiptop.top import elaborate
from chiptop.utils import parse_size


def log(msg: str, use_progress: bool, use_json: bool):
    """Output progress message if enabled."""
    if use_progress and use_json:
        print(f"PROGRESS: {msg}", flush=True)
    elif use_progress:
        print(msg)


def fail(e: Exception, use_json: bool):
    if use_json:
        print(json.dumps({"success": False, "error": str(e)}))
    else:
        print(f"Error: {e}")
    sys.exit(1)


def load(path: str):
    """Parse ``path``; returns the chip name and its configuration."""
    parser = YamlConfigParser()
    config = parser.parse_file(path)
    return parser.name or Path(path).stem.split(".")[0], config


def cmd_elaborate(args):
    """Elaborate a configuration and write its netlist and summary."""
    output_dir = args.output or str(Path(args.input).parent)

    try:
        log("Parsing configuration YAML...", args.progress, args.json)
        name, config = load(args.input)

        log(f"Elaborating '{name}'...", args.progress, args.json)
        topology = elaborate(config, name)

        log("Writing netlist...", args.progress, args.json)
        written = NetlistGenerator().write_files(topology, output_dir)
        for filename in written:
            log(f"  Written: {filename}", args.progress, args.json)

        log("Elaboration complete!", args.progress, args.json)

        if args.json:
            print(
                json.dumps(
                    {
                        "success": True,
                        "files": {k: str(v) for k, v in written.items()},
                        "count": len(written),
                        "summary": topology.summary(),
                    }
                )
            )
        else:
            summary = topology.summary()
            print(f"\n✓ Elaborated '{name}' into: {output_dir}")
            print(f"  {len(topology.boundary_ports)} boundary ports")
            print(f"  {sum(summary['instances'].values())} instances")
            print(f"  {summary['connections']} connections, {summary['tieOffs']} tie-offs")

    except Exception as e:
        fail(e, args.json)


def cmd_summary(args):
    """Print the summary of an elaborated configuration."""
    try:
        name, config = load(args.input)
        summary = elaborate(config, name).summary()
        if args.json:
            print(json.dumps({"success": True, "summary": summary}))
        else:
            print(yaml.dump(summary, default_flow_style=False, sort_keys=False), end="")
    except Exception as e:
        fail(e, args.json)


def cmd_decode(args):
    """Decode an address against the configured address map."""
    try:
        _, config = load(args.input)
        address = parse_size(args.address)
        entry = config.address_map.decode(address)
        if args.json:
            print(json.dumps({"success": True, "address": address, "entry": entry}))
        else:
            print(f"{hex(address)} -> {entry}")
    except KeyError as e:
        fail(ValueError(e.args[0]), args.json)
    except Exception as e:
        fail(e, args.json)


def main():
    parser = argparse.ArgumentParser(
        prog="chiptop", description="Chip top-level interconnect elaboration tool"
    )
    parser.add_argument("--verbose", "-v", action="count", default=0, help="Log more (-vv: debug)")
    subparsers = parser.add_subparsers(dest="command", required=True)

    # elaborate subcommand
    elab_parser = subparsers.add_parser("elaborate", help="Elaborate and write the netlist")
    elab_parser.add_argument("input", help="Configuration YAML file")
    elab_parser.add_argument("--output", "-o", help="Output directory (default: same as input)")
    elab_parser.add_argument("--json", action="store_true", help="JSON output")
    elab_parser.add_argument("--progress", action="store_true", help="Enable progress output")
    elab_parser.set_defaults(func=cmd_elaborate)

    # summary subcommand
    summary_parser = subparsers.add_parser("summary", help="Print the elaborated chip summary")
    summary_parser.add_argument("input", help="Configuration YAML file")
    summary_parser.add_argument("--json", action="store_true", help="JSON output")
    summary_parser.set_defaults(func=cmd_summary)

    # decode subcommand
    decode_parser = subparsers.add_parser("decode", help="Decode an address")
    decode_parser.add_argument("input", help="Configuration YAML file")
    decode_parser.add_argument("address", help="Address, e.g. 0x60001000")
    decode_parser.add_argument("--json", action="store_true", help="JSON output")
    decode_parser.set_defaults(func=cmd_decode)

    args = parser.parse_args()
    level = {0: logging.WARNING, 1: logging.INFO}.get(args.verbose, logging.DEBUG)
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")
    args.func(args)


if __name__ == "__main__":
    main()
