"""Command line: server probes and config file tools."""

from __future__ import annotations

import argparse
import logging
import sys
from collections.abc import Sequence

from dnsrules.config_tools import convert_config, generate_config, supported_extensions
from dnsrules.probe import probe_connection_reuse, probe_idle_timeout, probe_pipeline

logger = logging.getLogger("dnsrules")


def _help_handler(parser: argparse.ArgumentParser):
    def show(_args: argparse.Namespace) -> None:
        parser.print_help()

    return show


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser with its ``probe`` and ``config`` commands."""
    parser = argparse.ArgumentParser(prog="dnsrules")
    parser.set_defaults(handler=_help_handler(parser))
    commands = parser.add_subparsers(title="commands", metavar="COMMAND")

    probe = commands.add_parser("probe", help="Run some server tests.")
    probe.set_defaults(handler=_help_handler(probe))
    probes = probe.add_subparsers(title="probes", metavar="PROBE")
    probe_specs = [
        (
            "conn-reuse",
            "Check whether this server supports RFC 1035 connection reuse.",
            probe_connection_reuse,
        ),
        ("idle-timeout", "Probe server's idle timeout.", probe_idle_timeout),
        (
            "pipeline",
            "Check whether this server supports RFC 7766 query pipelining.",
            probe_pipeline,
        ),
    ]
    for name, summary, func in probe_specs:
        sub = probes.add_parser(name, help=summary, description=summary)
        sub.add_argument("addr", metavar="{tcp|tls}://server_addr[:port]")
        sub.set_defaults(handler=lambda args, func=func: func(args.addr))

    exts = ", ".join(supported_extensions())
    config = commands.add_parser(
        "config", help="Tools that can generate/convert config files."
    )
    config.set_defaults(handler=_help_handler(config))
    tools = config.add_subparsers(title="tools", metavar="TOOL")

    gen_help = f"Generate a template config. Supported extensions: {exts}"
    gen = tools.add_parser("gen", help=gen_help, description=gen_help)
    gen.add_argument("config_file")
    gen.set_defaults(handler=lambda args: generate_config(args.config_file))

    conv_help = f"Convert configuration file format. Supported extensions: {exts}"
    conv = tools.add_parser("conv", help=conv_help, description=conv_help)
    conv.add_argument("-i", "--in", dest="src", required=True, help="input config")
    conv.add_argument("-o", "--out", dest="dst", required=True, help="output config")
    conv.set_defaults(handler=lambda args: convert_config(args.src, args.dst))

    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """Run the command line; return the exit status."""
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(message)s")
    args = build_parser().parse_args(argv)
    try:
        args.handler(args)
    except Exception as exc:  # noqa: BLE001 - any failure ends the command
        logger.critical("%s", exc)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())