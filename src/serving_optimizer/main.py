# SPDX-FileCopyrightText: Copyright (c) 2025-2026 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

import argparse
import sys

from serving_optimizer import __version__
from serving_optimizer.api.app import configure_parser as configure_serve_parser
from serving_optimizer.api.app import main as serve_main
from serving_optimizer.cli.main import configure_parser as configure_cli_parser
from serving_optimizer.cli.main import main as cli_main

CLI_COMMANDS = {
    "status": "Check whether aiconfigurator is available",
    "analyze": "Recommend a serving configuration for a model and GPU allocation",
    "normalize-gpu": "Normalize a GPU product string",
}


def _run_cli(command: str, extra_args: list[str]) -> None:
    cli_parser = argparse.ArgumentParser(prog="serving-optimizer", description="GPU serving configuration optimizer.")
    configure_cli_parser(cli_parser)
    cli_args = cli_parser.parse_args([command, *extra_args])
    cli_main(cli_args)


def _run_serve(extra_args: list[str]) -> None:
    serve_parser = argparse.ArgumentParser(prog="serving-optimizer serve", description="Run the HTTP API")
    configure_serve_parser(serve_parser)
    serve_args = serve_parser.parse_args(extra_args)
    serve_main(serve_args)


def _show_version(extra_args: list[str]) -> None:
    print(f"serving-optimizer {__version__}")


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(prog="serving-optimizer", description="GPU serving configuration optimizer.")
    subparsers = parser.add_subparsers(dest="command", help="Command to run", required=True)

    for command, help_text in CLI_COMMANDS.items():
        command_parser = subparsers.add_parser(command, help=help_text, add_help=False)
        command_parser.set_defaults(handler=lambda extras, command=command: _run_cli(command, extras))

    serve_parser = subparsers.add_parser("serve", help="Run the HTTP API", add_help=False)
    serve_parser.set_defaults(handler=_run_serve)

    version_parser = subparsers.add_parser("version", help="Show version information", add_help=False)
    version_parser.set_defaults(handler=_show_version)

    args, extras = parser.parse_known_args(argv)

    # extras contains the arguments for the selected sub-command
    handler = getattr(args, "handler", None)
    if handler is None:
        parser.error("No sub-command handler registered.")
    handler(extras)


if __name__ == "__main__":
    main(sys.argv[1:])
