# SPDX-FileCopyrightText: Copyright (c) 2025-2026 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

import argparse
from typing import Any

import pytest

from serving_optimizer.cli.main import configure_parser as configure_cli_parser


@pytest.fixture
def cli_parser():
    """Pre-configured CLI parser for testing."""
    parser = argparse.ArgumentParser()
    configure_cli_parser(parser)
    return parser


@pytest.fixture
def cli_args_factory():
    """Factory to build parsed CLI arguments, analyze command by default."""

    def _factory(*, command: str = "analyze", extra_args: list[str] | None = None, **overrides: Any):
        parser = argparse.ArgumentParser()
        configure_cli_parser(parser)

        base_args: dict[str, Any] = {}
        if command == "analyze":
            base_args.update(
                {
                    "model": "Qwen/Qwen3-32B",
                    "gpu_type": "nvidia-h100-80gb-hbm3",
                    "gpu_count": 4,
                }
            )

        for key, value in overrides.items():
            if key in base_args or value is not None:
                base_args[key] = value

        arg_list: list[str] = [command]

        for key, value in base_args.items():
            option = f"--{key}"
            if isinstance(value, bool):
                if value:
                    arg_list.append(option)
            elif value is None:
                continue
            else:
                arg_list.extend([option, str(value)])

        if extra_args:
            arg_list.extend(extra_args)

        return parser.parse_args(arg_list)

    return _factory


@pytest.fixture
def sample_cli_args(cli_args_factory):
    """Sample analyze arguments for testing."""
    return cli_args_factory()


@pytest.fixture
def settings_yaml_path(tmp_path):
    """Creates a settings YAML file and returns its path."""
    yaml_content = """
tool_path: /opt/aiconfigurator/bin/aiconfigurator
invoke_timeout_s: 45
disagg_preference:
  min_relative_gain: 0.2
"""
    settings_file = tmp_path / "settings.yaml"
    settings_file.write_text(yaml_content)
    return settings_file
