# SPDX-FileCopyrightText: Copyright (c) 2025-2026 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

import argparse
import json
import logging
import sys

import yaml

from serving_optimizer import __version__
from serving_optimizer.cli.report import format_analysis_summary, format_status
from serving_optimizer.sdk import validation
from serving_optimizer.sdk.advisor import ConfigAdvisor
from serving_optimizer.sdk.common import Objective
from serving_optimizer.sdk.config import OptimizerSettings, load_settings
from serving_optimizer.sdk.errors import ValidationError

logger = logging.getLogger(__name__)


def _build_common_cli_parser() -> argparse.ArgumentParser:
    common_parser = argparse.ArgumentParser(add_help=False)
    common_parser.add_argument("--config", type=str, default=None, help="Path to a YAML settings file.")
    common_parser.add_argument(
        "--tool_path", type=str, default=None, help="aiconfigurator executable. Overrides the settings file."
    )
    common_parser.add_argument("--json", action="store_true", help="Print the result as JSON.")
    common_parser.add_argument("--debug", action="store_true", help="Enable debug mode.")
    return common_parser


def _add_analyze_arguments(parser):
    parser.add_argument("--model", type=str, required=True, help="HuggingFace model ID. e.g. Qwen/Qwen3-32B")
    parser.add_argument("--gpu_type", type=str, required=True, help="GPU product, e.g. nvidia-h100-80gb-hbm3.")
    parser.add_argument("--gpu_count", type=int, required=True, help="Number of GPUs available to the model.")
    parser.add_argument(
        "--optimize_for",
        choices=[objective.value for objective in Objective],
        type=str,
        default=Objective.throughput.value,
        help="Optimization objective.",
    )
    parser.add_argument(
        "--max_latency_ms",
        type=float,
        default=None,
        help="Optional time to first token limit in ms. Candidates above it are discarded.",
    )


def configure_parser(parser):
    common_cli_parser = _build_common_cli_parser()
    subparsers = parser.add_subparsers(dest="command", required=True)

    status_parser = subparsers.add_parser(
        "status", parents=[common_cli_parser], help="Check whether aiconfigurator is available."
    )
    status_parser.add_argument("--refresh", action="store_true", help="Ignore the cached probe result.")

    analyze_parser = subparsers.add_parser(
        "analyze", parents=[common_cli_parser], help="Recommend a serving configuration."
    )
    _add_analyze_arguments(analyze_parser)

    normalize_parser = subparsers.add_parser(
        "normalize-gpu", parents=[common_cli_parser], help="Print the canonical id of a GPU product string."
    )
    normalize_parser.add_argument("gpu_product", type=str, help="GPU product string, e.g. NVIDIA-A100-SXM4-80GB")


def _load_settings(args) -> OptimizerSettings:
    try:
        settings = load_settings(args.config)
    except (OSError, ValueError, TypeError, yaml.YAMLError) as exc:
        logger.exception("Error loading settings file '%s'", args.config)
        raise SystemExit(1) from exc
    if args.tool_path:
        settings.tool_path = args.tool_path
    return settings


def _print_json(payload) -> None:
    print(json.dumps(payload, indent=2))


def _run_status(args, advisor: ConfigAdvisor) -> int:
    status = advisor.status(force_refresh=args.refresh)
    if args.json:
        _print_json(status.to_dict())
    else:
        logger.info(format_status(status))
    return 0 if status.available else 1


def _run_analyze(args, advisor: ConfigAdvisor) -> int:
    payload = {
        "modelId": args.model,
        "gpuType": args.gpu_type,
        "gpuCount": args.gpu_count,
        "optimizeFor": args.optimize_for,
        "maxLatencyMs": args.max_latency_ms,
    }
    try:
        request = validation.validate_request(payload)
    except ValidationError:
        request = None

    result = advisor.analyze(payload)
    if args.json:
        _print_json(result.to_dict())
    else:
        logger.info("\n" + format_analysis_summary(request, result))
    return 0 if result.success else 1


def _run_normalize_gpu(args, advisor: ConfigAdvisor) -> int:
    normalized = advisor.normalize_gpu(args.gpu_product)
    if args.json:
        _print_json({"gpuProduct": args.gpu_product, "normalized": normalized})
    else:
        print(normalized)
    return 0


_HANDLERS = {
    "status": _run_status,
    "analyze": _run_analyze,
    "normalize-gpu": _run_normalize_gpu,
}


def main(args, advisor: ConfigAdvisor | None = None) -> None:
    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.INFO,
        format="%(levelname)s %(asctime)s %(filename)s:%(lineno)d] %(message)s",
    )
    logger.debug("serving-optimizer version: %s", __version__)

    handler = _HANDLERS.get(args.command)
    if handler is None:
        raise SystemExit(f"Unsupported command: {args.command}")

    if advisor is None:
        advisor = ConfigAdvisor(_load_settings(args))
    exit_code = handler(args, advisor)
    if exit_code:
        raise SystemExit(exit_code)


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Recommend GPU serving configurations with aiconfigurator.")
    configure_parser(parser)
    main(parser.parse_args(sys.argv[1:]))
