# SPDX-FileCopyrightText: Copyright (c) 2025-2026 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""
GPU product normalization.

Node labels and user input name the same GPU in many ways
("nvidia-a100-sxm4-80gb", "NVIDIA-A100-80GB-PCIe", "A100 80GB"). They are reduced
to a canonical id such as A100-80GB, which is then mapped to an aiconfigurator
system name. Unknown GPUs are not an error here; the advisor falls back on them.
"""

import logging
import re

from serving_optimizer.sdk.common import BackendName, BackendPreference, SupportedSystems

logger = logging.getLogger(__name__)

VENDOR_TOKENS = {"nvidia", "tesla", "geforce"}
FORM_FACTOR_PATTERN = re.compile(r"^(sxm\d*|pcie\d*|nvl)$")
MEMORY_PATTERN = re.compile(r"^(\d+)gb$")

"""
Families sold with more than one memory size keep the size in their canonical id.
"""
MEMORY_VARIANT_FAMILIES = {"A100", "H100", "V100"}

"""
Canonical GPU id -> aiconfigurator system name
"""
GPU_SYSTEM_MAP = {
    "H100": "h100_sxm",
    "H100-80GB": "h100_sxm",
    "H200": "h200_sxm",
    "A100": "a100_sxm",
    "A100-80GB": "a100_sxm",
    "A100-40GB": "a100_sxm",
    "B200": "b200_sxm",
    "GB200": "gb200",
    "GB300": "gb300",
    "L40S": "l40s",
    "L40": "l40s",
}


def _tokens(raw: str) -> list[str]:
    tokens: list[str] = []
    for token in re.split(r"[^a-z0-9.]+", raw.strip().lower()):
        if not token:
            continue
        # "80 GB" -> "80gb"
        if token == "gb" and tokens and tokens[-1].isdigit():
            tokens[-1] += token
            continue
        tokens.append(token)
    return tokens


def normalize_gpu_type(raw: str) -> str:
    """
    Normalize a GPU product string to its canonical id.

    Pure and total; normalize_gpu_type(normalize_gpu_type(x)) == normalize_gpu_type(x).

    Examples:
        nvidia-a100-sxm4-80gb -> A100-80GB
        NVIDIA-H100-80GB-HBM3 -> H100-80GB
        nvidia-l40s -> L40S
        tesla-t4 -> T4
    """
    tokens = _tokens(raw or "")
    if not tokens:
        return ""

    family_tokens: list[str] = []
    memory: str | None = None
    for token in tokens:
        if token in VENDOR_TOKENS or FORM_FACTOR_PATTERN.match(token) or token.startswith("hbm"):
            continue
        # a unit with no size in front of it
        if token == "gb":
            continue
        mem_match = MEMORY_PATTERN.match(token)
        if mem_match:
            memory = memory or mem_match.group(1)
            continue
        family_tokens.append(token)

    if not family_tokens:
        # nothing recognizable, keep a cleaned form so the result is still stable
        return "-".join(tokens).upper()

    family = "-".join(family_tokens).upper()
    if memory and family in MEMORY_VARIANT_FAMILIES:
        return f"{family}-{memory}GB"
    return family


def system_for_gpu(gpu_type: str) -> str | None:
    """
    Map a GPU (canonical id or raw product string) to an aiconfigurator system name.

    Returns None for GPUs the tool has no data for.
    """
    canonical = normalize_gpu_type(gpu_type)
    system = GPU_SYSTEM_MAP.get(canonical)
    if system is None:
        logger.warning("No aiconfigurator system for GPU type %s (normalized: %s)", gpu_type, canonical)
    return system


def supported_backends(system: str) -> list[BackendName]:
    return list(SupportedSystems.get(system, []))


def best_backend(system: str) -> BackendName | None:
    """Pick the preferred backend the tool has silicon data for on this system."""
    available = supported_backends(system)
    for backend in BackendPreference:
        if backend in available:
            return backend
    return None
