# SPDX-FileCopyrightText: Copyright (c) 2025-2026 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""
Heuristic serving defaults used whenever no measured candidate is available.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from serving_optimizer.sdk.common import Objective, ServingMode
from serving_optimizer.sdk.config import OptimizerSettings, SelectedConfig

logger = logging.getLogger(__name__)

HEURISTIC_WARNING = "Using heuristic default configuration; performance was not measured by AI Configurator"


@dataclass
class FallbackPlan:
    config: SelectedConfig
    mode: ServingMode
    replicas: int
    warnings: list[str] = field(default_factory=list)


def largest_power_of_two(n: int) -> int:
    """Largest power of two <= n, for n >= 1."""
    return 1 << (max(n, 1).bit_length() - 1)


def default_config(
    gpu_count: int,
    objective: Objective = Objective.throughput,
    reason: Optional[str] = None,
    settings: Optional[OptimizerSettings] = None,
) -> FallbackPlan:
    """
    Conservative config for gpu_count GPUs. Never fails; gpu_count < 1 is treated as 1.

    Latency on two or more GPUs splits them into one prefill and one decode
    worker of equal size. Everything else is aggregated with as many replicas of
    the largest power-of-two tp as fit.
    """
    settings = settings or OptimizerSettings()
    gpu_count = max(gpu_count, 1)

    warnings = []
    if reason:
        warnings.append(reason)
    warnings.append(HEURISTIC_WARNING)

    if objective is Objective.latency and gpu_count >= 2:
        half_tp = largest_power_of_two(gpu_count // 2)
        config = SelectedConfig(
            tensor_parallel_degree=half_tp,
            max_batch_size=settings.default_max_batch_size,
            gpu_memory_utilization=settings.default_gpu_memory_utilization,
            max_model_len=settings.default_max_model_len,
            prefill_tensor_parallel=half_tp,
            decode_tensor_parallel=half_tp,
            prefill_replicas=1,
            decode_replicas=1,
        )
        mode, replicas = ServingMode.disaggregated, 1
    else:
        tp = largest_power_of_two(gpu_count)
        config = SelectedConfig(
            tensor_parallel_degree=tp,
            max_batch_size=settings.default_max_batch_size,
            gpu_memory_utilization=settings.default_gpu_memory_utilization,
            max_model_len=settings.default_max_model_len,
        )
        mode, replicas = ServingMode.aggregated, max(1, gpu_count // tp)

    logger.info(
        "Fallback config for %d GPU(s), %s: mode=%s tp=%d replicas=%d",
        gpu_count,
        objective.value,
        mode.value,
        config.tensor_parallel_degree,
        replicas,
    )
    return FallbackPlan(config=config, mode=mode, replicas=replicas, warnings=warnings)
