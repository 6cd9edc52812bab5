# SPDX-FileCopyrightText: Copyright (c) 2025-2026 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

import dataclasses
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

import yaml

from serving_optimizer.sdk.common import Objective, ServingMode

logger = logging.getLogger(__name__)


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part[:1].upper() + part[1:] for part in rest)


def to_wire(obj: Any) -> Any:
    """Convert dataclasses to camelCase dicts, dropping unset optional fields."""
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        out = {}
        for f in dataclasses.fields(obj):
            value = getattr(obj, f.name)
            if value is None:
                continue
            out[_camel(f.name)] = to_wire(value)
        return out
    if isinstance(obj, (list, tuple)):
        return [to_wire(v) for v in obj]
    if isinstance(obj, Enum):
        return obj.value
    return obj


@dataclass(frozen=True)
class AnalysisRequest:
    """
    A validated analysis request.
    """

    model_id: str
    gpu_type: str
    gpu_count: int
    optimize_for: Objective = Objective.throughput
    max_latency_ms: Optional[float] = None


@dataclass
class SelectedConfig:
    """
    Recommended serving configuration.
    """

    tensor_parallel_degree: int
    max_batch_size: int
    gpu_memory_utilization: float
    max_model_len: int
    pipeline_parallel_degree: Optional[int] = None
    max_num_seqs: Optional[int] = None
    quantization: Optional[str] = None
    # disaggregated only
    prefill_tensor_parallel: Optional[int] = None
    decode_tensor_parallel: Optional[int] = None
    prefill_replicas: Optional[int] = None
    decode_replicas: Optional[int] = None


@dataclass
class EstimatedPerformance:
    throughput_seq_per_sec: float
    latency_p50_ms: float
    latency_p99_ms: float
    tpot_ms: Optional[float] = None
    throughput_tokens_per_sec: Optional[float] = None


@dataclass(frozen=True)
class CandidateSummary:
    """
    One measured candidate on the throughput / TTFT Pareto front.
    """

    mode: ServingMode
    tensor_parallel_degree: int
    gpus_per_replica: int
    throughput_seq_per_sec: float
    ttft_ms: float
    tpot_ms: float


@dataclass
class AnalysisResult:
    success: bool
    mode: ServingMode
    config: SelectedConfig
    replicas: int
    warnings: list[str] = field(default_factory=list)
    estimated_performance: Optional[EstimatedPerformance] = None
    error: Optional[str] = None
    backend: Optional[str] = None
    supported_backends: Optional[list[str]] = None
    # measured results only, ordered by throughput
    pareto_front: Optional[list[CandidateSummary]] = None

    def to_dict(self) -> dict[str, Any]:
        return to_wire(self)


@dataclass(frozen=True)
class ToolAvailability:
    available: bool
    version: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return to_wire(self)


@dataclass(frozen=True)
class DisaggPreference:
    """
    When both topologies have feasible candidates, disaggregated wins only if its
    relative gain over the best aggregated candidate on the primary metric is at
    least min_relative_gain. 0.0 means "not dominated": ties go to disaggregated.
    """

    min_relative_gain: float = 0.0


@dataclass
class OptimizerSettings:
    """
    Optimizer settings.

    The tool_path is resolved by the OS like any other executable name. isl, osl,
    ttft_ms and tpot_ms are forwarded to aiconfigurator experiments; a request's
    max_latency_ms overrides ttft_ms.
    """

    tool_path: str = "aiconfigurator"
    probe_timeout_s: float = 5.0
    invoke_timeout_s: float = 90.0
    isl: int = 4000
    osl: int = 1000
    ttft_ms: float = 2000.0
    tpot_ms: float = 30.0
    # fallback / missing-column defaults
    default_max_batch_size: int = 256
    default_gpu_memory_utilization: float = 0.9
    default_max_model_len: int = 4096
    disagg_preference: DisaggPreference = field(default_factory=DisaggPreference)

    def __post_init__(self):
        if isinstance(self.disagg_preference, dict):
            self.disagg_preference = DisaggPreference(**self.disagg_preference)
        if self.probe_timeout_s <= 0 or self.invoke_timeout_s <= 0:
            raise ValueError("Timeouts must be positive")
        if not 0.0 < self.default_gpu_memory_utilization <= 1.0:
            raise ValueError("default_gpu_memory_utilization must be in (0, 1]")


def load_settings(path: str | None) -> OptimizerSettings:
    """
    Load optimizer settings from a YAML mapping. Missing keys keep their defaults.

    Raises:
        ValueError: if the file root is not a mapping or contains unknown keys
    """
    if path is None:
        return OptimizerSettings()

    with open(path, encoding="utf-8") as fh:
        data = yaml.safe_load(fh) or {}

    if not isinstance(data, dict):
        raise ValueError(f"Settings file '{path}' root must be a mapping.")

    known = {f.name for f in dataclasses.fields(OptimizerSettings)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ValueError(f"Unknown settings in '{path}': {', '.join(unknown)}")

    logger.debug("Loaded settings from %s: %s", path, data)
    return OptimizerSettings(**data)
