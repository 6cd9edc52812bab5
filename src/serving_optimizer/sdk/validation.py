# SPDX-FileCopyrightText: Copyright (c) 2025-2026 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""
Request validation.

Validated model ids later become subprocess arguments, so this module is the only
line of defense against command injection. It performs no I/O.
"""

import math
import re
from collections.abc import Mapping
from typing import Any

from serving_optimizer.sdk.common import Objective
from serving_optimizer.sdk.config import AnalysisRequest
from serving_optimizer.sdk.errors import (
    InvalidGpuCount,
    InvalidGpuType,
    InvalidLatency,
    InvalidModelId,
    InvalidObjective,
    ValidationError,
)

# HuggingFace style ids: model-name or org/model-name
MODEL_ID_PATTERN = re.compile(r"^[A-Za-z0-9_.-]+(/[A-Za-z0-9_.-]+)?$")
MODEL_ID_MAX_LEN = 256

INVALID_MODEL_ID_MESSAGE = "Invalid model ID format. Expected format: org/model-name or model-name"

# wire name -> AnalysisRequest field
_FIELDS = {
    "modelId": "model_id",
    "gpuType": "gpu_type",
    "gpuCount": "gpu_count",
    "optimizeFor": "optimize_for",
    "maxLatencyMs": "max_latency_ms",
}


def validate_model_id(model_id: Any) -> str:
    if not isinstance(model_id, str) or len(model_id) > MODEL_ID_MAX_LEN:
        raise InvalidModelId(INVALID_MODEL_ID_MESSAGE)
    # fullmatch so a trailing newline cannot slip past "$"
    if not MODEL_ID_PATTERN.fullmatch(model_id) or model_id.startswith("-") or ".." in model_id:
        raise InvalidModelId(INVALID_MODEL_ID_MESSAGE)
    return model_id


def validate_gpu_count(gpu_count: Any) -> int:
    if isinstance(gpu_count, bool):
        raise InvalidGpuCount("GPU count must be a positive integer")
    if isinstance(gpu_count, float):
        if not gpu_count.is_integer():
            raise InvalidGpuCount("GPU count must be a positive integer")
        gpu_count = int(gpu_count)
    if not isinstance(gpu_count, int) or gpu_count < 1:
        raise InvalidGpuCount("GPU count must be a positive integer")
    return gpu_count


def validate_gpu_type(gpu_type: Any) -> str:
    if not isinstance(gpu_type, str) or not gpu_type.strip():
        raise InvalidGpuType("GPU type is required")
    return gpu_type


def validate_objective(optimize_for: Any) -> Objective:
    if optimize_for is None:
        return Objective.throughput
    if isinstance(optimize_for, Objective):
        return optimize_for
    try:
        return Objective(optimize_for)
    except ValueError as exc:
        choices = ", ".join(o.value for o in Objective)
        raise InvalidObjective(f"optimizeFor must be one of: {choices}") from exc


def validate_max_latency(max_latency_ms: Any) -> float | None:
    if max_latency_ms is None:
        return None
    if isinstance(max_latency_ms, bool) or not isinstance(max_latency_ms, (int, float)):
        raise InvalidLatency("maxLatencyMs must be a positive number")
    if not math.isfinite(max_latency_ms) or max_latency_ms <= 0:
        raise InvalidLatency("maxLatencyMs must be a positive number")
    return float(max_latency_ms)


def _raw_fields(payload: Any) -> dict[str, Any]:
    if isinstance(payload, AnalysisRequest):
        return {
            "model_id": payload.model_id,
            "gpu_type": payload.gpu_type,
            "gpu_count": payload.gpu_count,
            "optimize_for": payload.optimize_for,
            "max_latency_ms": payload.max_latency_ms,
        }
    if not isinstance(payload, Mapping):
        raise ValidationError("Analysis request must be an object")
    return {_FIELDS.get(key, key): value for key, value in payload.items()}


def validate_request(payload: Mapping[str, Any] | AnalysisRequest) -> AnalysisRequest:
    """
    Validate and type-check an analysis request.

    Args:
        payload: an AnalysisRequest, or a mapping using either the camelCase wire
            names (modelId, gpuCount, ...) or the snake_case field names

    Returns:
        AnalysisRequest: the validated request

    Raises:
        ValidationError: the payload is not a mapping, or one of InvalidModelId,
            InvalidGpuType, InvalidGpuCount, InvalidObjective or InvalidLatency
    """
    raw = _raw_fields(payload)

    # model id first: nothing else matters if it is hostile
    return AnalysisRequest(
        model_id=validate_model_id(raw.get("model_id")),
        gpu_type=validate_gpu_type(raw.get("gpu_type")),
        gpu_count=validate_gpu_count(raw.get("gpu_count")),
        optimize_for=validate_objective(raw.get("optimize_for")),
        max_latency_ms=validate_max_latency(raw.get("max_latency_ms")),
    )


def check_request_shape(payload: Any) -> None:
    """
    Check field presence and types, accepting any non-empty string as model id.

    The model id grammar is left to validate_request, so a malformed id can be
    answered with a fallback result rather than a rejected request.

    Raises:
        ValidationError: a field is missing or has the wrong type or range
    """
    raw = _raw_fields(payload)
    model_id = raw.get("model_id")
    if not isinstance(model_id, str) or not model_id:
        raise InvalidModelId("modelId is required and must be a non-empty string")
    validate_gpu_type(raw.get("gpu_type"))
    validate_gpu_count(raw.get("gpu_count"))
    validate_objective(raw.get("optimize_for"))
    validate_max_latency(raw.get("max_latency_ms"))
