# SPDX-FileCopyrightText: Copyright (c) 2025-2026 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""
Unit tests for request validation.

Model ids end up in subprocess arguments, so the rejection cases matter most.
"""

import pytest

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
from serving_optimizer.sdk.validation import (
    check_request_shape,
    validate_gpu_count,
    validate_model_id,
    validate_request,
)


class TestModelId:
    """Test model id grammar."""

    @pytest.mark.parametrize(
        "model_id",
        [
            "Qwen/Qwen3-32B",
            "meta-llama/Llama-3.1-8B-Instruct",
            "gpt2",
            "deepseek-ai/DeepSeek-V3",
            "org_name/model.v2",
        ],
    )
    def test_accepts_hf_ids(self, model_id):
        assert validate_model_id(model_id) == model_id

    @pytest.mark.parametrize(
        "model_id",
        [
            "malicious; rm -rf /",
            "model && echo pwned",
            "model | cat /etc/passwd",
            "$(whoami)",
            "`id`",
            "model name",
            "a/b/c",
            "/model",
            "org/",
            "",
            "model\n",
            "--help",
            "../etc/passwd",
            "model(1)",
        ],
    )
    def test_rejects_injection_and_malformed_ids(self, model_id):
        with pytest.raises(InvalidModelId, match="Invalid model ID format"):
            validate_model_id(model_id)

    def test_rejects_non_string(self):
        with pytest.raises(InvalidModelId):
            validate_model_id(42)

    def test_rejects_overlong_id(self):
        with pytest.raises(InvalidModelId):
            validate_model_id("a" * 300)


class TestGpuCount:
    """Test gpu count type checks."""

    @pytest.mark.parametrize("value,expected", [(1, 1), (8, 8), (4.0, 4)])
    def test_accepts_positive_integers(self, value, expected):
        assert validate_gpu_count(value) == expected

    @pytest.mark.parametrize("value", [0, -1, 2.5, True, False, "4", None])
    def test_rejects_invalid_values(self, value):
        with pytest.raises(InvalidGpuCount):
            validate_gpu_count(value)


class TestValidateRequest:
    """Test full request validation."""

    def test_camel_case_payload(self):
        request = validate_request(
            {
                "modelId": "Qwen/Qwen3-32B",
                "gpuType": "H100",
                "gpuCount": 8,
                "optimizeFor": "latency",
                "maxLatencyMs": 500,
            }
        )

        assert request == AnalysisRequest(
            model_id="Qwen/Qwen3-32B",
            gpu_type="H100",
            gpu_count=8,
            optimize_for=Objective.latency,
            max_latency_ms=500.0,
        )

    def test_snake_case_payload_and_defaults(self):
        request = validate_request({"model_id": "gpt2", "gpu_type": "A100", "gpu_count": 1})

        assert request.optimize_for is Objective.throughput
        assert request.max_latency_ms is None

    def test_accepts_request_instance(self):
        original = AnalysisRequest(model_id="gpt2", gpu_type="L40S", gpu_count=2)
        assert validate_request(original) == original

    def test_model_id_checked_first(self):
        """A hostile model id is reported even when other fields are also wrong."""
        with pytest.raises(InvalidModelId):
            validate_request({"modelId": "x; reboot", "gpuType": "", "gpuCount": 0})

    @pytest.mark.parametrize(
        "overrides,error",
        [
            ({"gpuType": ""}, InvalidGpuType),
            ({"gpuType": None}, InvalidGpuType),
            ({"gpuCount": 0}, InvalidGpuCount),
            ({"optimizeFor": "cost"}, InvalidObjective),
            ({"maxLatencyMs": -5}, InvalidLatency),
            ({"maxLatencyMs": float("inf")}, InvalidLatency),
            ({"maxLatencyMs": "100"}, InvalidLatency),
        ],
    )
    def test_field_errors(self, valid_request, overrides, error):
        payload = {**valid_request, **overrides}
        with pytest.raises(error):
            validate_request(payload)

    def test_errors_share_base_class(self):
        for error in (InvalidModelId, InvalidGpuCount, InvalidGpuType, InvalidObjective, InvalidLatency):
            assert issubclass(error, ValidationError)

    @pytest.mark.parametrize("payload", [None, "modelId=gpt2", ["gpt2"], 42])
    def test_rejects_non_mapping(self, payload):
        with pytest.raises(ValidationError, match="must be an object"):
            validate_request(payload)


class TestCheckRequestShape:
    """Test the field checks that leave the model id grammar alone."""

    def test_malformed_model_id_passes(self, valid_request):
        check_request_shape({**valid_request, "modelId": "x; reboot"})

    @pytest.mark.parametrize("model_id", [None, "", 7])
    def test_model_id_must_be_a_string(self, valid_request, model_id):
        with pytest.raises(InvalidModelId, match="required"):
            check_request_shape({**valid_request, "modelId": model_id})

    @pytest.mark.parametrize(
        "overrides,error",
        [
            ({"gpuType": ""}, InvalidGpuType),
            ({"gpuCount": 0}, InvalidGpuCount),
            ({"optimizeFor": "cost"}, InvalidObjective),
            ({"maxLatencyMs": -5}, InvalidLatency),
        ],
    )
    def test_other_fields_are_checked(self, valid_request, overrides, error):
        with pytest.raises(error):
            check_request_shape({**valid_request, "modelId": "x; reboot", **overrides})

    def test_rejects_non_mapping(self):
        with pytest.raises(ValidationError):
            check_request_shape(None)
