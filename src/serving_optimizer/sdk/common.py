# SPDX-FileCopyrightText: Copyright (c) 2025-2026 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

from enum import Enum


class Objective(Enum):
    """
    Optimization objective for candidate selection.
    """

    throughput = "throughput"
    latency = "latency"


class ServingMode(Enum):
    """
    Serving topology.
    """

    aggregated = "aggregated"
    disaggregated = "disaggregated"

    @property
    def tool_name(self) -> str:
        """Experiment / serving_mode name understood by aiconfigurator."""
        return "agg" if self is ServingMode.aggregated else "disagg"


class BackendName(Enum):
    """
    Backend name for inference.
    """

    trtllm = "trtllm"
    sglang = "sglang"
    vllm = "vllm"


# preferred first
BackendPreference = [BackendName.vllm, BackendName.sglang, BackendName.trtllm]

"""
Tool system names per GPU, and the backends aiconfigurator has silicon data for.
"""
SupportedSystems = {
    "h100_sxm": [BackendName.vllm, BackendName.sglang, BackendName.trtllm],
    "h200_sxm": [BackendName.trtllm],
    "a100_sxm": [BackendName.trtllm],
    "l40s": [BackendName.trtllm],
    "b200_sxm": [BackendName.trtllm],
    "gb200": [BackendName.trtllm],
    "gb300": [BackendName.trtllm],
}

"""
Name of the per-experiment csv written by `aiconfigurator cli exp --save_dir`
"""
BEST_CONFIG_CSV = "best_config_topn.csv"

"""
Header aliases for the aggregated candidate table, first match wins.
Keys are candidate field names.
"""
ColumnsAgg = {
    "tensor_parallel": ["tp"],
    "pipeline_parallel": ["pp"],
    "worker_count": ["workers", "replicas"],
    "batch_size": ["bs", "global_bs"],
    "gpu_mem_util": ["gpu_util", "free_gpu_memory_fraction"],
    "context_len": ["context", "max_model_len"],
    "throughput_seq_per_sec": ["seq/s"],
    "ttft_ms": ["ttft"],
    "tpot_ms": ["tpot"],
    "concurrency": ["concurrency"],
    "tokens_per_sec": ["tokens/s"],
    "quantization": ["gemm"],
    "backend": ["backend"],
    "system": ["system"],
}

"""
Header aliases for the disaggregated candidate table. (p) is prefill, (d) is decode.
"""
ColumnsDisagg = {
    "prefill_tp": ["(p)tp"],
    "prefill_pp": ["(p)pp"],
    "prefill_workers": ["(p)workers"],
    "decode_tp": ["(d)tp"],
    "decode_pp": ["(d)pp"],
    "decode_workers": ["(d)workers"],
    "batch_size": ["(d)bs", "(d)global_bs", "bs"],
    "gpu_mem_util": ["gpu_util", "free_gpu_memory_fraction"],
    "context_len": ["context", "max_model_len"],
    "throughput_seq_per_sec": ["seq/s"],
    "ttft_ms": ["ttft"],
    "tpot_ms": ["tpot"],
    "concurrency": ["concurrency"],
    "tokens_per_sec": ["tokens/s"],
    "quantization": ["(d)gemm", "gemm"],
    "backend": ["(d)backend", "backend"],
    "system": ["(d)system", "system"],
}

"""
Parallel-layout columns ("tp2pp1", "tp1pp1dp1etp1ep1") used when an explicit tp column is missing.
"""
ParallelColumns = {
    "tensor_parallel": "parallel",
    "prefill_tp": "(p)parallel",
    "decode_tp": "(d)parallel",
}

# p99 latency is not reported by the tool; estimated from ttft
P99_LATENCY_FACTOR = 1.5

"""
aiconfigurator GEMM quant modes to serving quantization names
"""
QuantizationNames = {
    "float16": "fp16",
    "bfloat16": "fp16",
    "fp8": "fp8",
    "fp8_block": "fp8",
    "fp8_ootb": "fp8",
    "int8_wo": "int8",
    "int4_wo": "int4",
}
