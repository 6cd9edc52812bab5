# SPDX-FileCopyrightText: Copyright (c) 2025-2026 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

from prettytable import PrettyTable

from serving_optimizer.sdk.common import ServingMode
from serving_optimizer.sdk.config import AnalysisRequest, AnalysisResult, ToolAvailability


def _config_table(result: AnalysisResult) -> str:
    config = result.config
    table = PrettyTable()
    table.field_names = ["Setting", "Value"]
    table.align["Setting"] = "l"
    table.align["Value"] = "r"
    table.add_row(["mode", result.mode.value])
    table.add_row(["replicas", result.replicas])
    table.add_row(["tensor parallel", config.tensor_parallel_degree])
    if config.pipeline_parallel_degree is not None:
        table.add_row(["pipeline parallel", config.pipeline_parallel_degree])
    if result.mode is ServingMode.disaggregated:
        table.add_row(["(p)tp x (p)workers", f"{config.prefill_tensor_parallel} x {config.prefill_replicas}"])
        table.add_row(["(d)tp x (d)workers", f"{config.decode_tensor_parallel} x {config.decode_replicas}"])
    table.add_row(["max batch size", config.max_batch_size])
    if config.max_num_seqs is not None:
        table.add_row(["max num seqs", config.max_num_seqs])
    table.add_row(["gpu memory utilization", f"{config.gpu_memory_utilization:.2f}"])
    table.add_row(["max model len", config.max_model_len])
    if config.quantization:
        table.add_row(["quantization", config.quantization])
    return table.get_string()


def _pareto_table(result: AnalysisResult) -> str:
    table = PrettyTable()
    table.field_names = ["mode", "tp", "gpus/replica", "seq/s", "ttft (ms)", "tpot (ms)"]
    for point in result.pareto_front or []:
        table.add_row(
            [
                point.mode.value,
                point.tensor_parallel_degree,
                point.gpus_per_replica,
                f"{point.throughput_seq_per_sec:.2f}",
                f"{point.ttft_ms:.2f}",
                f"{point.tpot_ms:.2f}",
            ]
        )
    return table.get_string()


def format_analysis_summary(request: AnalysisRequest | None, result: AnalysisResult) -> str:
    """Format an analysis result as a summary box."""
    summary_box = []
    summary_box.append("*" * 80)
    summary_box.append("*{:^78}*".format(" serving-optimizer Recommendation "))
    summary_box.append("*" * 80)

    summary_box.append("  " + "-" * 76)
    summary_box.append("  Input:")
    if request is not None:
        summary_box.append(f"    Model: {request.model_id}")
        summary_box.append(f"    GPUs: {request.gpu_count} x {request.gpu_type}")
        objective = f"    Optimize for: {request.optimize_for.value}"
        if request.max_latency_ms is not None:
            objective += f" (max TTFT {request.max_latency_ms:g}ms)"
        summary_box.append(objective)
    if result.backend:
        summary_box.append(f"    Backend: {result.backend} (supported: {', '.join(result.supported_backends or [])})")
    source = "\033[1mmeasured by AI Configurator\033[0m" if result.success else "\033[1mheuristic fallback\033[0m"
    summary_box.append(f"    Result: {source}")
    if result.error:
        summary_box.append(f"    Error: {result.error}")
    summary_box.append("  " + "-" * 76)

    summary_box.append("  Recommended Configuration:")
    summary_box.append(_config_table(result))
    summary_box.append("  " + "-" * 76)

    perf = result.estimated_performance
    if perf is not None:
        summary_box.append("  Estimated Performance:")
        summary_box.append(f"    - Throughput: {perf.throughput_seq_per_sec:,.2f} seq/s")
        if perf.throughput_tokens_per_sec is not None:
            summary_box.append(f"    - Token Throughput: {perf.throughput_tokens_per_sec:,.2f} tokens/s")
        summary_box.append(f"    - TTFT p50: {perf.latency_p50_ms:.2f}ms, p99 (est.): {perf.latency_p99_ms:.2f}ms")
        if perf.tpot_ms is not None:
            summary_box.append(f"    - TPOT: {perf.tpot_ms:.2f}ms")
        summary_box.append("  " + "-" * 76)

    if result.pareto_front:
        summary_box.append("  Pareto Front (seq/s vs TTFT):")
        summary_box.append(_pareto_table(result))
        summary_box.append("  " + "-" * 76)

    if result.warnings:
        summary_box.append("  Warnings:")
        for warning in result.warnings:
            summary_box.append(f"    - {warning}")
        summary_box.append("  " + "-" * 76)

    summary_box.append("*" * 80)
    return "\n".join(summary_box)


def format_status(status: ToolAvailability) -> str:
    if status.available:
        return f"AI Configurator available, version {status.version}"
    return f"AI Configurator unavailable: {status.error}"
