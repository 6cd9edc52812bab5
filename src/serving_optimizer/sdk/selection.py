# SPDX-FileCopyrightText: Copyright (c) 2025-2026 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field

import numpy as np
import pandas as pd

from serving_optimizer.sdk.candidates import AggregatedCandidate, Candidate
from serving_optimizer.sdk.common import P99_LATENCY_FACTOR, Objective, ServingMode
from serving_optimizer.sdk.config import (
    CandidateSummary,
    DisaggPreference,
    EstimatedPerformance,
    OptimizerSettings,
    SelectedConfig,
)
from serving_optimizer.sdk.errors import NoFeasibleCandidate

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Selection:
    """
    The winning candidate and the Pareto front of the feasible candidates it was chosen from.
    """

    candidate: Candidate
    feasible_count: int
    pareto_front: list[Candidate] = field(default_factory=list)

    @property
    def mode(self) -> ServingMode:
        return self.candidate.mode


def is_feasible(candidate: Candidate, gpu_count: int, max_latency_ms: float | None = None) -> bool:
    if candidate.gpus_per_replica > gpu_count:
        return False
    if max_latency_ms is not None and candidate.ttft_ms > max_latency_ms:
        return False
    return True


def _to_frame(candidates: list[Candidate]) -> pd.DataFrame:
    return pd.DataFrame(
        {
            "seq/s": [c.throughput_seq_per_sec for c in candidates],
            "ttft": [c.ttft_ms for c in candidates],
            "tpot": [c.tpot_ms for c in candidates],
            "tp": [c.tensor_parallel for c in candidates],
        }
    )


def rank_candidates(candidates: list[Candidate], objective: Objective) -> list[Candidate]:
    """
    Order candidates best first.

    throughput: highest seq/s, then lowest ttft, then lowest tp.
    latency: lowest ttft, then lowest tpot, then highest seq/s.
    Remaining ties keep input order.
    """
    if not candidates:
        return []
    df = _to_frame(candidates)
    if objective is Objective.throughput:
        df = df.sort_values(by=["seq/s", "ttft", "tp"], ascending=[False, True, True], kind="mergesort")
    else:
        df = df.sort_values(by=["ttft", "tpot", "seq/s"], ascending=[True, True, False], kind="mergesort")
    return [candidates[i] for i in df.index]


def _relative_gain(disagg: Candidate, agg: Candidate, objective: Objective) -> float:
    if objective is Objective.throughput:
        return (disagg.throughput_seq_per_sec - agg.throughput_seq_per_sec) / agg.throughput_seq_per_sec
    return (agg.ttft_ms - disagg.ttft_ms) / agg.ttft_ms


def select_candidate(
    rows: Iterable[Candidate],
    objective: Objective,
    gpu_count: int,
    max_latency_ms: float | None = None,
    preference: DisaggPreference = DisaggPreference(),
) -> Selection:
    """
    Pick the best feasible candidate under the objective.

    Candidates of both modes may be mixed in rows. When both modes have a feasible
    candidate, disaggregated wins only if its relative gain on the primary metric
    (seq/s for throughput, ttft for latency) reaches preference.min_relative_gain.

    Raises:
        NoFeasibleCandidate: nothing fits in gpu_count GPUs within max_latency_ms
    """
    rows = list(rows)
    feasible = [c for c in rows if is_feasible(c, gpu_count, max_latency_ms)]
    logger.debug("%d of %d candidates are feasible on %d GPU(s)", len(feasible), len(rows), gpu_count)
    if not feasible:
        constraint = f" within {max_latency_ms:g} ms TTFT" if max_latency_ms is not None else ""
        raise NoFeasibleCandidate(
            f"None of {len(rows)} candidate configurations fits on {gpu_count} GPU(s){constraint}"
        )

    best_per_mode: dict[ServingMode, Candidate] = {}
    for mode in ServingMode:
        ranked = rank_candidates([c for c in feasible if c.mode is mode], objective)
        if ranked:
            best_per_mode[mode] = ranked[0]

    agg = best_per_mode.get(ServingMode.aggregated)
    disagg = best_per_mode.get(ServingMode.disaggregated)
    if agg is not None and disagg is not None:
        gain = _relative_gain(disagg, agg, objective)
        winner = disagg if gain >= preference.min_relative_gain else agg
        logger.info(
            "Disaggregated relative gain over aggregated on %s: %.3f (threshold %.3f), choosing %s",
            objective.value,
            gain,
            preference.min_relative_gain,
            winner.mode.value,
        )
    else:
        winner = agg if agg is not None else disagg

    return Selection(candidate=winner, feasible_count=len(feasible), pareto_front=get_pareto_front(feasible))


def replicas_for(candidate: Candidate, gpu_count: int) -> int:
    """Number of replicas of the candidate that fit in gpu_count GPUs."""
    fit = max(1, gpu_count // candidate.gpus_per_replica)
    if isinstance(candidate, AggregatedCandidate):
        return min(candidate.worker_count, fit)
    return fit


def to_selected_config(
    candidate: Candidate, gpu_count: int, settings: OptimizerSettings
) -> tuple[SelectedConfig, int]:
    """
    Map a candidate to a serving config.

    Returns:
        (config, replicas)
    """
    mem_util = candidate.gpu_mem_util
    if mem_util is None or not 0.0 < mem_util <= 1.0:
        mem_util = settings.default_gpu_memory_utilization

    config = SelectedConfig(
        tensor_parallel_degree=candidate.tensor_parallel,
        max_batch_size=candidate.batch_size or settings.default_max_batch_size,
        gpu_memory_utilization=mem_util,
        max_model_len=candidate.context_len or settings.default_max_model_len,
        max_num_seqs=candidate.concurrency,
        quantization=candidate.quantization,
    )
    if isinstance(candidate, AggregatedCandidate):
        config.pipeline_parallel_degree = candidate.pipeline_parallel
    else:
        config.pipeline_parallel_degree = candidate.decode_pp
        config.prefill_tensor_parallel = candidate.prefill_tp
        config.decode_tensor_parallel = candidate.decode_tp
        config.prefill_replicas = candidate.prefill_workers
        config.decode_replicas = candidate.decode_workers
    return config, replicas_for(candidate, gpu_count)


def estimate_performance(candidate: Candidate) -> EstimatedPerformance:
    return EstimatedPerformance(
        throughput_seq_per_sec=candidate.throughput_seq_per_sec,
        latency_p50_ms=candidate.ttft_ms,
        latency_p99_ms=candidate.ttft_ms * P99_LATENCY_FACTOR,
        tpot_ms=candidate.tpot_ms,
        throughput_tokens_per_sec=candidate.tokens_per_sec,
    )


def summarize_candidate(candidate: Candidate) -> CandidateSummary:
    return CandidateSummary(
        mode=candidate.mode,
        tensor_parallel_degree=candidate.tensor_parallel,
        gpus_per_replica=candidate.gpus_per_replica,
        throughput_seq_per_sec=candidate.throughput_seq_per_sec,
        ttft_ms=candidate.ttft_ms,
        tpot_ms=candidate.tpot_ms,
    )


def get_pareto_front(rows: Iterable[Candidate]) -> list[Candidate]:
    """
    Candidates not dominated on (higher seq/s, lower ttft), ordered by seq/s.
    """
    candidates = list(rows)
    if not candidates:
        return []
    df = _to_frame(candidates).sort_values(by="seq/s", kind="mergesort")

    def is_pareto(costs: np.ndarray) -> np.ndarray:
        is_better = np.ones(costs.shape[0], dtype=bool)
        for i, c in enumerate(costs):
            if is_better[i]:
                # keep any point that beats c on some axis
                is_better[is_better] = np.any(costs[is_better] > c, axis=1)
                is_better[i] = True
        return is_better

    costs = np.column_stack([df["seq/s"].values, -df["ttft"].values])
    mask = is_pareto(costs)
    return [candidates[i] for i in df.index[mask]]
