# SPDX-FileCopyrightText: Copyright (c) 2025-2026 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

import logging
from collections.abc import Mapping
from typing import Any, Optional

from serving_optimizer.sdk import validation
from serving_optimizer.sdk.candidates import Candidate, parse_candidates
from serving_optimizer.sdk.characterization import build_plan, modes_to_run, run_all_modes
from serving_optimizer.sdk.common import BackendName, Objective
from serving_optimizer.sdk.config import AnalysisRequest, AnalysisResult, OptimizerSettings, ToolAvailability
from serving_optimizer.sdk.errors import NoFeasibleCandidate, ToolUnparsableOutput, ValidationError
from serving_optimizer.sdk.fallback import default_config
from serving_optimizer.sdk.gpu import best_backend, normalize_gpu_type, supported_backends, system_for_gpu
from serving_optimizer.sdk.selection import (
    estimate_performance,
    select_candidate,
    summarize_candidate,
    to_selected_config,
)
from serving_optimizer.sdk.tool import AvailabilityCache, SubprocessToolRunner, ToolProber, ToolRunner

logger = logging.getLogger(__name__)


class ConfigAdvisor:
    """
    Recommends a serving configuration for a model on a GPU allocation.

    The advisor owns the tool runner and the availability cache; one instance is
    meant to live as long as the process.

    Args:
        settings: optimizer settings, defaults if None
        runner: how aiconfigurator is executed, a subprocess runner on settings.tool_path if None
        cache: availability cache, a fresh one if None
    """

    def __init__(
        self,
        settings: Optional[OptimizerSettings] = None,
        runner: Optional[ToolRunner] = None,
        cache: Optional[AvailabilityCache] = None,
    ):
        self.settings = settings or OptimizerSettings()
        self.runner = runner or SubprocessToolRunner(self.settings.tool_path)
        self.cache = cache or AvailabilityCache()
        self._prober = ToolProber(self.runner, self.cache, timeout_s=self.settings.probe_timeout_s)

    def status(self, force_refresh: bool = False) -> ToolAvailability:
        return self._prober.check_status(force_refresh=force_refresh)

    def normalize_gpu(self, gpu_product: str) -> str:
        return normalize_gpu_type(gpu_product)

    def analyze(self, payload: Mapping[str, Any] | AnalysisRequest) -> AnalysisResult:
        """
        Analyze a request and return the recommended configuration.

        success is True only when the config comes from a measured candidate. Every
        other outcome, invalid requests included, carries a heuristic config with
        warnings explaining why. Does not raise.
        """
        try:
            request = validation.validate_request(payload)
        except ValidationError as exc:
            logger.warning("Rejected analysis request: %s", exc)
            return self._rejected(payload, str(exc))

        try:
            return self._analyze(request)
        except Exception as exc:
            logger.exception("Unexpected error while analyzing %s", request.model_id)
            return self._fallback(request, [], f"Analysis failed unexpectedly: {exc}")

    def _rejected(self, payload: Any, message: str) -> AnalysisResult:
        raw_count = payload.get("gpuCount", payload.get("gpu_count")) if isinstance(payload, Mapping) else None
        if isinstance(payload, AnalysisRequest):
            raw_count = payload.gpu_count
        try:
            gpu_count = validation.validate_gpu_count(raw_count)
        except ValidationError:
            gpu_count = 1

        plan = default_config(gpu_count, Objective.throughput, settings=self.settings)
        return AnalysisResult(
            success=False,
            mode=plan.mode,
            config=plan.config,
            replicas=plan.replicas,
            warnings=plan.warnings,
            error=message,
        )

    def _fallback(
        self,
        request: AnalysisRequest,
        warnings: list[str],
        error: str,
        backend: Optional[BackendName] = None,
        system: Optional[str] = None,
    ) -> AnalysisResult:
        plan = default_config(request.gpu_count, request.optimize_for, reason=error, settings=self.settings)
        return AnalysisResult(
            success=False,
            mode=plan.mode,
            config=plan.config,
            replicas=plan.replicas,
            warnings=[*warnings, *plan.warnings],
            error=error,
            backend=backend.value if backend else None,
            supported_backends=[b.value for b in supported_backends(system)] if system else None,
        )

    def _analyze(self, request: AnalysisRequest) -> AnalysisResult:
        warnings: list[str] = []

        canonical = normalize_gpu_type(request.gpu_type)
        system = system_for_gpu(canonical)
        if system is None:
            return self._fallback(
                request, warnings, f"GPU type '{request.gpu_type}' ({canonical}) is not supported by AI Configurator"
            )

        backend = best_backend(system)
        if backend is None:
            return self._fallback(request, warnings, f"AI Configurator has no backend data for system {system}")
        if backend is not BackendName.vllm:
            warnings.append(f"Using {backend.value.upper()} backend (vLLM not available for {system})")

        availability = self.status()
        if not availability.available:
            return self._fallback(
                request,
                warnings,
                availability.error or "AI Configurator is not available",
                backend=backend,
                system=system,
            )

        plan = build_plan(request, system, backend, self.settings)
        modes = modes_to_run(request.gpu_count, request.optimize_for)
        outcomes = run_all_modes(self.runner, plan, modes, self.settings)

        candidates: list[Candidate] = []
        failures: list[str] = []
        for mode in modes:
            outcome = outcomes[mode]
            if not outcome.ok:
                failures.append(f"{mode.value} characterization failed: {outcome.error}")
                continue
            try:
                candidates.extend(parse_candidates(outcome.raw_table, mode, warnings))
            except ToolUnparsableOutput as exc:
                logger.warning("Discarding %s output: %s", mode.tool_name, exc)
                failures.append(f"{mode.value} characterization output unusable: {exc}")
        warnings.extend(failures)

        if not candidates:
            error = failures[0] if len(failures) == 1 else "AI Configurator returned no usable configurations"
            return self._fallback(request, warnings, error, backend=backend, system=system)

        try:
            selection = select_candidate(
                candidates,
                request.optimize_for,
                request.gpu_count,
                max_latency_ms=request.max_latency_ms,
                preference=self.settings.disagg_preference,
            )
        except NoFeasibleCandidate as exc:
            logger.warning("No feasible configuration for %s: %s", request.model_id, exc)
            return self._fallback(request, warnings, str(exc), backend=backend, system=system)

        config, replicas = to_selected_config(selection.candidate, request.gpu_count, self.settings)
        logger.info(
            "Recommended %s config for %s on %d x %s: tp=%d replicas=%d (%d feasible, %d on the Pareto front)",
            selection.mode.value,
            request.model_id,
            request.gpu_count,
            canonical,
            config.tensor_parallel_degree,
            replicas,
            selection.feasible_count,
            len(selection.pareto_front),
        )
        return AnalysisResult(
            success=True,
            mode=selection.mode,
            config=config,
            replicas=replicas,
            warnings=warnings,
            estimated_performance=estimate_performance(selection.candidate),
            backend=backend.value,
            supported_backends=[b.value for b in supported_backends(system)],
            pareto_front=[summarize_candidate(c) for c in selection.pareto_front],
        )
