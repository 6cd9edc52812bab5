# SPDX-FileCopyrightText: Copyright (c) 2025-2026 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""
Running aiconfigurator experiments, one per serving mode.

Each run writes a single-experiment YAML into a scratch directory, points
`aiconfigurator cli exp` at it and reads back best_config_topn.csv. The scratch
directory is removed whatever the outcome.
"""

import logging
import os
import tempfile
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import yaml

from serving_optimizer.sdk.common import BEST_CONFIG_CSV, BackendName, Objective, ServingMode
from serving_optimizer.sdk.config import AnalysisRequest, OptimizerSettings
from serving_optimizer.sdk.errors import ToolError, ToolNonZeroExit, ToolUnparsableOutput
from serving_optimizer.sdk.tool import ToolRunner, extract_error_message

logger = logging.getLogger(__name__)

# disagg needs at least one prefill and one decode GPU
MIN_DISAGG_GPUS = 2


@dataclass(frozen=True)
class ExperimentPlan:
    """
    Everything aiconfigurator needs to characterize one request.
    """

    model_id: str
    system: str
    backend: BackendName
    gpu_count: int
    isl: int = 4000
    osl: int = 1000
    ttft_ms: float = 2000.0
    tpot_ms: float = 30.0


@dataclass
class ModeOutcome:
    """
    Result of one mode's run: either the raw csv or the error that prevented it.
    """

    mode: ServingMode
    raw_table: Optional[str] = None
    error: Optional[ToolError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def build_plan(
    request: AnalysisRequest, system: str, backend: BackendName, settings: OptimizerSettings
) -> ExperimentPlan:
    # a latency budget on the request becomes the tool's ttft target
    ttft_ms = request.max_latency_ms if request.max_latency_ms is not None else settings.ttft_ms
    return ExperimentPlan(
        model_id=request.model_id,
        system=system,
        backend=backend,
        gpu_count=request.gpu_count,
        isl=settings.isl,
        osl=settings.osl,
        ttft_ms=ttft_ms,
        tpot_ms=settings.tpot_ms,
    )


def modes_to_run(gpu_count: int, objective: Objective) -> list[ServingMode]:
    """
    Aggregated is always characterized. Disaggregated only when there is more than
    one GPU to split, or when latency is the objective.
    """
    modes = [ServingMode.aggregated]
    if gpu_count > 1 or objective is Objective.latency:
        modes.append(ServingMode.disaggregated)
    return modes


def experiment_definition(plan: ExperimentPlan, mode: ServingMode) -> dict:
    """Build the `cli exp` YAML document for a single experiment named after the mode."""
    exp_name = mode.tool_name
    total_gpus = plan.gpu_count
    if mode is ServingMode.disaggregated:
        total_gpus = max(total_gpus, MIN_DISAGG_GPUS)

    return {
        "exps": [exp_name],
        exp_name: {
            "serving_mode": mode.tool_name,
            "model_name": plan.model_id,
            "system_name": plan.system,
            "backend_name": plan.backend.value,
            "total_gpus": total_gpus,
            "isl": plan.isl,
            "osl": plan.osl,
            "ttft": plan.ttft_ms,
            "tpot": plan.tpot_ms,
        },
    }


def _find_result_csv(save_dir: str, exp_name: str) -> Optional[Path]:
    # <save_dir>/<model>_isl..._<suffix>/<exp_name>/best_config_topn.csv, model ids with
    # an org add one more directory level
    matches = sorted(Path(save_dir).rglob(f"{exp_name}/{BEST_CONFIG_CSV}"))
    if not matches:
        return None
    if len(matches) > 1:
        logger.debug("Multiple %s results found, using %s", exp_name, matches[0])
    return matches[0]


def run_characterization(
    runner: ToolRunner, plan: ExperimentPlan, mode: ServingMode, settings: OptimizerSettings
) -> str:
    """
    Run one aiconfigurator experiment and return its best_config_topn.csv text.

    Raises:
        ToolNotFound, ToolTimeout: from the runner
        ToolNonZeroExit: the tool failed; the message is extracted from its stderr
        ToolUnparsableOutput: the tool succeeded but wrote no result table
    """
    exp_name = mode.tool_name
    with tempfile.TemporaryDirectory(prefix=f"serving-optimizer-{exp_name}-") as scratch:
        yaml_path = os.path.join(scratch, "exp.yaml")
        save_dir = os.path.join(scratch, "results")
        os.makedirs(save_dir)
        with open(yaml_path, "w", encoding="utf-8") as fh:
            yaml.safe_dump(experiment_definition(plan, mode), fh, sort_keys=False)

        args = ["cli", "exp", "--yaml_path", yaml_path, "--save_dir", save_dir]
        logger.info(
            "Running aiconfigurator %s experiment: model=%s system=%s backend=%s gpus=%d",
            exp_name,
            plan.model_id,
            plan.system,
            plan.backend.value,
            plan.gpu_count,
        )
        outcome = runner.invoke(args, settings.invoke_timeout_s)

        if outcome.returncode != 0:
            message = extract_error_message(outcome.stderr, outcome.stdout)
            logger.warning("aiconfigurator %s experiment exited with code %d: %s", exp_name, outcome.returncode, message)
            raise ToolNonZeroExit(message, returncode=outcome.returncode)

        csv_path = _find_result_csv(save_dir, exp_name)
        if csv_path is None:
            raise ToolUnparsableOutput(f"AI Configurator wrote no {BEST_CONFIG_CSV} for the {exp_name} experiment")
        # undecodable bytes become U+FFFD and fail row parsing like any other bad value
        return csv_path.read_text(encoding="utf-8", errors="replace")


def run_all_modes(
    runner: ToolRunner,
    plan: ExperimentPlan,
    modes: list[ServingMode],
    settings: OptimizerSettings,
) -> dict[ServingMode, ModeOutcome]:
    """
    Characterize every mode concurrently and wait for all of them.

    A failing mode never affects its sibling; its ToolError is captured in the outcome.
    """
    if not modes:
        return {}

    def _run(mode: ServingMode) -> ModeOutcome:
        try:
            return ModeOutcome(mode=mode, raw_table=run_characterization(runner, plan, mode, settings))
        except ToolError as exc:
            logger.warning("aiconfigurator %s experiment failed (%s): %s", mode.tool_name, exc.code, exc)
            return ModeOutcome(mode=mode, error=exc)

    with ThreadPoolExecutor(max_workers=len(modes), thread_name_prefix="aiconfigurator") as pool:
        outcomes = list(pool.map(_run, modes))
    return {outcome.mode: outcome for outcome in outcomes}
