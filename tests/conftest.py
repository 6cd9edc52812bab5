# SPDX-FileCopyrightText: Copyright (c) 2025-2026 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""
Global pytest configuration and fixtures.

Module-specific fixtures are located in their respective conftest.py files:
- tests/cli/workflow/conftest.py - CLI-related fixtures

The FakeToolRunner stands in for the aiconfigurator executable. It records every
argument vector it receives and answers `cli exp` calls by writing a canned
best_config_topn.csv into the requested --save_dir, the way the real tool does.
"""

import threading
from pathlib import Path
from typing import Optional, Union

import pytest
import yaml

from serving_optimizer.sdk.advisor import ConfigAdvisor
from serving_optimizer.sdk.common import BEST_CONFIG_CSV
from serving_optimizer.sdk.config import OptimizerSettings
from serving_optimizer.sdk.errors import ToolNotFound
from serving_optimizer.sdk.tool import AvailabilityCache, ToolOutcome, ToolRunner

# tp 2/4/8 aggregated candidates, as written by `aiconfigurator cli exp`
AGG_CSV = (
    "model,isl,osl,concurrency,bs,global_bs,ttft,tpot,seq/s,tokens/s,tokens/s/gpu,num_total_gpus,"
    "tp,pp,parallel,gemm,backend,system\n"
    "QWEN3_32B,4000,1000,64 (=64x1),64,64,400.0,20.0,10.0,10000.0,5000.0,2,2,1,tp2pp1,fp8,vllm,h100_sxm\n"
    "QWEN3_32B,4000,1000,128 (=128x1),128,128,300.0,18.0,14.0,14000.0,3500.0,4,4,1,tp4pp1,fp8,vllm,h100_sxm\n"
    "QWEN3_32B,4000,1000,256 (=256x1),256,256,250.0,15.0,20.0,20000.0,2500.0,8,8,1,tp8pp1,fp8,vllm,h100_sxm\n"
)

# 1p1d replicas using 3, 4 and 8 GPUs
DISAGG_CSV = (
    "model,isl,osl,concurrency,ttft,tpot,seq/s,tokens/s,num_total_gpus,"
    "(p)tp,(p)pp,(p)workers,(p)bs,(p)parallel,(d)tp,(d)pp,(d)workers,(d)bs,(d)parallel,(d)gemm,backend,system\n"
    "QWEN3_32B,4000,1000,96,200.0,22.0,13.0,13000.0,3,1,1,1,1,tp1pp1,2,1,1,96,tp2pp1,fp8,vllm,h100_sxm\n"
    "QWEN3_32B,4000,1000,128,150.0,20.0,16.0,16000.0,4,2,1,1,1,tp2pp1,2,1,1,128,tp2pp1,fp8,vllm,h100_sxm\n"
    "QWEN3_32B,4000,1000,256,120.0,12.0,30.0,30000.0,8,4,1,1,1,tp4pp1,4,1,1,256,tp4pp1,fp8,vllm,h100_sxm\n"
)


class FakeToolRunner(ToolRunner):
    """
    In-memory aiconfigurator.

    Args:
        tables: experiment name ("agg"/"disagg") -> csv text (or raw bytes) written on success
        failures: experiment name -> ToolOutcome to return or exception to raise
        missing: behave as if the executable does not exist
    """

    def __init__(
        self,
        tables: Optional[dict[str, Union[str, bytes]]] = None,
        failures: Optional[dict[str, Union[ToolOutcome, Exception]]] = None,
        missing: bool = False,
        version_outcome: Optional[ToolOutcome] = None,
    ):
        self.tables = tables if tables is not None else {"agg": AGG_CSV, "disagg": DISAGG_CSV}
        self.failures = failures or {}
        self.missing = missing
        self.version_outcome = version_outcome or ToolOutcome(0, "aiconfigurator 0.4.0\n", "")
        self.invocations: list[list[str]] = []
        self.timeouts: list[float] = []
        self.definitions: dict[str, dict] = {}
        self._lock = threading.Lock()

    @property
    def experiment_invocations(self) -> list[list[str]]:
        return [args for args in self.invocations if args[:2] == ["cli", "exp"]]

    @property
    def probe_count(self) -> int:
        return sum(1 for args in self.invocations if args == ["version"])

    def invoke(self, args, timeout_s):
        with self._lock:
            self.invocations.append(list(args))
            self.timeouts.append(timeout_s)
        if self.missing:
            raise ToolNotFound("AI Configurator CLI not found: [Errno 2] No such file or directory")
        if args == ["version"]:
            return self.version_outcome

        yaml_path = args[args.index("--yaml_path") + 1]
        save_dir = args[args.index("--save_dir") + 1]
        with open(yaml_path, encoding="utf-8") as fh:
            experiment = yaml.safe_load(fh)
        exp_name = experiment["exps"][0]
        with self._lock:
            self.definitions[exp_name] = experiment[exp_name]

        failure = self.failures.get(exp_name)
        if isinstance(failure, Exception):
            raise failure
        if isinstance(failure, ToolOutcome):
            return failure

        table = self.tables.get(exp_name)
        if table is not None:
            model = experiment[exp_name]["model_name"]
            out_dir = Path(save_dir) / f"{model}_isl4000_osl1000_ttft2000_tpot30_123456" / exp_name
            out_dir.mkdir(parents=True, exist_ok=True)
            if isinstance(table, bytes):
                (out_dir / BEST_CONFIG_CSV).write_bytes(table)
            else:
                (out_dir / BEST_CONFIG_CSV).write_text(table, encoding="utf-8")
        return ToolOutcome(0, f"{exp_name} done\n", "")


@pytest.fixture
def fake_runner():
    """Fake tool with both aggregated and disaggregated tables."""
    return FakeToolRunner()


@pytest.fixture
def advisor_factory():
    """Factory to build an advisor around a fake runner."""

    def _factory(runner: Optional[ToolRunner] = None, **settings_overrides):
        runner = runner or FakeToolRunner()
        settings = OptimizerSettings(**settings_overrides)
        return ConfigAdvisor(settings=settings, runner=runner, cache=AvailabilityCache())

    return _factory


@pytest.fixture
def valid_request():
    return {
        "modelId": "Qwen/Qwen3-32B",
        "gpuType": "nvidia-h100-80gb-hbm3",
        "gpuCount": 4,
        "optimizeFor": "throughput",
    }


@pytest.fixture
def fake_runner_factory():
    """The FakeToolRunner class, for tests that need custom tables or failures."""
    return FakeToolRunner


@pytest.fixture
def agg_csv():
    return AGG_CSV


@pytest.fixture
def disagg_csv():
    return DISAGG_CSV
