# SPDX-FileCopyrightText: Copyright (c) 2025-2026 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""
Typed candidate rows parsed from aiconfigurator's best_config_topn.csv.

Columns are matched by header name, never by position, so reordered or extra
columns are fine. A corrupt row only costs that row.
"""

import io
import logging
import math
import re
from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import Optional, Union

import pandas as pd

from serving_optimizer.sdk.common import (
    ColumnsAgg,
    ColumnsDisagg,
    ParallelColumns,
    QuantizationNames,
    ServingMode,
)
from serving_optimizer.sdk.errors import ToolUnparsableOutput

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AggregatedCandidate:
    """
    One aggregated worker setup: every replica serves both prefill and decode.
    """

    tensor_parallel: int
    batch_size: int
    throughput_seq_per_sec: float
    ttft_ms: float
    tpot_ms: float
    pipeline_parallel: int = 1
    worker_count: int = 1
    gpu_mem_util: Optional[float] = None
    context_len: Optional[int] = None
    concurrency: Optional[int] = None
    tokens_per_sec: Optional[float] = None
    quantization: Optional[str] = None
    backend: Optional[str] = None
    system: Optional[str] = None
    mode: ServingMode = field(default=ServingMode.aggregated, init=False)

    @property
    def gpus_per_replica(self) -> int:
        return self.tensor_parallel * self.pipeline_parallel


@dataclass(frozen=True)
class DisaggregatedCandidate:
    """
    One disaggregated replica (xPyD): prefill_workers prefill workers and
    decode_workers decode workers, each pool with its own parallel layout.
    """

    prefill_tp: int
    prefill_workers: int
    decode_tp: int
    decode_workers: int
    throughput_seq_per_sec: float
    ttft_ms: float
    tpot_ms: float
    prefill_pp: int = 1
    decode_pp: int = 1
    batch_size: Optional[int] = None
    gpu_mem_util: Optional[float] = None
    context_len: Optional[int] = None
    concurrency: Optional[int] = None
    tokens_per_sec: Optional[float] = None
    quantization: Optional[str] = None
    backend: Optional[str] = None
    system: Optional[str] = None
    mode: ServingMode = field(default=ServingMode.disaggregated, init=False)

    @property
    def tensor_parallel(self) -> int:
        return max(self.prefill_tp, self.decode_tp)

    @property
    def gpus_per_replica(self) -> int:
        return (
            self.prefill_tp * self.prefill_pp * self.prefill_workers
            + self.decode_tp * self.decode_pp * self.decode_workers
        )


Candidate = Union[AggregatedCandidate, DisaggregatedCandidate]

_REQUIRED = {
    ServingMode.aggregated: ["tensor_parallel", "batch_size", "throughput_seq_per_sec", "ttft_ms", "tpot_ms"],
    ServingMode.disaggregated: [
        "prefill_tp",
        "prefill_workers",
        "decode_tp",
        "decode_workers",
        "throughput_seq_per_sec",
        "ttft_ms",
        "tpot_ms",
    ],
}
_INT_FIELDS = {
    "tensor_parallel",
    "pipeline_parallel",
    "worker_count",
    "batch_size",
    "context_len",
    "concurrency",
    "prefill_tp",
    "prefill_pp",
    "prefill_workers",
    "decode_tp",
    "decode_pp",
    "decode_workers",
}
_FLOAT_FIELDS = {"throughput_seq_per_sec", "ttft_ms", "tpot_ms", "gpu_mem_util", "tokens_per_sec"}
# must be > 0 for the row to describe anything physical
_POSITIVE_FIELDS = {"throughput_seq_per_sec", "ttft_ms", "tpot_ms"}


def _parse_int(text: str) -> int:
    # concurrency is reported as "64 (=32x2)"
    text = text.split("(")[0].strip()
    value = float(text)
    if not math.isfinite(value) or not value.is_integer():
        raise ValueError(f"not an integer: {text!r}")
    return int(value)


def _parse_float(text: str) -> float:
    value = float(text.strip())
    if not math.isfinite(value):
        raise ValueError(f"not a finite number: {text!r}")
    return value


def _tp_from_parallel(text: str) -> int:
    """Extract the tp degree from layouts like 'tp2pp1' or 'tp2pp1dp1etp1ep1'."""
    match = re.search(r"(?<![a-z])tp(\d+)", text.strip().lower())
    if not match:
        raise ValueError(f"no tp degree in {text!r}")
    return int(match.group(1))


def _resolve_columns(columns: list[str], mode: ServingMode) -> dict[str, str]:
    aliases = ColumnsAgg if mode is ServingMode.aggregated else ColumnsDisagg
    present = set(columns)
    resolved = {}
    for name, candidates in aliases.items():
        for column in candidates:
            if column in present:
                resolved[name] = column
                break
    return resolved


def _is_missing(value) -> bool:
    return value is None or (isinstance(value, float) and math.isnan(value)) or str(value).strip() == ""


def parse_candidates(
    raw_table: str,
    mode: ServingMode,
    warnings: Optional[list[str]] = None,
) -> Iterator[Candidate]:
    """
    Parse aiconfigurator csv output into candidates.

    The header is checked eagerly; rows are yielded lazily, so the returned
    iterator is single-use.

    Args:
        raw_table: csv text, header first
        mode: which schema the table follows
        warnings: optional sink for messages about dropped rows

    Raises:
        ToolUnparsableOutput: the table is empty or lacks required columns
    """
    sink = warnings if warnings is not None else []
    bad_lines: list[list[str]] = []

    def _on_bad_line(fields: list[str]) -> None:
        bad_lines.append(fields)
        return None

    try:
        df = pd.read_csv(
            io.StringIO(raw_table),
            dtype=str,
            keep_default_na=False,
            skipinitialspace=True,
            engine="python",
            on_bad_lines=_on_bad_line,
        )
    except (pd.errors.EmptyDataError, pd.errors.ParserError) as exc:
        raise ToolUnparsableOutput(f"Unable to read {mode.tool_name} candidate table: {exc}") from exc

    df.columns = [str(c).strip() for c in df.columns]
    resolved = _resolve_columns(list(df.columns), mode)

    parallel_fallback = {}
    for name, column in ParallelColumns.items():
        if name in _REQUIRED[mode] and name not in resolved and column in df.columns:
            parallel_fallback[name] = column

    missing = [name for name in _REQUIRED[mode] if name not in resolved and name not in parallel_fallback]
    if missing:
        raise ToolUnparsableOutput(
            f"{mode.tool_name} candidate table is missing required columns for: {', '.join(missing)}"
        )

    for fields in bad_lines:
        message = f"Dropped malformed {mode.tool_name} row with {len(fields)} fields"
        logger.warning(message)
        sink.append(message)

    has_isl_osl = "context_len" not in resolved and {"isl", "osl"} <= set(df.columns)

    return _iter_rows(df, mode, resolved, parallel_fallback, has_isl_osl, sink)


def _iter_rows(
    df: pd.DataFrame,
    mode: ServingMode,
    resolved: dict[str, str],
    parallel_fallback: dict[str, str],
    has_isl_osl: bool,
    sink: list[str],
) -> Iterator[Candidate]:
    required = _REQUIRED[mode]
    cls = AggregatedCandidate if mode is ServingMode.aggregated else DisaggregatedCandidate

    for idx, record in enumerate(df.to_dict("records")):
        values = {}
        problem = None
        for name, column in resolved.items():
            raw = record.get(column)
            if _is_missing(raw):
                if name in required:
                    problem = f"missing '{column}'"
                    break
                continue
            raw = str(raw).strip()
            try:
                if name in _INT_FIELDS:
                    values[name] = _parse_int(raw)
                elif name in _FLOAT_FIELDS:
                    values[name] = _parse_float(raw)
                elif name == "quantization":
                    values[name] = QuantizationNames.get(raw.lower())
                else:
                    values[name] = raw
            except ValueError:
                if name in required:
                    problem = f"unparsable '{column}' value {raw!r}"
                    break
                logger.debug("Ignoring unparsable optional column %s=%r", column, raw)

        if problem is None:
            for name, column in parallel_fallback.items():
                try:
                    values[name] = _tp_from_parallel(str(record.get(column, "")))
                except ValueError:
                    problem = f"unparsable '{column}' value {record.get(column)!r}"
                    break

        if problem is None and has_isl_osl:
            try:
                values["context_len"] = _parse_int(str(record["isl"])) + _parse_int(str(record["osl"]))
            except ValueError:
                logger.debug("Ignoring unparsable isl/osl in row %d", idx + 1)

        if problem is None:
            non_positive = [name for name in _POSITIVE_FIELDS if values[name] <= 0]
            non_positive += [
                name for name, value in values.items() if name in _INT_FIELDS and name != "concurrency" and value < 1
            ]
            if non_positive:
                problem = f"non-positive {', '.join(sorted(non_positive))}"

        if problem is not None:
            message = f"Dropped {mode.tool_name} row {idx + 1}: {problem}"
            logger.warning(message)
            sink.append(message)
            continue

        yield cls(**{k: v for k, v in values.items() if k in cls.__dataclass_fields__})
