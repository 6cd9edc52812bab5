# SPDX-FileCopyrightText: Copyright (c) 2025-2026 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""
Exceptions raised by the optimizer pipeline.

Validation errors are the only failures surfaced to callers. Tool and selection
errors are recovered by the advisor, which falls back to heuristic defaults.
"""


class OptimizerError(Exception):
    """Base class for all optimizer errors."""


class ValidationError(OptimizerError):
    """The request was rejected before any subprocess was spawned."""


class InvalidModelId(ValidationError):
    pass


class InvalidGpuCount(ValidationError):
    pass


class InvalidGpuType(ValidationError):
    pass


class InvalidObjective(ValidationError):
    pass


class InvalidLatency(ValidationError):
    pass


class ToolError(OptimizerError):
    """
    The characterization tool could not produce usable data.

    Attributes:
        code: stable failure code consumed when deciding on fallback
    """

    code = "ToolError"


class ToolNotFound(ToolError):
    code = "ToolNotFound"


class ToolTimeout(ToolError):
    code = "ToolTimeout"


class ToolNonZeroExit(ToolError):
    code = "ToolNonZeroExit"

    def __init__(self, message: str, returncode: int | None = None):
        super().__init__(message)
        self.returncode = returncode


class ToolUnparsableOutput(ToolError):
    code = "ToolUnparsableOutput"


class SelectionError(OptimizerError):
    pass


class NoFeasibleCandidate(SelectionError):
    pass
