# SPDX-FileCopyrightText: Copyright (c) 2025-2026 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""
Access to the external aiconfigurator CLI.

The CLI is reached only through a ToolRunner so tests can substitute canned output.
Commands are always argument vectors; nothing is ever passed through a shell.
"""

import logging
import re
import subprocess
from dataclasses import dataclass
from typing import Optional

from serving_optimizer.sdk.config import ToolAvailability
from serving_optimizer.sdk.errors import ToolError, ToolNotFound, ToolTimeout

logger = logging.getLogger(__name__)

VERSION_PATTERN = re.compile(r"aiconfigurator\s+([\d.]+)", re.IGNORECASE)
CLI_NOT_FOUND_MESSAGE = "AI Configurator CLI not found"


@dataclass(frozen=True)
class ToolOutcome:
    returncode: int
    stdout: str
    stderr: str


class ToolRunner:
    """
    Capability interface for running the characterization tool.
    """

    def invoke(self, args: list[str], timeout_s: float) -> ToolOutcome:
        """
        Run the tool with the given arguments.

        Raises:
            ToolNotFound: the executable does not exist or cannot be executed
            ToolTimeout: the process did not finish within timeout_s; it has been killed and reaped
        """
        raise NotImplementedError

    def probe(self, timeout_s: float) -> ToolOutcome:
        # aiconfigurator uses a 'version' subcommand, not --version
        return self.invoke(["version"], timeout_s)


class SubprocessToolRunner(ToolRunner):
    def __init__(self, executable: str = "aiconfigurator"):
        self.executable = executable

    def invoke(self, args: list[str], timeout_s: float) -> ToolOutcome:
        cmd = [self.executable, *args]
        logger.debug("Exec: %s", cmd)
        try:
            p = subprocess.Popen(
                cmd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                # output is not guaranteed to be valid utf-8
                encoding="utf-8",
                errors="replace",
            )
        except (FileNotFoundError, PermissionError, NotADirectoryError) as exc:
            raise ToolNotFound(f"{CLI_NOT_FOUND_MESSAGE}: {exc}") from exc

        with p:
            try:
                stdout, stderr = p.communicate(timeout=timeout_s)
            except subprocess.TimeoutExpired as exc:
                logger.warning("%s timed out after %ss, killing", self.executable, timeout_s)
                p.kill()
                p.communicate()
                raise ToolTimeout(f"AI Configurator timed out after {timeout_s:g}s") from exc
            except BaseException:
                # cancellation: do not leave a child behind
                p.kill()
                p.wait()
                raise
        return ToolOutcome(returncode=p.returncode, stdout=stdout or "", stderr=stderr or "")


class AvailabilityCache:
    """
    Process-lifetime holder for the probe result.

    There is no implicit invalidation. Concurrent first writes are harmless since the
    probed value is stable for the life of the process.
    """

    def __init__(self):
        self._status: Optional[ToolAvailability] = None

    def get(self) -> Optional[ToolAvailability]:
        return self._status

    def set(self, status: ToolAvailability) -> None:
        self._status = status

    def clear(self) -> None:
        self._status = None


class ToolProber:
    def __init__(self, runner: ToolRunner, cache: AvailabilityCache, timeout_s: float = 5.0):
        self.runner = runner
        self.cache = cache
        self.timeout_s = timeout_s

    def check_status(self, force_refresh: bool = False) -> ToolAvailability:
        """
        Check whether aiconfigurator is usable. Never raises.
        """
        cached = self.cache.get()
        if cached is not None and not force_refresh:
            return cached

        status = self._probe()
        self.cache.set(status)
        return status

    def _probe(self) -> ToolAvailability:
        try:
            outcome = self.runner.probe(self.timeout_s)
        except ToolNotFound as exc:
            logger.debug("AI Configurator not available: %s", exc)
            return ToolAvailability(available=False, error=CLI_NOT_FOUND_MESSAGE)
        except ToolError as exc:
            logger.warning("AI Configurator probe failed: %s", exc)
            return ToolAvailability(available=False, error=str(exc))
        except OSError as exc:
            logger.warning("AI Configurator probe failed: %s", exc)
            return ToolAvailability(available=False, error=f"AI Configurator probe failed: {exc}")

        if outcome.returncode != 0:
            return ToolAvailability(
                available=False,
                error=f"AI Configurator exited with code {outcome.returncode}: {outcome.stderr.strip()}",
            )

        match = VERSION_PATTERN.search(outcome.stdout)
        version = match.group(1) if match else outcome.stdout.strip()
        logger.info("AI Configurator is available, version %s", version or "unknown")
        return ToolAvailability(available=True, version=version or "unknown")


def extract_error_message(stderr: str, stdout: str = "") -> str:
    """
    Extract a user-friendly error message from the tool's stderr/stdout.
    """
    if "401: Unauthorized" in stderr or "gated model" in stderr:
        return (
            "This is a gated model. Please authenticate with HuggingFace first (huggingface-cli login) "
            "or use a non-gated model."
        )

    # raised by the cli when every experiment failed, usually a model too large for the GPUs
    if "No successful experiment runs to compare" in stderr:
        return (
            "Model may be too large for available GPUs, or latency constraints cannot be met. "
            "Try with more GPUs or a smaller model."
        )

    if "TTFT and TPOT constraints may need to be relaxed" in stderr:
        return "Latency constraints cannot be met with current configuration. Model may need more GPUs."

    for pattern, flags in (
        (r"ValueError:\s*(.+)", 0),
        (r"aiconfigurator.*error:\s*(.+)", re.IGNORECASE),
        (r"Error:\s*(.+)", re.IGNORECASE),
        (r"TypeError:\s*(.+)", 0),
    ):
        match = re.search(pattern, stderr, flags=flags)
        if match:
            return match.group(1).strip()

    lines = [line for line in stderr.splitlines() if line.strip() and "WARNING" not in line]
    if lines:
        return lines[-1].strip()
    lines = [line for line in stdout.splitlines() if line.strip()]
    if lines:
        return lines[-1].strip()
    return "AI Configurator failed with unknown error"
