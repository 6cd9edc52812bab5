# SPDX-FileCopyrightText: Copyright (c) 2025-2026 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""
Unit tests for the tool runner, availability probe and error extraction.
"""

import sys
from unittest.mock import patch

import pytest

from serving_optimizer.sdk.config import ToolAvailability
from serving_optimizer.sdk.errors import ToolNotFound, ToolTimeout
from serving_optimizer.sdk.tool import (
    CLI_NOT_FOUND_MESSAGE,
    AvailabilityCache,
    SubprocessToolRunner,
    ToolOutcome,
    ToolProber,
    extract_error_message,
)


class TestSubprocessToolRunner:
    """Run real child processes through the runner."""

    def test_captures_output_and_exit_code(self):
        runner = SubprocessToolRunner(sys.executable)
        outcome = runner.invoke(["-c", "import sys; print('aiconfigurator 1.2.3'); sys.exit(3)"], timeout_s=30)

        assert outcome.returncode == 3
        assert "aiconfigurator 1.2.3" in outcome.stdout

    def test_missing_executable(self, tmp_path):
        runner = SubprocessToolRunner(str(tmp_path / "no-such-aiconfigurator"))
        with pytest.raises(ToolNotFound):
            runner.invoke(["version"], timeout_s=5)

    def test_timeout_kills_child(self):
        runner = SubprocessToolRunner(sys.executable)
        with pytest.raises(ToolTimeout, match="timed out"):
            runner.invoke(["-c", "import time; time.sleep(30)"], timeout_s=0.5)

    def test_arguments_are_not_shell_interpreted(self, tmp_path):
        marker = tmp_path / "pwned"
        runner = SubprocessToolRunner(sys.executable)
        outcome = runner.invoke(["-c", "import sys; print(sys.argv[1])", f"x; touch {marker}"], timeout_s=30)

        assert outcome.stdout.strip() == f"x; touch {marker}"
        assert not marker.exists()

    def test_undecodable_output_is_replaced(self):
        runner = SubprocessToolRunner(sys.executable)
        outcome = runner.invoke(
            [
                "-c",
                "import sys; sys.stdout.buffer.write(b'ok \\xff\\n'); sys.stderr.buffer.write(b'Error: bad \\xfe\\n')",
            ],
            timeout_s=30,
        )

        assert outcome.returncode == 0
        assert outcome.stdout == "ok �\n"
        assert extract_error_message(outcome.stderr) == "bad �"


class TestToolProber:
    """Test availability probing and caching."""

    def test_available(self, fake_runner):
        prober = ToolProber(fake_runner, AvailabilityCache())
        status = prober.check_status()

        assert status == ToolAvailability(available=True, version="0.4.0")
        assert fake_runner.invocations == [["version"]]

    def test_result_is_cached(self, fake_runner):
        cache = AvailabilityCache()
        prober = ToolProber(fake_runner, cache)
        prober.check_status()
        prober.check_status()

        assert fake_runner.probe_count == 1
        assert cache.get().available

    def test_force_refresh_and_clear(self, fake_runner):
        cache = AvailabilityCache()
        prober = ToolProber(fake_runner, cache)
        prober.check_status()
        prober.check_status(force_refresh=True)
        cache.clear()
        prober.check_status()

        assert fake_runner.probe_count == 3

    def test_missing_binary(self, fake_runner_factory):
        prober = ToolProber(fake_runner_factory(missing=True), AvailabilityCache())
        status = prober.check_status()

        assert status.available is False
        assert status.error == CLI_NOT_FOUND_MESSAGE

    def test_non_zero_exit(self, fake_runner_factory):
        runner = fake_runner_factory(version_outcome=ToolOutcome(2, "", "ImportError: no module named tensorrt"))
        status = ToolProber(runner, AvailabilityCache()).check_status()

        assert status.available is False
        assert "code 2" in status.error
        assert "tensorrt" in status.error

    def test_timeout_is_reported(self, fake_runner_factory):
        runner = fake_runner_factory()
        with patch.object(runner, "probe", side_effect=ToolTimeout("AI Configurator timed out after 5s")):
            status = ToolProber(runner, AvailabilityCache()).check_status()

        assert status.available is False
        assert "timed out" in status.error

    def test_unparsable_version(self, fake_runner_factory):
        runner = fake_runner_factory(version_outcome=ToolOutcome(0, "", ""))
        status = ToolProber(runner, AvailabilityCache()).check_status()

        assert status.available is True
        assert status.version == "unknown"

    def test_undecodable_version_output(self, tmp_path):
        executable = tmp_path / "aiconfigurator"
        executable.write_text(
            f"#!{sys.executable}\nimport sys\nsys.stdout.buffer.write(b'aiconfigurator 0.4.0 \\xff\\xfe\\n')\n"
        )
        executable.chmod(0o755)

        status = ToolProber(SubprocessToolRunner(str(executable)), AvailabilityCache()).check_status()

        assert status == ToolAvailability(available=True, version="0.4.0")


class TestExtractErrorMessage:
    """Test friendly error extraction from tool stderr."""

    def test_gated_model(self):
        message = extract_error_message("requests.exceptions.HTTPError: 401: Unauthorized for url")
        assert "gated model" in message

    def test_no_successful_runs(self):
        message = extract_error_message("ERROR ... No successful experiment runs to compare")
        assert "too large" in message

    def test_constraints(self):
        message = extract_error_message("TTFT and TPOT constraints may need to be relaxed")
        assert "Latency constraints cannot be met" in message

    def test_value_error_line(self):
        stderr = "Traceback (most recent call last):\n  ...\nValueError: model QWEN9 is not supported\n"
        assert extract_error_message(stderr) == "model QWEN9 is not supported"

    def test_last_non_warning_line(self):
        stderr = "something broke here\nWARNING deprecated flag\n"
        assert extract_error_message(stderr) == "something broke here"

    def test_falls_back_to_stdout(self):
        assert extract_error_message("", "last stdout line\n") == "last stdout line"

    def test_unknown(self):
        assert extract_error_message("", "") == "AI Configurator failed with unknown error"
