from unittest import mock
import os
import time

import pytest

from hpcbridge.common import CommandOutput
from hpcbridge.config import JobsConfig
from hpcbridge.errors import LauncherError, RemoteConnectionError
from hpcbridge.jobs.index import JobIndex
from hpcbridge.jobs.launcher import JobLauncher
from hpcbridge.tests.fakes import LocalChannel, ScriptedChannel


@pytest.fixture
def config():
    return JobsConfig(settle_delay=0.0)


def _wait_for_exit_code(log_file, timeout=30.0):
    deadline = time.monotonic() + timeout

    while time.monotonic() < deadline:
        if os.path.exists(log_file):
            with open(log_file) as f:
                log = f.read()

            if "Exit Code:" in log:
                return log

        time.sleep(0.1)

    raise AssertionError(f"job did not finish within {timeout}s")


def test_launch_writes_artifacts(tmp_path, remote_home, config):
    channel = LocalChannel(remote_home)
    launcher = JobLauncher(channel, config, generate_id=lambda: "42")

    result = launcher.launch(str(tmp_path / "project"), "echo done")

    assert result.job_id == "42"

    descriptor = result.descriptor

    for path in [
        descriptor.command_file,
        descriptor.runner_script,
        descriptor.launcher_script,
        descriptor.pid_file,
    ]:
        assert os.path.exists(path)

    assert os.access(descriptor.runner_script, os.X_OK)
    assert os.access(descriptor.launcher_script, os.X_OK)

    with open(descriptor.command_file) as f:
        assert "echo done" in f.read()

    log = _wait_for_exit_code(descriptor.log_file)

    assert "done" in log
    assert "Exit Code: 0" in log


def test_launch_diagnostics(tmp_path, remote_home, config):
    channel = LocalChannel(remote_home)
    launcher = JobLauncher(channel, config, generate_id=lambda: "42")

    result = launcher.launch(str(tmp_path), "sleep 2")

    with open(result.descriptor.pid_file) as f:
        pid = f.read().strip()

    assert f"PID: {pid}" in result.diagnostic_output
    assert "Process running" in result.diagnostic_output


def test_launch_returns_before_job_finishes(tmp_path, remote_home, config):
    launcher = JobLauncher(LocalChannel(remote_home), config)

    start = time.monotonic()
    result = launcher.launch(str(tmp_path), "sleep 5")

    assert time.monotonic() - start < 4

    if os.path.exists(result.descriptor.log_file):
        with open(result.descriptor.log_file) as f:
            assert "Exit Code:" not in f.read()


def test_launch_records_index(tmp_path, remote_home, config):
    index = JobIndex(str(tmp_path / "jobs.json"))
    channel = LocalChannel(remote_home)
    launcher = JobLauncher(channel, config, index, generate_id=lambda: "42")

    launcher.launch(str(tmp_path / "project"), "true")

    assert index.lookup("42") == str(tmp_path / "project")


def test_launch_empty_command(tmp_path, remote_home, config):
    channel = LocalChannel(remote_home)

    with pytest.raises(ValueError):
        JobLauncher(channel, config).launch(str(tmp_path), "  ")

    assert channel.commands == []


def test_launch_unreachable_host(config):
    channel = ScriptedChannel([("mkdir", RemoteConnectionError("unreachable"))])

    with pytest.raises(LauncherError):
        JobLauncher(channel, config).launch("/data/project", "true")


def test_launch_script_failure(config):
    channel = ScriptedChannel(
        [("_launcher.sh", CommandOutput("", "permission denied", 126))]
    )
    channel.write_file = mock.Mock()
    channel.chmod = mock.Mock()

    with pytest.raises(LauncherError) as e:
        JobLauncher(channel, config).launch("/data/project", "true")

    assert "permission denied" in str(e.value)


def test_diagnostics_failure_nonfatal(config):
    channel = ScriptedChannel(
        [
            ("_launcher.sh", "1234\n"),
            ("cat ", RemoteConnectionError("connection reset")),
        ]
    )
    channel.write_file = mock.Mock()
    channel.chmod = mock.Mock()

    result = JobLauncher(channel, config, generate_id=lambda: "7").launch(
        "/data/project", "true"
    )

    assert result.job_id == "7"
    assert "Diagnostics unavailable" in result.diagnostic_output


def test_environment_activation_failure_is_not_a_launch_failure(
    tmp_path, remote_home
):
    config = JobsConfig(settle_delay=0.0, environment="nonexistent")
    launcher = JobLauncher(LocalChannel(remote_home), config)

    result = launcher.launch(str(tmp_path), "echo done")
    log = _wait_for_exit_code(result.descriptor.log_file)

    assert "Error: failed to activate environment nonexistent" in log


def test_job_runs_with_channel_home(tmp_path, remote_home, config):
    launcher = JobLauncher(LocalChannel(remote_home), config)

    result = launcher.launch(str(tmp_path), 'echo "home=$HOME"')
    log = _wait_for_exit_code(result.descriptor.log_file)

    assert f"home={remote_home}" in log
