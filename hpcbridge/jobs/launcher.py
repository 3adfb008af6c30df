"""
Module that launches jobs as detached processes on the remote host.

A job is launched by writing a few artifact files into its working directory and
executing a small launcher script through the channel. The launcher starts the actual
runner script in the background with all of its streams redirected, records its pid
and disowns it. The channel call returns immediately after that, and from then on the
job's lifetime no longer depends on any connection: the artifact files are all that
is needed to find out what happened to it later.

Launching is not idempotent. Retrying a launch that failed halfway may start the job
twice, so launches are never retried.
"""

from dataclasses import dataclass
from datetime import datetime
import shlex
import time
from typing import Callable, List, Optional

from hpcbridge.channel import Channel
from hpcbridge.config import JobsConfig
from hpcbridge.errors import HpcBridgeError, LauncherError
from hpcbridge.jobs import scripts
from hpcbridge.jobs.descriptor import JobDescriptor, new_job_id
from hpcbridge.jobs.index import JobIndex
from hpcbridge.logger import log, summarize

# Permissions of the generated scripts
SCRIPT_MODE = 0o755


@dataclass
class LaunchResult:
    """Outcome of a launch along with early (non-authoritative) diagnostics."""

    job_id: str
    diagnostic_output: str
    descriptor: JobDescriptor


class JobLauncher:
    """Class that turns a resolved shell command into a detached remote job."""

    def __init__(
        self,
        channel: Channel,
        config: JobsConfig,
        index: Optional[JobIndex] = None,
        generate_id: Callable[[], str] = new_job_id,
    ):
        """Instantiate a launcher that uses the given channel for all remote work."""
        self._channel = channel
        self._config = config
        self._index = index
        self._generate_id = generate_id

    def launch(self, working_directory: str, command: str) -> LaunchResult:
        """
        Launch a command as a detached job in the given remote working directory.

        Raises LauncherError if the job could not be started at all. A job that starts
        but then fails (e.g. because its environment can't be activated) is not an
        error here: that is recorded in its log and reported by the status resolver.
        """
        if not command.strip():
            raise ValueError("cannot launch an empty command")

        descriptor = JobDescriptor.create(
            self._generate_id(), working_directory, self._config.artifact_prefix
        )

        log.info(f"launching job {descriptor.job_id} in {working_directory}")
        log.debug(f"job command: {summarize(command)}")

        try:
            self._write_artifacts(descriptor, command)
            launch_output = self._channel.execute_command(
                f"bash {shlex.quote(descriptor.launcher_script)}"
            )
        except HpcBridgeError as e:
            raise LauncherError(f"failed to launch job {descriptor.job_id}: {e}") from e

        if not launch_output.ok:
            raise LauncherError(
                f"launcher script of job {descriptor.job_id} exited with "
                f"{launch_output.exit_status}: {launch_output.stderr.strip()}"
            )

        # From this point on the job runs independently of any connection
        if self._index is not None:
            try:
                self._index.record(descriptor.job_id, descriptor.working_directory)
            except OSError as e:
                log.error(f"failed to record job {descriptor.job_id} in index: {e}")

        diagnostics = self._collect_diagnostics(
            descriptor, launch_output.stdout + launch_output.stderr
        )

        return LaunchResult(
            job_id=descriptor.job_id,
            diagnostic_output=diagnostics,
            descriptor=descriptor,
        )

    def _write_artifacts(self, descriptor: JobDescriptor, command: str) -> None:
        """Write the command record, runner script and launcher script."""
        submitted = datetime.now().astimezone().isoformat()

        self._channel.make_directory(descriptor.working_directory)

        self._channel.write_file(
            descriptor.command_file,
            scripts.command_record(descriptor, command, submitted).encode(),
        )
        self._channel.write_file(
            descriptor.runner_script,
            scripts.runner_script(
                descriptor, command, self._config.environment
            ).encode(),
        )
        self._channel.write_file(
            descriptor.launcher_script, scripts.launcher_script(descriptor).encode()
        )

        for path in (descriptor.runner_script, descriptor.launcher_script):
            self._channel.chmod(path, SCRIPT_MODE)

    def _collect_diagnostics(
        self, descriptor: JobDescriptor, launch_output: str
    ) -> str:
        """
        Take a first look at the job shortly after it was launched.

        This is only meant to surface immediate problems, like the runner script not
        being found. Failures here don't affect the job and are not raised.
        """
        time.sleep(self._config.settle_delay)

        lines: List[str] = []

        try:
            pid_output = self._channel.execute_command(
                f"cat {shlex.quote(descriptor.pid_file)} 2>/dev/null"
            )
            pid = pid_output.stdout.strip()

            lines.append(f"PID: {pid}")

            if pid.isdigit():
                liveness = self._channel.execute_command(
                    scripts.liveness_check(int(pid))
                )

                if "alive" in liveness.stdout:
                    lines.append("Process running")
                else:
                    lines.append("Process may have exited")

            if launch_output.strip():
                lines.append(launch_output.strip())

            errors = self._channel.execute_command(
                f"cat {shlex.quote(descriptor.error_file)} 2>/dev/null"
            ).stdout.strip()

            if errors:
                lines.append(f"Errors: {errors}")
        except HpcBridgeError as e:
            log.warning(
                f"failed to collect diagnostics of job {descriptor.job_id}: {e}"
            )
            lines.append(f"Diagnostics unavailable: {e}")

        return "\n".join(lines)
