"""
Module that determines the state of jobs from indirect evidence.

Nothing keeps track of a job while it runs. Its state is reconstructed on every query
from the artifact files it left behind, falling back to the Slurm scheduler for job
ids that aren't hpcbridge jobs (e.g. jobs submitted by the pipeline itself):

1. Locate the job's pid file.
2. A pid that is still alive means the job is running.
3. Otherwise the tail of the log decides between completed and failed.
4. Without a pid file the scheduler's live queue is consulted,
5. and after that its accounting history.
6. If none of that is conclusive the job is considered completed.

Steps 3 and 6 default to completed when the evidence is ambiguous. This can report a
failed job as completed, but it means that every query resolves to a concrete state.
"""

from dataclasses import dataclass
import shlex
from typing import Dict, Iterable, Optional

from hpcbridge.channel import Channel
from hpcbridge.config import JobsConfig
from hpcbridge.constants import FAILURE_MARKERS, SUCCESS_MARKERS
from hpcbridge.errors import HpcBridgeError, UnknownJobError
from hpcbridge.jobs import scripts
from hpcbridge.jobs.descriptor import JobDescriptor, JobState, validate_job_id
from hpcbridge.jobs.index import JobIndex
from hpcbridge.jobs.scheduler import SlurmScheduler
from hpcbridge.logger import log


@dataclass
class JobLogs:
    """Log output of a job along with its derived state."""

    job_id: str
    state: JobState
    pid: str
    log: str
    log_file: str
    nextflow_log: str = ""


class JobStatusResolver:
    """Class that resolves the lifecycle state of jobs. It never modifies anything."""

    def __init__(
        self,
        channel: Channel,
        config: JobsConfig,
        scheduler: Optional[SlurmScheduler] = None,
        index: Optional[JobIndex] = None,
    ):
        """Instantiate a resolver that inspects the remote host through the channel."""
        self._channel = channel
        self._config = config
        self._scheduler = scheduler or SlurmScheduler(channel)
        self._index = index

    def resolve(self, job_id: str, working_directory: Optional[str] = None) -> JobState:
        """Determine the current state of a job."""
        job_id = validate_job_id(job_id)

        descriptor = self._locate(job_id, working_directory)

        if descriptor is not None:
            pid = self._read_pid(descriptor)

            if pid is not None:
                if self._is_alive(pid):
                    return JobState.RUNNING

                return self._state_from_log(descriptor)

        state = self._scheduler.queue_state(job_id)

        if state is None:
            state = self._scheduler.accounting_state(job_id)

        if state is None:
            log.debug(f"no evidence about job {job_id}, assuming it completed")
            state = JobState.COMPLETED

        return state

    def resolve_many(self, job_ids: Iterable[str]) -> Dict[str, JobState]:
        """
        Determine the states of multiple jobs.

        A job whose lookup fails (e.g. due to a connection error) is reported as
        unknown rather than failing the whole batch.
        """
        states = {}

        for job_id in job_ids:
            try:
                states[job_id] = self.resolve(job_id)
            except HpcBridgeError as e:
                log.error(f"failed to resolve state of job {job_id}: {e}")
                states[job_id] = JobState.UNKNOWN

        return states

    def logs(
        self, job_id: str, working_directory: Optional[str] = None, lines: int = 200
    ) -> JobLogs:
        """Retrieve the tail of a job's log along with its current state."""
        job_id = validate_job_id(job_id)

        descriptor = self._locate(job_id, working_directory, artifact="log")

        if descriptor is None:
            raise UnknownJobError(f"no log file found for job {job_id}")

        log_tail = self._tail(descriptor.log_file, lines)
        pid = self._read_pid(descriptor)

        state = JobState.UNKNOWN

        if pid is not None:
            if self._is_alive(pid):
                state = JobState.RUNNING
            else:
                state = self._classify_log(log_tail)

        nextflow_log = self._tail(
            f"{descriptor.working_directory}/.nextflow.log", lines // 2
        )

        return JobLogs(
            job_id=job_id,
            state=state,
            pid=str(pid) if pid is not None else "",
            log=log_tail,
            log_file=descriptor.log_file,
            nextflow_log=nextflow_log,
        )

    def cancel(self, job_id: str) -> bool:
        """Send the scheduler's cancel signal. Poll the state to observe the effect."""
        return self._scheduler.cancel(job_id)

    #
    # Evidence gathering
    #

    def _locate(
        self, job_id: str, working_directory: Optional[str], artifact: str = "pid"
    ) -> Optional[JobDescriptor]:
        """Find the working directory of a job by looking for one of its artifacts."""
        prefix = self._config.artifact_prefix

        candidates = []

        if working_directory:
            candidates.append(working_directory)
        elif self._index is not None:
            indexed = self._index.lookup(job_id)

            if indexed:
                candidates.append(indexed)

        for directory in candidates:
            descriptor = JobDescriptor.create(job_id, directory, prefix)

            if self._channel.exists(self._artifact_path(descriptor, artifact)):
                return descriptor

        if working_directory or not self._config.base_path:
            return None

        # Without an index entry every project under the base path has to be searched
        name = f"{prefix}_{job_id}.{artifact}"
        output = self._channel.execute_command(
            f"find {shlex.quote(self._config.base_path)} -name {shlex.quote(name)} "
            "2>/dev/null | head -1"
        )
        path = output.stdout.strip()

        if not path:
            return None

        if artifact == "pid":
            return JobDescriptor.from_pid_file(path, prefix)

        directory = path[: -len(name)].rstrip("/") or "/"
        return JobDescriptor.create(job_id, directory, prefix)

    @staticmethod
    def _artifact_path(descriptor: JobDescriptor, artifact: str) -> str:
        if artifact == "log":
            return descriptor.log_file
        else:
            return descriptor.pid_file

    def _read_pid(self, descriptor: JobDescriptor) -> Optional[int]:
        """Read the pid file, returning None if it's missing or empty."""
        output = self._channel.execute_command(
            f"cat {shlex.quote(descriptor.pid_file)} 2>/dev/null"
        )
        pid = output.stdout.strip()

        if not pid.isdigit():
            return None

        return int(pid)

    def _is_alive(self, pid: int) -> bool:
        output = self._channel.execute_command(scripts.liveness_check(pid))
        return "alive" in output.stdout

    def _tail(self, path: str, lines: int) -> str:
        output = self._channel.execute_command(
            f"tail -n {int(lines)} {shlex.quote(path)} 2>/dev/null"
        )
        return output.stdout

    def _state_from_log(self, descriptor: JobDescriptor) -> JobState:
        log_tail = self._tail(descriptor.log_file, self._config.log_tail_lines)
        return self._classify_log(log_tail)

    @staticmethod
    def _classify_log(log_tail: str) -> JobState:
        """Decide the outcome of a finished job from the end of its log."""
        if any(marker in log_tail for marker in SUCCESS_MARKERS):
            return JobState.COMPLETED
        elif any(marker in log_tail for marker in FAILURE_MARKERS):
            return JobState.FAILED
        else:
            # Ambiguous, e.g. a non-zero exit code without any error output
            return JobState.COMPLETED
