"""Data structures describing a job and the artifact files that record it."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
import posixpath
import re
import threading
import time

from hpcbridge.constants import ARTIFACT_PREFIX, JOB_ID_PATTERN
from hpcbridge.errors import UnknownJobError


class JobState(Enum):
    """Lifecycle state of a job. Always derived from evidence, never stored."""

    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class JobDescriptor:
    """
    Paths of the artifact files that make up the durable record of one job.

    All files live in the job's working directory and are named after the job id, so
    the descriptor can always be derived again from the job id and working directory.
    """

    job_id: str
    working_directory: str
    log_file: str
    pid_file: str
    command_file: str
    error_file: str
    launcher_script: str
    runner_script: str

    @staticmethod
    def create(
        job_id: str, working_directory: str, prefix: str = ARTIFACT_PREFIX
    ) -> JobDescriptor:
        """Derive the artifact paths of a job inside its working directory."""
        validate_job_id(job_id)

        working_directory = working_directory.rstrip("/") or "/"
        stem = posixpath.join(working_directory, f"{prefix}_{job_id}")

        return JobDescriptor(
            job_id=job_id,
            working_directory=working_directory,
            log_file=f"{stem}.log",
            pid_file=f"{stem}.pid",
            command_file=f"{stem}.cmd",
            error_file=f"{stem}.err",
            launcher_script=f"{stem}_launcher.sh",
            runner_script=f"{stem}.sh",
        )

    @staticmethod
    def from_pid_file(pid_file: str, prefix: str = ARTIFACT_PREFIX) -> JobDescriptor:
        """Derive the descriptor of the job that a pid file found on disk belongs to."""
        name = posixpath.basename(pid_file)
        match = re.match(rf"^{re.escape(prefix)}_(.+)\.pid$", name)

        if not match:
            raise UnknownJobError(f"{pid_file} is not a job pid file")

        return JobDescriptor.create(match.group(1), posixpath.dirname(pid_file), prefix)

    def artifact_name(self, path: str) -> str:
        """Return the file name of one of the artifact paths."""
        return posixpath.basename(path)


def validate_job_id(job_id: str) -> str:
    """Ensure that a job id is safe to interpolate into remote shell commands."""
    if not re.fullmatch(JOB_ID_PATTERN, job_id or ""):
        raise UnknownJobError(f"invalid job id '{job_id}'")

    return job_id


class JobIdGenerator:
    """
    Generator of time-based job identifiers.

    Identifiers are the current time in milliseconds, bumped when needed so that they
    strictly increase within one process. Separate processes launching within the same
    millisecond can still produce the same identifier.
    """

    def __init__(self) -> None:
        """Instantiate a generator that hasn't produced any identifiers yet."""
        self._lock = threading.Lock()
        self._last = 0

    def next(self) -> str:
        """Produce the next job identifier."""
        with self._lock:
            self._last = max(int(time.time() * 1000), self._last + 1)
            return str(self._last)


# Default generator shared by all launchers in the process
new_job_id = JobIdGenerator().next
