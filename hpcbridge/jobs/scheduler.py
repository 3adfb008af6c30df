"""Module that queries and signals the Slurm batch scheduler on the remote host."""

import shlex
from typing import Dict, Optional

from hpcbridge.channel import Channel
from hpcbridge.config import SchedulerConfig
from hpcbridge.errors import HpcBridgeError
from hpcbridge.jobs.descriptor import JobState, validate_job_id
from hpcbridge.logger import log

# Mapping of squeue states onto the job lifecycle. Cancelled jobs count as failed.
QUEUE_STATES: Dict[str, JobState] = {
    "PENDING": JobState.QUEUED,
    "CONFIGURING": JobState.QUEUED,
    "RUNNING": JobState.RUNNING,
    "COMPLETING": JobState.RUNNING,
    "COMPLETED": JobState.COMPLETED,
    "FAILED": JobState.FAILED,
    "CANCELLED": JobState.FAILED,
}

# Mapping of the terminal sacct states onto the job lifecycle.
ACCOUNTING_STATES: Dict[str, JobState] = {
    "COMPLETED": JobState.COMPLETED,
    "FAILED": JobState.FAILED,
    "CANCELLED": JobState.FAILED,
    "TIMEOUT": JobState.FAILED,
    "OUT_OF_MEMORY": JobState.FAILED,
    "NODE_FAIL": JobState.FAILED,
}


class SlurmScheduler:
    """Class that wraps the squeue, sacct and scancel commands."""

    def __init__(self, channel: Channel, config: Optional[SchedulerConfig] = None):
        """Instantiate the scheduler interface on top of a remote channel."""
        self._channel = channel
        self._config = config or SchedulerConfig()

    def queue_state(self, job_id: str) -> Optional[JobState]:
        """Look up a job in the live queue, returning None if it isn't there."""
        job_id = validate_job_id(job_id)
        state = self._query(f"squeue -j {job_id} -h -o %T")

        return self._map_state(state, QUEUE_STATES, "queue")

    def accounting_state(self, job_id: str) -> Optional[JobState]:
        """Look up a job's terminal state in the accounting history."""
        job_id = validate_job_id(job_id)
        state = self._query(f"sacct -j {job_id} -n -o State --parsable2")

        return self._map_state(state, ACCOUNTING_STATES, "accounting")

    def cancel(self, job_id: str) -> bool:
        """
        Send the cancel signal for a job.

        Only reports whether the signal was sent, the job may still take a while to
        actually stop. Poll its status to observe the effect.
        """
        job_id = validate_job_id(job_id)

        try:
            output = self._channel.execute_command(self._wrap(f"scancel {job_id}"))
        except HpcBridgeError as e:
            log.error(f"failed to cancel job {job_id}: {e}")
            return False

        if not output.ok:
            log.error(f"scancel for job {job_id} failed: {output.stderr.strip()}")
            return False

        return True

    def _query(self, command: str) -> str:
        """Run a query command and return the first state it reports."""
        output = self._channel.execute_command(self._wrap(f"{command} 2>/dev/null"))

        for line in output.stdout.splitlines():
            # States like "CANCELLED by 1234" carry extra details
            words = line.strip().split()

            if words:
                return words[0].upper()

        return ""

    @staticmethod
    def _map_state(
        state: str, mapping: Dict[str, JobState], source: str
    ) -> Optional[JobState]:
        if not state:
            return None

        if state not in mapping:
            log.debug(f"unmapped {source} state {state}")

        return mapping.get(state)

    def _wrap(self, command: str) -> str:
        """Run in a login shell so that the scheduler binaries are on PATH."""
        if self._config.login_shell:
            return f"bash -lc {shlex.quote(command)}"
        else:
            return command
