"""
Modules that launch detached jobs on the remote host and find out what became of them.

A job is identified by a locally generated id and recorded by a handful of artifact
files in its working directory on the remote host (see descriptor.JobDescriptor):

* <prefix>_<id>.cmd: the submitted command, for auditing only
* <prefix>_<id>.sh: runner script that sets up the environment and runs the command
* <prefix>_<id>_launcher.sh: script that detaches the runner from the SSH session
* <prefix>_<id>.pid: pid of the detached runner
* <prefix>_<id>.log: start banner, all output of the command, and an end banner
* <prefix>_<id>.err: anything the launcher printed before the runner detached

These files are the only record of the job. There is no central ledger, so any
process that can reach the remote host can determine a job's state later on.
"""

from .descriptor import JobDescriptor, JobState
from .index import JobIndex
from .launcher import JobLauncher, LaunchResult
from .scheduler import SlurmScheduler
from .status import JobLogs, JobStatusResolver

__all__ = [
    "JobDescriptor",
    "JobIndex",
    "JobLauncher",
    "JobLogs",
    "JobState",
    "JobStatusResolver",
    "LaunchResult",
    "SlurmScheduler",
]
