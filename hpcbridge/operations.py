"""Module that wires the components together for each command-line action."""

import dataclasses
import datetime
import sys
from typing import Callable, Dict, Optional

from hpcbridge.args import Arguments
from hpcbridge.channel import Channel
from hpcbridge.config import Config
from hpcbridge.jobs import (
    JobIndex,
    JobLauncher,
    JobState,
    JobStatusResolver,
    LaunchResult,
    SlurmScheduler,
)
from hpcbridge.logger import log
from hpcbridge.mount import MountManager
import hpcbridge.pipeline as pipeline
from hpcbridge.storage import create_storage, Storage


class Operations:
    """Class that runs one action against the configured remote host."""

    def __init__(self, args: Arguments, config: Config):
        """Initialize operations based on command-line arguments and configuration."""
        self._args = args
        self._config = config

        self._channel = Channel(config.connection)
        self._mount = MountManager(config.mount, config.storage, config.connection)
        self._index = JobIndex(config.jobs.index_path, config.jobs.index_max_entries)
        self._scheduler = SlurmScheduler(self._channel, config.scheduler)

    def run(self) -> int:
        """Run the selected action and return the exit code."""
        actions: Dict[str, Callable[[], int]] = {
            "check": self._check,
            "ls": self._list_directory,
            "cat": self._read_file,
            "put": self._write_file,
            "mkdir": self._make_directory,
            "rm": self._remove,
            "submit": self._submit,
            "pipeline": self._pipeline,
            "status": self._status,
            "logs": self._logs,
            "cancel": self._cancel,
            "mount": self._mount_remote,
            "unmount": self._unmount_remote,
            "mount-status": self._mount_status,
        }

        return actions[self._args.action]()

    #
    # Connection and file access
    #

    def _check(self) -> int:
        self._channel.check()
        self._write(f"connected to {self._channel.destination}")
        return 0

    def _storage(self) -> Storage:
        self._mount.auto_mount()
        return create_storage(self._config.storage, self._channel)

    def _list_directory(self) -> int:
        for entry in self._storage().list_directory(self._args.path):
            mtime = datetime.datetime.fromtimestamp(entry.mtime).isoformat(" ")
            name = entry.name + "/" if entry.is_dir else entry.name
            self._write(f"{entry.size:>12}  {mtime}  {name}")

        return 0

    def _read_file(self) -> int:
        data = self._storage().read_file(self._args.path)
        sys.stdout.buffer.write(data)
        sys.stdout.buffer.flush()
        return 0

    def _write_file(self) -> int:
        with open(self._args.source, "rb") as f:
            data = f.read()

        self._storage().write_file(self._args.destination, data)
        log.info(f"uploaded {len(data)} bytes to {self._args.destination}")
        return 0

    def _make_directory(self) -> int:
        self._storage().make_directory(self._args.path)
        return 0

    def _remove(self) -> int:
        self._storage().remove(self._args.path)
        return 0

    #
    # Jobs
    #

    def _launcher(self) -> JobLauncher:
        config = self._config.jobs

        if self._args.no_wait:
            config = dataclasses.replace(config, settle_delay=0.0)

        return JobLauncher(self._channel, config, self._index)

    def _resolver(self) -> JobStatusResolver:
        return JobStatusResolver(
            self._channel, self._config.jobs, self._scheduler, self._index
        )

    def _submit(self) -> int:
        command = " ".join(self._args.command)

        if not command:
            log.error("no command to submit")
            return 1

        result = self._launcher().launch(self._args.working_directory, command)
        self._write_launch_result(result)
        return 0

    def _pipeline(self) -> int:
        options = pipeline.PipelineOptions(
            trimming_tool=self._args.trimming_tool,
            assembler=self._args.assembler,
            min_contig_length=self._args.min_contig_length,
            quality=self._args.quality,
            profile=self._args.profile,
            queue=self._args.queue,
            **{f"skip_{stage}": True for stage in self._args.skip},
        )

        command = pipeline.build_command(
            self._args.project_path, options, self._config.pipeline
        )

        result = self._launcher().launch(self._args.project_path, command)
        self._write_launch_result(result)
        return 0

    def _status(self) -> int:
        resolver = self._resolver()

        if len(self._args.job_ids) == 1:
            job_id = self._args.job_ids[0]
            states = {
                job_id: resolver.resolve(job_id, self._args.working_directory)
            }
        else:
            states = resolver.resolve_many(self._args.job_ids)

        for job_id, state in states.items():
            self._write(f"{job_id}\t{state.value}")

        if any(state == JobState.UNKNOWN for state in states.values()):
            return 1

        return 0

    def _logs(self) -> int:
        job_logs = self._resolver().logs(
            self._args.job_ids[0], self._args.working_directory, self._args.lines
        )

        self._write(f"Job ID: {job_logs.job_id}")
        self._write(f"State: {job_logs.state.value}")
        self._write(f"PID: {job_logs.pid or '-'}")
        self._write(f"Log file: {job_logs.log_file}")
        self._write("")
        self._write(job_logs.log.rstrip("\n"))

        if job_logs.nextflow_log:
            self._write("")
            self._write("=== .nextflow.log ===")
            self._write(job_logs.nextflow_log.rstrip("\n"))

        return 0

    def _cancel(self) -> int:
        job_id = self._args.job_ids[0]

        if not self._resolver().cancel(job_id):
            self._write(f"failed to cancel job {job_id}")
            return 1

        self._write(f"cancel signal sent to job {job_id}")
        return 0

    #
    # Mount
    #

    def _mount_remote(self) -> int:
        self._write(self._mount.mount().message)
        return 0

    def _unmount_remote(self) -> int:
        self._write(self._mount.unmount().message)
        return 0

    def _mount_status(self) -> int:
        state = self._mount.status()

        version: Optional[str] = str(state.tool_version) if state.tool_version else None

        self._write(f"mount point: {state.mount_point}")
        self._write(f"remote base path: {state.remote_base_path or '-'}")
        self._write(f"mounted: {'yes' if state.is_mounted else 'no'}")
        self._write(
            f"sshfs available: {'yes' if state.tool_available else 'no'}"
            + (f" (version {version})" if version else "")
        )
        return 0

    #
    # Output
    #

    def _write_launch_result(self, result: LaunchResult) -> None:
        self._write(f"Job ID: {result.job_id}")
        self._write(f"Working directory: {result.descriptor.working_directory}")
        self._write(f"Log file: {result.descriptor.log_file}")

        if result.diagnostic_output:
            self._write("")
            self._write(result.diagnostic_output)

    @staticmethod
    def _write(line: str) -> None:
        sys.stdout.write(line + "\n")
        sys.stdout.flush()
