"""Module for configuration variables with defaults that are overridable by a file."""

from __future__ import annotations

from configparser import ConfigParser, SectionProxy
from dataclasses import dataclass, field
from enum import Enum
import os
from typing import Optional

from hpcbridge.constants import ARTIFACT_PREFIX
from hpcbridge.logger import log


class StorageMode(Enum):
    """How the remote file system is accessed for the lifetime of the process."""

    ON_DEMAND = "on-demand"
    MOUNTED = "mounted"

    @staticmethod
    def parse(value: str) -> StorageMode:
        """Parse a storage mode, accepting the historical "sftp" and "mount" names."""
        aliases = {
            "on-demand": StorageMode.ON_DEMAND,
            "sftp": StorageMode.ON_DEMAND,
            "mounted": StorageMode.MOUNTED,
            "mount": StorageMode.MOUNTED,
        }

        try:
            return aliases[value.strip().lower()]
        except KeyError:
            raise ValueError(f"unknown storage mode '{value}'")


def _optional(
    section: SectionProxy, name: str, fallback: Optional[str]
) -> Optional[str]:
    """Read a string option where an empty value means "not set"."""
    value = section.get(name, fallback=fallback)
    return value if value else None


@dataclass
class ConnectionConfig:
    """Configuration variables related to the SSH connection to the remote host."""

    host: str = "localhost"
    port: int = 22
    username: Optional[str] = None
    password: Optional[str] = None
    key_file: Optional[str] = None

    strict_host_keys: bool = False

    # Seconds until the TCP connection must be established
    connect_timeout: float = 10.0
    # Seconds until the session must be ready for use (banner and authentication)
    ready_timeout: float = 30.0
    # Seconds a single command may run before it is aborted
    command_timeout: float = 60.0

    @staticmethod
    def load(section: SectionProxy) -> ConnectionConfig:
        """Load overridden variables from a section within a config file."""
        config = ConnectionConfig()

        config.host = section.get("host", fallback=config.host)
        config.port = section.getint("port", fallback=config.port)
        config.username = _optional(section, "username", config.username)
        config.password = _optional(section, "password", config.password)

        key_file = _optional(section, "key_file", config.key_file)
        config.key_file = os.path.expanduser(key_file) if key_file else None

        config.strict_host_keys = section.getboolean(
            "strict_host_keys", fallback=config.strict_host_keys
        )

        config.connect_timeout = section.getfloat(
            "connect_timeout", fallback=config.connect_timeout
        )
        config.ready_timeout = section.getfloat(
            "ready_timeout", fallback=config.ready_timeout
        )
        config.command_timeout = section.getfloat(
            "command_timeout", fallback=config.command_timeout
        )

        return config


@dataclass
class StorageConfig:
    """Configuration variables related to file access on the remote host."""

    mode: StorageMode = StorageMode.ON_DEMAND

    # Local directory where the remote base path is mounted
    mount_point: str = "/mnt/hpc"
    # Remote directory that is exposed at the mount point
    remote_base_path: str = ""

    @staticmethod
    def load(section: SectionProxy) -> StorageConfig:
        """Load overridden variables from a section within a config file."""
        config = StorageConfig()

        config.mode = StorageMode.parse(section.get("mode", fallback=config.mode.value))
        config.mount_point = section.get("mount_point", fallback=config.mount_point)
        config.remote_base_path = section.get(
            "remote_base_path", fallback=config.remote_base_path
        )

        return config


@dataclass
class MountConfig:
    """Configuration variables related to the sshfs mount."""

    auto_mount: bool = False

    keepalive_interval: int = 15
    keepalive_count: int = 3

    # Seconds the mount helper may take to attach or detach
    timeout: float = 60.0

    lock_path: str = os.path.expanduser("~/.hpcbridge/mount.lock")

    @staticmethod
    def load(section: SectionProxy) -> MountConfig:
        """Load overridden variables from a section within a config file."""
        config = MountConfig()

        config.auto_mount = section.getboolean("auto_mount", fallback=config.auto_mount)
        config.keepalive_interval = section.getint(
            "keepalive_interval", fallback=config.keepalive_interval
        )
        config.keepalive_count = section.getint(
            "keepalive_count", fallback=config.keepalive_count
        )
        config.timeout = section.getfloat("timeout", fallback=config.timeout)
        config.lock_path = os.path.expanduser(
            section.get("lock_path", fallback=config.lock_path)
        )

        return config


@dataclass
class JobsConfig:
    """Configuration variables related to launching and inspecting jobs."""

    # Remote directory under which all project working directories live
    base_path: str = ""

    artifact_prefix: str = ARTIFACT_PREFIX

    # Conda environment activated by the runner script, if any
    environment: Optional[str] = None

    # Seconds to wait after launching before collecting diagnostics
    settle_delay: float = 2.0

    # Number of log lines inspected for success and failure markers
    log_tail_lines: int = 50

    index_path: str = os.path.expanduser("~/.hpcbridge/jobs.json")

    # Oldest entries are dropped from the job index beyond this many jobs
    index_max_entries: int = 1000

    @staticmethod
    def load(section: SectionProxy) -> JobsConfig:
        """Load overridden variables from a section within a config file."""
        config = JobsConfig()

        config.base_path = section.get("base_path", fallback=config.base_path)
        config.artifact_prefix = section.get(
            "artifact_prefix", fallback=config.artifact_prefix
        )
        config.environment = _optional(section, "environment", config.environment)
        config.settle_delay = section.getfloat(
            "settle_delay", fallback=config.settle_delay
        )
        config.log_tail_lines = section.getint(
            "log_tail_lines", fallback=config.log_tail_lines
        )
        config.index_path = os.path.expanduser(
            section.get("index_path", fallback=config.index_path)
        )
        config.index_max_entries = section.getint(
            "index_max_entries", fallback=config.index_max_entries
        )

        return config


@dataclass
class SchedulerConfig:
    """Configuration variables related to the Slurm scheduler on the remote host."""

    # Run scheduler commands in a login shell so that its binaries are on PATH
    login_shell: bool = True

    @staticmethod
    def load(section: SectionProxy) -> SchedulerConfig:
        """Load overridden variables from a section within a config file."""
        config = SchedulerConfig()

        config.login_shell = section.getboolean(
            "login_shell", fallback=config.login_shell
        )

        return config


@dataclass
class PipelineConfig:
    """Configuration variables related to the Nextflow pipeline and its databases."""

    path: str = ""

    kraken2_db: str = ""
    checkv_db: str = ""
    blastdb_viruses: str = ""
    blastdb_nt: str = ""
    blastdb_nr: str = ""
    diamonddb: str = ""

    @staticmethod
    def load(section: SectionProxy) -> PipelineConfig:
        """Load overridden variables from a section within a config file."""
        config = PipelineConfig()

        for name in PipelineConfig.__dataclass_fields__:
            setattr(config, name, section.get(name, fallback=getattr(config, name)))

        return config


@dataclass
class Config:
    """Configuration variables."""

    connection: ConnectionConfig = field(default_factory=ConnectionConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    mount: MountConfig = field(default_factory=MountConfig)
    jobs: JobsConfig = field(default_factory=JobsConfig)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    pipeline: PipelineConfig = field(default_factory=PipelineConfig)

    @staticmethod
    def load(filename: str) -> Config:
        """Load overridden configuration variables from a config file."""
        parser = ConfigParser()

        config = Config()

        try:
            with open(filename, "r") as f:
                parser.read_string(f.read(), filename)

            if "connection" in parser:
                config.connection = ConnectionConfig.load(parser["connection"])
            if "storage" in parser:
                config.storage = StorageConfig.load(parser["storage"])
            if "mount" in parser:
                config.mount = MountConfig.load(parser["mount"])
            if "jobs" in parser:
                config.jobs = JobsConfig.load(parser["jobs"])
            if "scheduler" in parser:
                config.scheduler = SchedulerConfig.load(parser["scheduler"])
            if "pipeline" in parser:
                config.pipeline = PipelineConfig.load(parser["pipeline"])
        except FileNotFoundError:
            log.info(f"no config file at {filename}")
        except Exception as e:
            # An unreadable config file is not considered a fatal error since we can
            # fall back to defaults.
            log.error(f"failed to read config file {filename}: {e}")
        else:
            log.info(f"loaded config from {filename}")

        return config
