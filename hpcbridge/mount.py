"""
Module that attaches the remote file system to a local mount point using sshfs.

The mount point is state shared by every process on the machine, so its state is
never cached: the system's mount table is the single source of truth and is read on
every query. Transitions are serialized with an inter-process lock and are
idempotent, which makes concurrent callers of mount() and unmount() converge on the
same observed state.
"""

from dataclasses import dataclass
import os
import re
import shutil
import subprocess
from typing import List, Optional, Set

import fasteners
import semver

from hpcbridge.config import ConnectionConfig, MountConfig, StorageConfig, StorageMode
from hpcbridge.constants import MOUNT_TOOL, UNMOUNT_COMMANDS
from hpcbridge.errors import (
    AlreadyInDesiredStateError,
    HpcBridgeError,
    MountError,
    ToolUnavailableError,
)
from hpcbridge.logger import log


@dataclass
class MountState:
    """Live state of the local mount of the remote file system."""

    mount_point: str
    remote_base_path: str
    is_mounted: bool
    tool_available: bool
    tool_version: Optional[semver.VersionInfo] = None


@dataclass
class MountResult:
    """Outcome of a successful mount or unmount call."""

    changed: bool
    message: str


class MountManager:
    """Class that mounts and unmounts the remote base path at the local mount point."""

    def __init__(
        self, config: MountConfig, storage: StorageConfig, connection: ConnectionConfig
    ):
        """Instantiate the mount manager from the relevant configuration sections."""
        self._config = config
        self._storage = storage
        self._connection = connection

    #
    # Queries
    #

    def is_mounted(self, mount_point: Optional[str] = None) -> bool:
        """Check if there is a file system mounted at the mount point."""
        mount_point = os.path.normpath(mount_point or self._storage.mount_point)
        return mount_point in self._mounted_paths()

    @staticmethod
    def is_tool_available() -> bool:
        """Check if the sshfs helper is installed."""
        return shutil.which(MOUNT_TOOL) is not None

    @staticmethod
    def tool_version() -> Optional[semver.VersionInfo]:
        """Determine the version of the installed sshfs helper."""
        try:
            proc = subprocess.run(
                [MOUNT_TOOL, "--version"], capture_output=True, timeout=10
            )
        except (OSError, subprocess.SubprocessError) as e:
            log.debug(f"failed to query {MOUNT_TOOL} version: {e}")
            return None

        output = (proc.stdout + proc.stderr).decode(errors="replace")
        match = re.search(r"sshfs version (\d+)\.(\d+)(?:\.(\d+))?", output, re.I)

        if not match:
            return None

        major, minor, patch = match.groups()
        return semver.VersionInfo(int(major), int(minor), int(patch or 0))

    def status(self) -> MountState:
        """Query the current mount state."""
        tool_available = self.is_tool_available()

        return MountState(
            mount_point=self._storage.mount_point,
            remote_base_path=self._storage.remote_base_path,
            is_mounted=self.is_mounted(),
            tool_available=tool_available,
            tool_version=self.tool_version() if tool_available else None,
        )

    @staticmethod
    def ensure_mount_point(mount_point: str) -> None:
        """Create the mount point directory if it doesn't exist yet."""
        try:
            os.makedirs(mount_point, exist_ok=True)
        except FileExistsError as e:
            raise MountError(f"mount point {mount_point} is not a directory") from e
        except OSError as e:
            raise MountError(f"failed to create mount point {mount_point}: {e}") from e

    #
    # Transitions
    #

    def mount(self) -> MountResult:
        """Mount the remote base path, or do nothing if it's already mounted."""
        with fasteners.InterProcessLock(self._config.lock_path):
            try:
                return self._attach()
            except AlreadyInDesiredStateError as e:
                log.info(str(e))
                return MountResult(changed=False, message=str(e))

    def unmount(self) -> MountResult:
        """Unmount the remote base path, or do nothing if it's not mounted."""
        with fasteners.InterProcessLock(self._config.lock_path):
            try:
                return self._detach()
            except AlreadyInDesiredStateError as e:
                log.info(str(e))
                return MountResult(changed=False, message=str(e))

    def auto_mount(self) -> Optional[MountResult]:
        """Mount at startup if storage is in mounted mode and auto mount is enabled."""
        if self._storage.mode != StorageMode.MOUNTED or not self._config.auto_mount:
            return None

        log.info("auto mount is enabled, attempting to mount")

        try:
            result = self.mount()
        except HpcBridgeError as e:
            # The process can still run in a degraded mode where file access fails
            log.error(f"auto mount failed: {e}")
            return None

        log.info(result.message)
        return result

    def _attach(self) -> MountResult:
        mount_point = self._storage.mount_point

        if self.is_mounted(mount_point):
            raise AlreadyInDesiredStateError(f"already mounted at {mount_point}")

        if not self._connection.host or not self._connection.username:
            raise ValueError("SSH host and username are required for mounting")

        if not self.is_tool_available():
            raise ToolUnavailableError(
                f"{MOUNT_TOOL} is not installed (install sshfs or fuse-sshfs)"
            )

        self.ensure_mount_point(mount_point)
        self._run(self._compose_mount_command())

        remote = f"{self._connection.host}:{self._storage.remote_base_path}"
        message = f"mounted {remote} at {mount_point}"
        log.info(message)

        return MountResult(changed=True, message=message)

    def _detach(self) -> MountResult:
        mount_point = self._storage.mount_point

        if not self.is_mounted(mount_point):
            raise AlreadyInDesiredStateError(f"not mounted at {mount_point}")

        errors = []

        # Prefer the FUSE specific helper and fall back to a regular umount
        for command in UNMOUNT_COMMANDS:
            try:
                self._run([*command, mount_point])
            except (MountError, ToolUnavailableError) as e:
                log.debug(f"{command[0]} failed to unmount {mount_point}: {e}")
                errors.append(str(e))
            else:
                message = f"unmounted {mount_point}"
                log.info(message)
                return MountResult(changed=True, message=message)

        raise MountError(f"failed to unmount {mount_point}: {'; '.join(errors)}")

    def _compose_mount_command(self) -> List[str]:
        """Compose the sshfs invocation with its reconnect and keep-alive options."""
        remote = (
            f"{self._connection.username}@{self._connection.host}:"
            f"{self._storage.remote_base_path}"
        )

        command = [MOUNT_TOOL, remote, self._storage.mount_point]

        options = [
            "reconnect",
            f"ServerAliveInterval={self._config.keepalive_interval}",
            f"ServerAliveCountMax={self._config.keepalive_count}",
            f"Port={self._connection.port}",
        ]

        if self._connection.key_file:
            options.append(f"IdentityFile={self._connection.key_file}")

        for option in options:
            command.extend(["-o", option])

        return command

    def _run(self, command: List[str]) -> None:
        """Run a mount helper command and raise a descriptive error if it fails."""
        log.debug(f"running {command}")

        try:
            subprocess.run(
                command, check=True, capture_output=True, timeout=self._config.timeout
            )
        except FileNotFoundError:
            raise ToolUnavailableError(f"{command[0]} is not installed")
        except subprocess.CalledProcessError as e:
            stderr = e.stderr.decode(errors="replace").strip() if e.stderr else ""
            raise MountError(f"{command[0]} failed: {stderr or e.returncode}")
        except subprocess.TimeoutExpired:
            raise MountError(f"{command[0]} timed out after {self._config.timeout}s")

    @staticmethod
    def _mounted_paths() -> Set[str]:
        """Read the paths of all current mounts from the system's mount table."""
        try:
            with open("/proc/mounts", "rb") as f:
                mount_lines = f.readlines()
        except FileNotFoundError:
            return MountManager._mounted_paths_from_command()

        paths = set()

        for line in mount_lines:
            fields = line.split(b" ")

            if len(fields) > 1:
                # Unescape paths with spaces and other strange characters
                paths.add(fields[1].decode("unicode-escape"))

        return paths

    @staticmethod
    def _mounted_paths_from_command() -> Set[str]:
        """Parse the output of mount(8) on systems without /proc/mounts."""
        try:
            output = subprocess.check_output(["mount"], stderr=subprocess.DEVNULL)
        except (OSError, subprocess.CalledProcessError) as e:
            log.error(f"failed to read mount table: {e}")
            return set()

        paths = set()

        for line in output.decode(errors="replace").splitlines():
            match = re.search(r" on (.+?) (?:type |\()", line)

            if match:
                paths.add(match.group(1))

        return paths
