from unittest import mock
import subprocess

import pytest
import semver

from hpcbridge.config import ConnectionConfig, MountConfig, StorageConfig, StorageMode
from hpcbridge.errors import MountError, ToolUnavailableError
from hpcbridge.mount import MountManager


class FakeMountTable:
    """Mount table that sshfs and fusermount invocations are applied to."""

    def __init__(self):
        self.paths = {"/", "/proc"}
        self.commands = []
        self.failing = set()

    def run(self, command, **kwargs):
        self.commands.append(command)

        if command[0] in self.failing:
            raise subprocess.CalledProcessError(1, command, stderr=b"device busy")

        if command[0] == "sshfs":
            self.paths.add(command[2])
        elif command[0] in ("fusermount", "umount"):
            self.paths.discard(command[-1])

        return subprocess.CompletedProcess(command, 0, b"", b"")


@pytest.fixture
def table():
    fake = FakeMountTable()

    with mock.patch("subprocess.run", side_effect=fake.run):
        with mock.patch.object(
            MountManager, "_mounted_paths", side_effect=lambda: set(fake.paths)
        ):
            with mock.patch("shutil.which", return_value="/usr/bin/sshfs"):
                yield fake


@pytest.fixture
def manager(tmp_path):
    return MountManager(
        MountConfig(lock_path=str(tmp_path / "mount.lock")),
        StorageConfig(
            mode=StorageMode.MOUNTED,
            mount_point=str(tmp_path / "hpc"),
            remote_base_path="/data/projects",
        ),
        ConnectionConfig(
            host="hpc.example.org", port=2222, username="alice", key_file="/keys/id"
        ),
    )


def test_mount(table, manager, tmp_path):
    result = manager.mount()

    assert result.changed
    assert manager.is_mounted()
    assert (tmp_path / "hpc").is_dir()

    assert table.commands[0] == [
        "sshfs",
        "alice@hpc.example.org:/data/projects",
        str(tmp_path / "hpc"),
        "-o",
        "reconnect",
        "-o",
        "ServerAliveInterval=15",
        "-o",
        "ServerAliveCountMax=3",
        "-o",
        "Port=2222",
        "-o",
        "IdentityFile=/keys/id",
    ]


def test_mount_twice(table, manager):
    manager.mount()
    result = manager.mount()

    assert not result.changed
    assert "already mounted" in result.message
    assert len(table.commands) == 1


def test_unmount(table, manager):
    manager.mount()
    result = manager.unmount()

    assert result.changed
    assert not manager.is_mounted()
    assert table.commands[-1][0] == "fusermount"


def test_unmount_when_not_mounted(table, manager):
    result = manager.unmount()

    assert not result.changed
    assert "not mounted" in result.message
    assert table.commands == []


def test_unmount_falls_back_to_umount(table, manager):
    manager.mount()
    table.failing.add("fusermount")

    result = manager.unmount()

    assert result.changed
    assert table.commands[-1][0] == "umount"


def test_unmount_failure(table, manager):
    manager.mount()
    table.failing.update({"fusermount", "umount"})

    with pytest.raises(MountError):
        manager.unmount()

    assert manager.is_mounted()


def test_mount_failure(table, manager):
    table.failing.add("sshfs")

    with pytest.raises(MountError) as e:
        manager.mount()

    assert "device busy" in str(e.value)


def test_mount_without_tool(table, manager):
    with mock.patch("shutil.which", return_value=None):
        with pytest.raises(ToolUnavailableError):
            manager.mount()


def test_mount_requires_host_and_user(table, tmp_path):
    manager = MountManager(
        MountConfig(lock_path=str(tmp_path / "mount.lock")),
        StorageConfig(mount_point=str(tmp_path / "hpc")),
        ConnectionConfig(username=None),
    )

    with pytest.raises(ValueError):
        manager.mount()


def test_auto_mount(table, manager):
    manager._config.auto_mount = True

    result = manager.auto_mount()

    assert result.changed
    assert manager.is_mounted()


def test_auto_mount_disabled(table, manager):
    assert manager.auto_mount() is None
    assert table.commands == []


def test_auto_mount_failure_nonfatal(table, manager, caplog):
    manager._config.auto_mount = True
    table.failing.add("sshfs")

    assert manager.auto_mount() is None
    assert "auto mount failed" in caplog.text


def test_status(table, manager, tmp_path):
    table.paths.add(str(tmp_path / "hpc"))

    with mock.patch.object(
        MountManager, "tool_version", return_value=semver.VersionInfo(3, 7, 3)
    ):
        state = manager.status()

    assert state.is_mounted
    assert state.tool_available
    assert state.tool_version.major == 3
    assert state.remote_base_path == "/data/projects"


def test_state_is_never_cached(table, manager, tmp_path):
    assert not manager.is_mounted()

    # Another process mounts in the meanwhile
    table.paths.add(str(tmp_path / "hpc"))

    assert manager.is_mounted()


def test_tool_version():
    proc = subprocess.CompletedProcess([], 0, b"SSHFS version 3.7.3\n", b"")

    with mock.patch("subprocess.run", return_value=proc):
        version = MountManager.tool_version()

    assert version == semver.VersionInfo(3, 7, 3)


def test_tool_version_missing():
    with mock.patch("subprocess.run", side_effect=FileNotFoundError()):
        assert MountManager.tool_version() is None


def test_mounted_paths_unescaped(tmp_path):
    mounts = (
        b"proc /proc proc rw 0 0\n"
        b"alice@hpc:/data /mnt/my\\040hpc fuse.sshfs rw 0 0\n"
    )

    with mock.patch("builtins.open", mock.mock_open(read_data=mounts)):
        paths = MountManager._mounted_paths()

    assert "/mnt/my hpc" in paths
    assert "/proc" in paths


def test_mounted_paths_from_command():
    output = (
        b"/dev/disk1s1 on / (apfs, local, journaled)\n"
        b"alice@hpc:/data on /Volumes/hpc (macfuse, nodev, nosuid)\n"
        b"proc on /proc type proc (rw)\n"
    )

    with mock.patch("subprocess.check_output", return_value=output):
        paths = MountManager._mounted_paths_from_command()

    assert paths == {"/", "/Volumes/hpc", "/proc"}


def test_mount_point_is_a_file(table, manager, tmp_path):
    (tmp_path / "hpc").write_text("not a directory")

    with pytest.raises(MountError):
        MountManager.ensure_mount_point(str(tmp_path / "hpc"))

    with pytest.raises(MountError) as e:
        manager.mount()

    assert "not a directory" in str(e.value)
    assert table.commands == []
