"""Path translation and the interface shared by both storage modes."""

from abc import ABC, abstractmethod
from typing import List

from hpcbridge.common import FileEntry


class PathTranslator:
    """
    Translate paths between their remote-canonical and local-mount representations.

    Translation is an exact prefix replacement of the remote base path with the mount
    point (and vice versa). Prefixes only match on whole path components, so with a
    base of /data/base the path /data/base2 is left alone. Paths outside of the base
    pass through unchanged.
    """

    def __init__(self, remote_base_path: str, mount_point: str):
        """Instantiate a translator for the given remote base and local mount point."""
        self._remote_base = self._normalize(remote_base_path)
        self._mount_point = self._normalize(mount_point)

    @property
    def remote_base_path(self) -> str:
        return self._remote_base

    @property
    def mount_point(self) -> str:
        return self._mount_point

    def to_local(self, remote_path: str) -> str:
        """Convert a remote path to the corresponding path under the mount point."""
        return self._replace_prefix(remote_path, self._remote_base, self._mount_point)

    def to_remote(self, local_path: str) -> str:
        """Convert a path under the mount point to its remote-canonical path."""
        return self._replace_prefix(local_path, self._mount_point, self._remote_base)

    @staticmethod
    def _normalize(path: str) -> str:
        """Strip trailing separators, except for the root directory itself."""
        if not path:
            return ""

        return path.rstrip("/") or "/"

    @staticmethod
    def _replace_prefix(path: str, old: str, new: str) -> str:
        # An unconfigured base doesn't translate anything
        if not old or not new:
            return path

        if path == old:
            return new

        prefix = old if old.endswith("/") else old + "/"

        if not path.startswith(prefix):
            return path

        new_prefix = new if new.endswith("/") else new + "/"

        return new_prefix + path[len(prefix) :]


class Storage(ABC):
    """
    Uniform file access to the remote host.

    All paths are remote-canonical: callers never need to know whether the backing
    implementation talks to the remote host directly or goes through a mount.
    """

    @abstractmethod
    def list_directory(self, path: str) -> List[FileEntry]:
        """List a directory with directories first, then sorted by name."""

    @abstractmethod
    def read_file(self, path: str) -> bytes:
        """Read the complete contents of a file."""

    @abstractmethod
    def write_file(self, path: str, data: bytes) -> None:
        """Create or replace a file, creating missing parent directories."""

    @abstractmethod
    def make_directory(self, path: str) -> None:
        """Create a directory and any missing parents."""

    @abstractmethod
    def remove(self, path: str) -> None:
        """Recursively remove a file or directory; missing paths are not an error."""

    @abstractmethod
    def exists(self, path: str) -> bool:
        """Check if a file or directory exists."""

    def read_text(self, path: str) -> str:
        """Read a file as UTF-8 text."""
        return self.read_file(path).decode("utf-8")

    def write_text(self, path: str, content: str) -> None:
        """Write UTF-8 text to a file."""
        self.write_file(path, content.encode("utf-8"))
