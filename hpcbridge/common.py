"""Data structures used by multiple hpcbridge components."""

from __future__ import annotations

from dataclasses import dataclass
import os
import stat
from typing import List


@dataclass
class FileEntry:
    """Directory listing entry, identical for remote and mounted file access."""

    name: str
    size: int
    mtime: int
    is_dir: bool

    @staticmethod
    def from_stat(name: str, st: os.stat_result) -> FileEntry:
        """Instantiate from a local os.stat_result (or anything with st_* fields)."""
        return FileEntry(
            name=name,
            size=st.st_size or 0,
            mtime=int(st.st_mtime or 0),
            is_dir=stat.S_ISDIR(st.st_mode or 0),
        )


@dataclass
class CommandOutput:
    """Captured result of a command executed on the remote host."""

    stdout: str
    stderr: str
    exit_status: int

    @property
    def ok(self) -> bool:
        """Whether the command exited successfully."""
        return self.exit_status == 0


def sort_entries(entries: List[FileEntry]) -> List[FileEntry]:
    """Sort a directory listing with directories first, then by name."""
    return sorted(entries, key=lambda e: (not e.is_dir, e.name))
