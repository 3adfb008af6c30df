"""
Module that implements the local index of where launched jobs live.

The artifact files on the remote host are the durable record of a job, so the index
is only an accelerator: without it the status resolver has to scan the whole base
path for a job's pid file, which costs one find(1) over every project per query. The
index maps job ids launched from this machine to their working directory so that the
pid file can be located directly.

The index is a JSON file shared by all hpcbridge processes on the machine. Updates
are read-modify-write under an inter-process lock so that concurrent launches don't
lose each other's entries. Entries are kept in the order they were recorded, and the
oldest ones are dropped once the index holds more than its maximum number of jobs.
Lookups of dropped jobs simply fall back to scanning the base path.
"""

import json
import os
from typing import Dict, Optional

import fasteners

from hpcbridge.logger import log


class JobIndex:
    """Persistent mapping of job ids to remote working directories."""

    def __init__(self, path: str, max_entries: int = 1000):
        """Instantiate an index stored at the given path."""
        if max_entries < 1:
            raise ValueError("job index must be able to hold at least one job")

        self._path = path
        self._max_entries = max_entries

    @property
    def _lock_path(self) -> str:
        return f"{self._path}.lock"

    def record(self, job_id: str, working_directory: str) -> None:
        """Remember the working directory of a launched job."""
        with fasteners.InterProcessLock(self._lock_path):
            entries = self._read_entries()

            # Re-recording a job makes it the most recent entry
            entries.pop(job_id, None)
            entries[job_id] = working_directory

            excess = len(entries) - self._max_entries

            if excess > 0:
                for old_id in list(entries)[:excess]:
                    del entries[old_id]

                log.debug(f"dropped {excess} oldest entries from job index")

            self._write_entries(entries)

    def lookup(self, job_id: str) -> Optional[str]:
        """Return the working directory of a job, if it was launched from here."""
        with fasteners.InterProcessLock(self._lock_path):
            return self._read_entries().get(job_id)

    def _read_entries(self) -> Dict[str, str]:
        try:
            with open(self._path, "r") as f:
                entries = json.load(f)
        except FileNotFoundError:
            return {}
        except (OSError, ValueError) as e:
            # A corrupt index only costs performance, the remote host still has the
            # artifact files.
            log.error(f"ignoring unreadable job index {self._path}: {e}")
            return {}

        if not isinstance(entries, dict):
            log.error(f"ignoring malformed job index {self._path}")
            return {}

        return entries

    def _write_entries(self, entries: Dict[str, str]) -> None:
        os.makedirs(os.path.dirname(self._path) or ".", exist_ok=True)

        # Write to a temporary file first so readers never observe a partial index
        tmp_path = f"{self._path}.tmp"

        with open(tmp_path, "w") as f:
            json.dump(entries, f, indent=2)

        os.replace(tmp_path, self._path)
