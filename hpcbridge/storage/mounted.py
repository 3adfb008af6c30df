"""Module that contains the storage backed by a local mount of the remote host."""

import contextlib
import os
import shutil
from typing import Generator, List

from hpcbridge.common import FileEntry, sort_entries
from hpcbridge.errors import HpcBridgeError, RemoteNotFoundError, RemotePermissionError
from hpcbridge.logger import log
from hpcbridge.storage.common import PathTranslator, Storage


class MountedStorage(Storage):
    """
    Storage that goes through a local file system mounted from the remote host.

    Paths are given in their remote-canonical form and translated to the mount point
    before every call. Errors from the local file system are normalized to the same
    taxonomy as the remote channel uses.
    """

    def __init__(self, translator: PathTranslator):
        """Instantiate storage on top of a translator for the mounted base path."""
        self._translator = translator

    def list_directory(self, path: str) -> List[FileEntry]:
        local_path = self._translator.to_local(path)
        entries = []

        with self._translate_errors(path):
            names = os.listdir(local_path)

        for name in names:
            try:
                st = os.stat(os.path.join(local_path, name))
            except OSError as e:
                # Dangling symlinks and files removed in the meanwhile are skipped
                log.debug(f"skipping unreadable entry {name} in {path}: {e}")
                continue

            entries.append(FileEntry.from_stat(name, st))

        return sort_entries(entries)

    def read_file(self, path: str) -> bytes:
        with self._translate_errors(path):
            with open(self._translator.to_local(path), "rb") as f:
                return f.read()

    def write_file(self, path: str, data: bytes) -> None:
        local_path = self._translator.to_local(path)

        with self._translate_errors(path):
            parent = os.path.dirname(local_path)

            if parent:
                os.makedirs(parent, exist_ok=True)

            with open(local_path, "wb") as f:
                f.write(data)

    def make_directory(self, path: str) -> None:
        with self._translate_errors(path):
            os.makedirs(self._translator.to_local(path), exist_ok=True)

    def remove(self, path: str) -> None:
        local_path = self._translator.to_local(path)

        with self._translate_errors(path):
            if os.path.isdir(local_path) and not os.path.islink(local_path):
                shutil.rmtree(local_path)
            elif os.path.lexists(local_path):
                os.unlink(local_path)

    def exists(self, path: str) -> bool:
        return os.path.exists(self._translator.to_local(path))

    @staticmethod
    @contextlib.contextmanager
    def _translate_errors(path: str) -> Generator[None, None, None]:
        """Map local file system errors on the (remote-canonical) path."""
        try:
            yield
        except FileNotFoundError as e:
            raise RemoteNotFoundError(f"no such remote path: {path}") from e
        except PermissionError as e:
            raise RemotePermissionError(f"permission denied: {path}") from e
        except OSError as e:
            raise HpcBridgeError(f"file operation on {path} failed: {e}") from e
