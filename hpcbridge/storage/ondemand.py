"""Module that contains the storage that forwards every call over the channel."""

import posixpath
from typing import List

from hpcbridge.channel import Channel
from hpcbridge.common import FileEntry, sort_entries
from hpcbridge.storage.common import Storage


class OnDemandStorage(Storage):
    """
    Storage where every operation is its own remote round trip.

    Errors raised by the channel propagate unchanged, since they already follow the
    caller-facing error taxonomy.
    """

    def __init__(self, channel: Channel):
        """Instantiate storage on top of a remote channel."""
        self._channel = channel

    def list_directory(self, path: str) -> List[FileEntry]:
        return sort_entries(self._channel.read_directory(path))

    def read_file(self, path: str) -> bytes:
        return self._channel.read_file(path)

    def write_file(self, path: str, data: bytes) -> None:
        parent = posixpath.dirname(path)

        if parent:
            self._channel.make_directory(parent)

        self._channel.write_file(path, data)

    def make_directory(self, path: str) -> None:
        self._channel.make_directory(path)

    def remove(self, path: str) -> None:
        self._channel.remove(path)

    def exists(self, path: str) -> bool:
        return self._channel.exists(path)
