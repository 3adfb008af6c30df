"""
Storage abstraction that offers one file interface to the remote host's file system.

There are two ways of reaching the remote file system:

* On-demand: every operation is an SFTP (or shell) round trip through the channel.
* Mounted: the remote base path is mounted locally (e.g. through sshfs, see
  hpcbridge.mount) and operations go through the local file system after translating
  the remote-canonical path to the mount point.

The mode is chosen once from the configuration at startup and used for the lifetime
of the process. Callers always work with remote-canonical paths and get identical
directory listings and errors in both modes.
"""

from hpcbridge.channel import Channel
from hpcbridge.config import StorageConfig, StorageMode
from hpcbridge.logger import log
from .common import PathTranslator, Storage
from .mounted import MountedStorage
from .ondemand import OnDemandStorage


def create_storage(config: StorageConfig, channel: Channel) -> Storage:
    """Create the storage implementation for the configured mode."""
    if config.mode == StorageMode.MOUNTED:
        log.debug(f"using mounted storage at {config.mount_point}")
        translator = PathTranslator(config.remote_base_path, config.mount_point)
        return MountedStorage(translator)
    else:
        log.debug("using on-demand storage")
        return OnDemandStorage(channel)


__all__ = [
    "create_storage",
    "MountedStorage",
    "OnDemandStorage",
    "PathTranslator",
    "Storage",
]
