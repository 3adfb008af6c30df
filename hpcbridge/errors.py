"""
Module defining the errors that hpcbridge reports to its callers.

Transport errors of the remote channel and filesystem errors of a local mount are
both normalized to this taxonomy, so callers handle one set of exceptions regardless
of how the remote host is accessed. Where a builtin exception with the same meaning
exists, the error derives from it as well, which keeps code like
``except FileNotFoundError`` working for callers that don't know about hpcbridge.
"""


class HpcBridgeError(Exception):
    """Base class of all errors raised by hpcbridge."""


class RemoteConnectionError(HpcBridgeError, ConnectionError):
    """The remote host could not be reached or the session broke down."""


class AuthenticationError(HpcBridgeError):
    """The remote host rejected the configured credentials."""


class RemoteTimeoutError(HpcBridgeError, TimeoutError):
    """Connecting to the remote host or running a command took too long."""


class RemoteNotFoundError(HpcBridgeError, FileNotFoundError):
    """A remote path does not exist."""


class RemotePermissionError(HpcBridgeError, PermissionError):
    """Access to a remote path was denied."""


class ToolUnavailableError(HpcBridgeError):
    """An external helper tool (like sshfs) is not installed."""


class AlreadyInDesiredStateError(HpcBridgeError):
    """
    A mount transition was requested that has already happened.

    This is not a failure: mount() and unmount() turn it into a successful result.
    """


class MountError(HpcBridgeError):
    """The mount helper failed to attach or detach the remote file system."""


class UnknownJobError(HpcBridgeError):
    """A job identifier is malformed or has no artifacts on the remote host."""


class LauncherError(HpcBridgeError):
    """
    A job could not be launched at all.

    This is distinct from a job that was launched and failed afterwards, which can
    only be discovered later by inspecting its log.
    """
