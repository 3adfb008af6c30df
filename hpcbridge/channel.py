"""
Module that implements the remote command channel.

Every operation opens its own authenticated SSH session, performs exactly one shell
command or file operation, and unconditionally closes the session again. There is no
connection pooling, so nothing started through the channel (like a detached job)
depends on a connection staying open. Any number of operations can run concurrently,
limited only by what the remote SSH server accepts.

There is no built-in retry either. Only callers know whether an operation is
idempotent: creating a directory can safely be repeated, launching a job cannot.
"""

import contextlib
import errno
import io
import shlex
import socket
import threading
import time
from typing import Any, Dict, Generator, List, Optional

import paramiko

from hpcbridge.common import CommandOutput, FileEntry
from hpcbridge.config import ConnectionConfig
from hpcbridge.errors import (
    AuthenticationError,
    HpcBridgeError,
    RemoteConnectionError,
    RemoteNotFoundError,
    RemotePermissionError,
    RemoteTimeoutError,
)
from hpcbridge.logger import log, summarize


class Channel:
    """Per-call SSH and SFTP access to the remote host."""

    def __init__(self, config: ConnectionConfig):
        """Instantiate a channel for the given connection settings."""
        self._config = config

    @property
    def destination(self) -> str:
        """Return a user@host:port description of the remote host."""
        user = f"{self._config.username}@" if self._config.username else ""
        return f"{user}{self._config.host}:{self._config.port}"

    #
    # Shell commands
    #

    def execute_command(
        self, command: str, timeout: Optional[float] = None
    ) -> CommandOutput:
        """Run a shell command on the remote host and capture its output."""
        timeout = timeout or self._config.command_timeout

        log.debug(f"executing on {self.destination}: {summarize(command)}")

        with self.session() as client:
            try:
                _, stdout, stderr = client.exec_command(command, timeout=timeout)

                out = stdout.read().decode(errors="replace")
                err = stderr.read().decode(errors="replace")
                exit_status = stdout.channel.recv_exit_status()
            except socket.timeout as e:
                raise RemoteTimeoutError(
                    f"command timed out after {timeout}s: {summarize(command, 80)}"
                ) from e
            except (paramiko.SSHException, EOFError) as e:
                raise RemoteConnectionError(f"failed to execute command: {e}") from e

        log.debug(f"command exited with {exit_status}: {summarize(out)}")

        return CommandOutput(stdout=out, stderr=err, exit_status=exit_status)

    def make_directory(self, path: str) -> None:
        """Create a remote directory including any missing parents."""
        output = self.execute_command(f"mkdir -p {shlex.quote(path)}")
        self._check_output(output, "create directory", path)

    def remove(self, path: str) -> None:
        """Recursively remove a remote path, ignoring paths that don't exist."""
        output = self.execute_command(f"rm -rf {shlex.quote(path)}")
        self._check_output(output, "remove", path)

    @staticmethod
    def _check_output(output: CommandOutput, action: str, path: str) -> None:
        """Turn a failed file management command into the matching error."""
        if "Permission denied" in output.stderr:
            raise RemotePermissionError(f"permission denied: cannot {action} {path}")
        elif not output.ok:
            raise HpcBridgeError(
                f"failed to {action} {path}: "
                f"{output.stderr.strip() or output.exit_status}"
            )

    #
    # File operations
    #

    def read_directory(self, path: str) -> List[FileEntry]:
        """List the entries of a remote directory."""
        with self._file_operation(path) as sftp:
            attributes = sftp.listdir_attr(path)

        return [FileEntry.from_stat(attr.filename, attr) for attr in attributes]

    def read_file(self, path: str) -> bytes:
        """Read the complete contents of a remote file."""
        buf = io.BytesIO()

        with self._file_operation(path) as sftp:
            sftp.getfo(path, buf)

        return buf.getvalue()

    def write_file(self, path: str, data: bytes) -> None:
        """Create or replace a remote file with the given contents."""
        with self._file_operation(path) as sftp:
            sftp.putfo(io.BytesIO(data), path)

    def exists(self, path: str) -> bool:
        """Check if a remote path exists."""
        try:
            with self._file_operation(path) as sftp:
                sftp.stat(path)
        except RemoteNotFoundError:
            return False

        return True

    def chmod(self, path: str, mode: int) -> None:
        """Change the permission bits of a remote path."""
        with self._file_operation(path) as sftp:
            sftp.chmod(path, mode)

    #
    # Sessions
    #

    def check(self) -> None:
        """Open and close a session to verify that the remote host is reachable."""
        with self.session():
            log.info(f"connection to {self.destination} is working")

    @contextlib.contextmanager
    def session(self) -> Generator[paramiko.SSHClient, None, None]:
        """Open an SSH session that is closed when the context exits."""
        client = self._connect()

        try:
            yield client
        finally:
            client.close()

    @contextlib.contextmanager
    def _file_operation(self, path: str) -> Generator[paramiko.SFTPClient, None, None]:
        """Open an SFTP session and translate file operation errors on the path."""
        try:
            with self.session() as client:
                sftp = client.open_sftp()

                try:
                    yield sftp
                finally:
                    sftp.close()
        except HpcBridgeError:
            raise
        except socket.timeout as e:
            raise RemoteTimeoutError(f"file operation on {path} timed out") from e
        except (paramiko.SSHException, EOFError) as e:
            raise RemoteConnectionError(f"file operation on {path} failed: {e}") from e
        except IOError as e:
            raise self._translate_io_error(path, e) from e

    @staticmethod
    def _translate_io_error(path: str, e: IOError) -> HpcBridgeError:
        """Map an SFTP status error onto the error taxonomy."""
        if e.errno == errno.ENOENT:
            return RemoteNotFoundError(f"no such remote path: {path}")
        elif e.errno in (errno.EACCES, errno.EPERM):
            return RemotePermissionError(f"permission denied: {path}")
        else:
            return RemoteConnectionError(f"file operation on {path} failed: {e}")

    def _connect(self) -> paramiko.SSHClient:
        """Establish an authenticated session within the configured timeouts."""
        client = paramiko.SSHClient()
        client.load_system_host_keys()

        if self._config.strict_host_keys:
            client.set_missing_host_key_policy(paramiko.RejectPolicy())
        else:
            client.set_missing_host_key_policy(paramiko.AutoAddPolicy())

        log.debug(f"connecting to {self.destination}")

        # The individual paramiko timeouts only bound each phase of the handshake, so
        # the session is torn down from a timer once the readiness deadline passes.
        expired = threading.Event()

        def expire() -> None:
            expired.set()
            client.close()

        watchdog = threading.Timer(self._config.ready_timeout, expire)
        watchdog.daemon = True

        start = time.monotonic()
        watchdog.start()

        try:
            client.connect(**self._connect_kwargs())
        except Exception as e:
            client.close()

            if expired.is_set():
                raise RemoteTimeoutError(
                    f"session to {self.destination} was not ready within "
                    f"{self._config.ready_timeout}s"
                ) from e

            raise self._translate_connect_error(e) from e
        finally:
            watchdog.cancel()

        elapsed = time.monotonic() - start

        if expired.is_set() or elapsed > self._config.ready_timeout:
            client.close()
            raise RemoteTimeoutError(
                f"session to {self.destination} took {elapsed:.1f}s to become ready"
            )

        return client

    def _connect_kwargs(self) -> Dict[str, Any]:
        """Compose the arguments for paramiko's connect() from the configuration."""
        kwargs: Dict[str, Any] = {
            "hostname": self._config.host,
            "port": self._config.port,
            "username": self._config.username,
            "timeout": self._config.connect_timeout,
            "banner_timeout": self._config.ready_timeout,
            "auth_timeout": self._config.ready_timeout,
        }

        # Explicitly configured credentials replace the agent and default key files
        if self._config.key_file:
            kwargs["key_filename"] = self._config.key_file
            kwargs["allow_agent"] = False
            kwargs["look_for_keys"] = False
        elif self._config.password:
            kwargs["password"] = self._config.password
            kwargs["allow_agent"] = False
            kwargs["look_for_keys"] = False

        return kwargs

    def _translate_connect_error(self, e: Exception) -> HpcBridgeError:
        """Map a connection failure onto the error taxonomy."""
        dest = self.destination

        if isinstance(e, socket.timeout) or "timeout" in str(e).lower():
            return RemoteTimeoutError(f"connection to {dest} timed out: {e}")
        elif isinstance(e, paramiko.AuthenticationException):
            return AuthenticationError(f"authentication to {dest} failed: {e}")
        elif isinstance(e, (paramiko.SSHException, OSError)):
            return RemoteConnectionError(f"failed to connect to {dest}: {e}")
        else:
            return RemoteConnectionError(f"failed to connect to {dest}: {e!r}")
