import pytest

from hpcbridge import errors


@pytest.mark.parametrize(
    "error,builtin",
    [
        (errors.RemoteConnectionError, ConnectionError),
        (errors.RemoteTimeoutError, TimeoutError),
        (errors.RemoteNotFoundError, FileNotFoundError),
        (errors.RemotePermissionError, PermissionError),
    ],
)
def test_builtin_compatibility(error, builtin):
    with pytest.raises(builtin):
        raise error("foo")


def test_common_base():
    for error in [
        errors.AuthenticationError,
        errors.ToolUnavailableError,
        errors.AlreadyInDesiredStateError,
        errors.MountError,
        errors.UnknownJobError,
        errors.LauncherError,
    ]:
        assert issubclass(error, errors.HpcBridgeError)


def test_not_found_is_not_permission():
    assert not issubclass(errors.RemoteNotFoundError, PermissionError)
    assert not issubclass(errors.RemotePermissionError, FileNotFoundError)
