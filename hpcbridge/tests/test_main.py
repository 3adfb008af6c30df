from unittest import mock
import logging

import pytest

from hpcbridge.__main__ import main
from hpcbridge.constants import ERROR_CODE
from hpcbridge.errors import RemoteConnectionError
from hpcbridge.logger import log


def test_no_args():
    with pytest.raises(SystemExit):
        main([])


def test_debug_flag_set(tmp_path):
    with mock.patch("hpcbridge.operations.Operations") as mock_operations:
        mock_operations().run.return_value = 0

        with pytest.raises(SystemExit):
            main(["--debug", f"--config={tmp_path / 'config'}", "check"])

        assert log.getEffectiveLevel() == logging.DEBUG


def test_debug_flag_not_set(tmp_path):
    with mock.patch("hpcbridge.operations.Operations") as mock_operations:
        mock_operations().run.return_value = 0

        with pytest.raises(SystemExit):
            main([f"--config={tmp_path / 'config'}", "check"])

        assert log.getEffectiveLevel() == logging.WARNING


def test_exit_code_of_action(tmp_path):
    with mock.patch("hpcbridge.operations.Operations") as mock_operations:
        mock_operations().run.return_value = 1

        with pytest.raises(SystemExit) as e:
            main([f"--config={tmp_path / 'config'}", "status", "123"])

        assert e.value.code == 1


def test_config_is_loaded(tmp_path):
    (tmp_path / "config").write_text(
        """
        [connection]
        host = hpc.example.org
        """
    )

    with mock.patch("hpcbridge.operations.Operations") as mock_operations:
        mock_operations().run.return_value = 0

        with pytest.raises(SystemExit):
            main([f"--config={tmp_path / 'config'}", "check"])

        config = mock_operations.call_args[0][1]
        assert config.connection.host == "hpc.example.org"


def test_action_failure(tmp_path, caplog):
    with mock.patch("hpcbridge.operations.Operations") as mock_operations:
        mock_operations().run.side_effect = RemoteConnectionError("host unreachable")

        with pytest.raises(SystemExit) as e:
            main([f"--config={tmp_path / 'config'}", "check"])

    assert e.value.code == ERROR_CODE
    assert "failed to check: host unreachable" in caplog.text


def test_unexpected_failure(tmp_path, caplog):
    with mock.patch("hpcbridge.operations.Operations") as mock_operations:
        mock_operations().run.side_effect = Exception("foo")

        with pytest.raises(SystemExit) as e:
            main([f"--config={tmp_path / 'config'}", "ls", "/data"])

    assert e.value.code == ERROR_CODE
    assert "failed to run ls: foo" in caplog.text
