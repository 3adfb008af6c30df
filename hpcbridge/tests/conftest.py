"""Module that adds flags to pytest to enable certain extra tests."""

import pytest


@pytest.fixture
def remote_home(tmp_path_factory):
    """Empty home directory for commands run through a LocalChannel."""
    return str(tmp_path_factory.mktemp("home"))


def pytest_addoption(parser):
    parser.addoption(
        "--ssh",
        action="store_true",
        default=False,
        help="Run tests against a real SSH server (see HPCBRIDGE_TEST_* variables)",
    )


def pytest_configure(config):
    config.addinivalue_line("markers", "ssh: mark test as requiring an SSH server")


def pytest_collection_modifyitems(config, items):
    if not config.getoption("--ssh"):
        skip_ssh = pytest.mark.skip(reason="only runs with --ssh option")

        for item in items:
            if "ssh" in item.keywords:
                item.add_marker(skip_ssh)
