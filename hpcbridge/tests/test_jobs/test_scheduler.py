import pytest

from hpcbridge.common import CommandOutput
from hpcbridge.config import SchedulerConfig
from hpcbridge.errors import RemoteConnectionError, UnknownJobError
from hpcbridge.jobs.descriptor import JobState
from hpcbridge.jobs.scheduler import SlurmScheduler
from hpcbridge.tests.fakes import ScriptedChannel


@pytest.mark.parametrize(
    "output,state",
    [
        ("PENDING\n", JobState.QUEUED),
        ("CONFIGURING\n", JobState.QUEUED),
        ("RUNNING\n", JobState.RUNNING),
        ("COMPLETING\n", JobState.RUNNING),
        ("COMPLETED\n", JobState.COMPLETED),
        ("FAILED\n", JobState.FAILED),
        ("CANCELLED\n", JobState.FAILED),
        ("", None),
        ("SUSPENDED\n", None),
    ],
)
def test_queue_state(output, state):
    channel = ScriptedChannel([("squeue", output)])

    assert SlurmScheduler(channel).queue_state("123") == state


@pytest.mark.parametrize(
    "output,state",
    [
        ("COMPLETED\nCOMPLETED\n", JobState.COMPLETED),
        ("FAILED\n", JobState.FAILED),
        ("CANCELLED by 1000\n", JobState.FAILED),
        ("TIMEOUT\n", JobState.FAILED),
        ("OUT_OF_MEMORY\n", JobState.FAILED),
        ("NODE_FAIL\n", JobState.FAILED),
        ("\n", None),
        ("RUNNING\n", None),
    ],
)
def test_accounting_state(output, state):
    channel = ScriptedChannel([("sacct", output)])

    assert SlurmScheduler(channel).accounting_state("123") == state


def test_commands_run_in_login_shell():
    channel = ScriptedChannel()

    SlurmScheduler(channel).queue_state("123")

    assert channel.commands == ["bash -lc 'squeue -j 123 -h -o %T 2>/dev/null'"]


def test_commands_without_login_shell():
    channel = ScriptedChannel()

    SlurmScheduler(channel, SchedulerConfig(login_shell=False)).accounting_state("1")

    assert channel.commands == ["sacct -j 1 -n -o State --parsable2 2>/dev/null"]


def test_cancel():
    channel = ScriptedChannel()

    assert SlurmScheduler(channel).cancel("123")
    assert channel.commands == ["bash -lc 'scancel 123'"]


def test_cancel_failure():
    channel = ScriptedChannel(
        [("scancel", CommandOutput("", "scancel: error: Invalid job id", 1))]
    )

    assert not SlurmScheduler(channel).cancel("123")


def test_cancel_unreachable():
    channel = ScriptedChannel([("scancel", RemoteConnectionError("unreachable"))])

    assert not SlurmScheduler(channel).cancel("123")


def test_invalid_job_id_never_executed():
    channel = ScriptedChannel()

    with pytest.raises(UnknownJobError):
        SlurmScheduler(channel).cancel("123; reboot")

    assert channel.commands == []


@pytest.mark.parametrize("job_id", ["-ualice", "--me", "-1"])
def test_option_like_job_id_never_executed(job_id):
    channel = ScriptedChannel()
    scheduler = SlurmScheduler(channel)

    with pytest.raises(UnknownJobError):
        scheduler.cancel(job_id)

    with pytest.raises(UnknownJobError):
        scheduler.queue_state(job_id)

    with pytest.raises(UnknownJobError):
        scheduler.accounting_state(job_id)

    assert channel.commands == []
