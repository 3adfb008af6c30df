"""
Module with the templates of the files written to the remote host for every job.

Each remote file is a template with named slots that is filled in by render(). Paths
are shell-quoted before they are put into a slot, while the command itself is put in
verbatim since it is already a resolved shell command. Literal braces in the shell
code are doubled because of the str.format() slot syntax.
"""

import re
import shlex
from typing import Optional

from hpcbridge.constants import BANNER_TITLE
from hpcbridge.jobs.descriptor import JobDescriptor

# Purely for auditing, never read back by hpcbridge.
COMMAND_RECORD_TEMPLATE = """\
# {title} command record
# Job ID: {job_id}
# Submitted: {submitted}
# Working Directory: {working_directory}

# Command:
{command}

# To run manually:
# cd {quoted_working_directory} && bash {runner_name}
"""

RUNNER_TEMPLATE = """\
#!/bin/bash
# {title} runner script
# Job ID: {job_id}

LOG_FILE={log_file}

if [ -f /etc/profile ]; then
    . /etc/profile
fi
if [ -f ~/.bash_profile ]; then
    . ~/.bash_profile
elif [ -f ~/.profile ]; then
    . ~/.profile
fi
if [ -f ~/.bashrc ]; then
    . ~/.bashrc
fi

if command -v module >/dev/null 2>&1; then
    module load slurm >/dev/null 2>&1 || true
fi
if ! command -v sbatch >/dev/null 2>&1; then
    export PATH="/usr/local/slurm/bin:/opt/slurm/bin:$PATH"
fi
{activation}
if ! cd {working_directory}; then
    echo "Error: cannot change to the working directory" >> "$LOG_FILE"
    echo "Exit Code: 1" >> "$LOG_FILE"
    exit 1
fi

echo "=== {title} Started ===" >> "$LOG_FILE"
echo "Job ID: {job_id}" >> "$LOG_FILE"
echo "Start Time: $(date)" >> "$LOG_FILE"
echo "Working Directory: $(pwd)" >> "$LOG_FILE"
echo "Environment: ${{CONDA_DEFAULT_ENV:-none}}" >> "$LOG_FILE"
echo "PATH: $PATH" >> "$LOG_FILE"
echo "================================" >> "$LOG_FILE"
echo "" >> "$LOG_FILE"

(
{command}
) >> "$LOG_FILE" 2>&1
EXIT_CODE=$?

echo "" >> "$LOG_FILE"
echo "================================" >> "$LOG_FILE"
echo "End Time: $(date)" >> "$LOG_FILE"
echo "Exit Code: $EXIT_CODE" >> "$LOG_FILE"

exit $EXIT_CODE
"""

ACTIVATION_TEMPLATE = """
for conda_sh in ~/miniconda3/etc/profile.d/conda.sh \\
        ~/anaconda3/etc/profile.d/conda.sh \\
        /opt/conda/etc/profile.d/conda.sh; do
    if [ -f "$conda_sh" ]; then
        . "$conda_sh"
        break
    fi
done
if ! conda activate {environment} >> "$LOG_FILE" 2>&1; then
    echo "Error: failed to activate environment {environment}" >> "$LOG_FILE"
    echo "Exit Code: 1" >> "$LOG_FILE"
    exit 1
fi
"""

# The runner is started with all streams redirected so that it doesn't hold on to
# the SSH session, and disowned so that the session ending doesn't signal it.
LAUNCHER_TEMPLATE = """\
#!/bin/bash
# {title} launcher script
# Job ID: {job_id}
cd {working_directory} || exit 1
nohup bash {runner_script} </dev/null >/dev/null 2>{error_file} &
PID=$!
echo "$PID" > {pid_file}
disown "$PID" 2>/dev/null || true
echo "$PID"
"""

# A process counts as alive if it exists and isn't a zombie waiting to be reaped.
LIVENESS_CHECK_TEMPLATE = (
    "if kill -0 {pid} 2>/dev/null && "
    "[ \"$(cut -d' ' -f3 /proc/{pid}/stat 2>/dev/null)\" != Z ]; then echo alive; fi"
)

ENVIRONMENT_PATTERN = r"^[A-Za-z0-9_.+][A-Za-z0-9_.+-]*$"


def render(template: str, **slots: str) -> str:
    """Fill in the named slots of a template."""
    return template.format_map(slots)


def command_record(descriptor: JobDescriptor, command: str, submitted: str) -> str:
    """Render the human-readable record of the submitted command."""
    return render(
        COMMAND_RECORD_TEMPLATE,
        title=BANNER_TITLE,
        job_id=descriptor.job_id,
        submitted=submitted,
        working_directory=descriptor.working_directory,
        command=command,
        quoted_working_directory=shlex.quote(descriptor.working_directory),
        runner_name=shlex.quote(descriptor.artifact_name(descriptor.runner_script)),
    )


def runner_script(
    descriptor: JobDescriptor, command: str, environment: Optional[str] = None
) -> str:
    """Render the script that prepares the environment and runs the command."""
    activation = ""

    if environment:
        if not re.fullmatch(ENVIRONMENT_PATTERN, environment):
            raise ValueError(f"invalid environment name '{environment}'")

        activation = render(ACTIVATION_TEMPLATE, environment=environment)

    return render(
        RUNNER_TEMPLATE,
        title=BANNER_TITLE,
        job_id=descriptor.job_id,
        log_file=shlex.quote(descriptor.log_file),
        activation=activation,
        working_directory=shlex.quote(descriptor.working_directory),
        command=command,
    )


def launcher_script(descriptor: JobDescriptor) -> str:
    """Render the script that starts the runner as a detached process."""
    return render(
        LAUNCHER_TEMPLATE,
        title=BANNER_TITLE,
        job_id=descriptor.job_id,
        working_directory=shlex.quote(descriptor.working_directory),
        runner_script=shlex.quote(descriptor.runner_script),
        error_file=shlex.quote(descriptor.error_file),
        pid_file=shlex.quote(descriptor.pid_file),
    )


def liveness_check(pid: int) -> str:
    """Render the command that prints "alive" if the process is still running."""
    return render(LIVENESS_CHECK_TEMPLATE, pid=str(int(pid)))
