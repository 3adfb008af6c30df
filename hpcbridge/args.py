"""Module defining the command-line arguments and providing a parser for them."""

from __future__ import annotations

import argparse
from typing import List, Optional

from hpcbridge.constants import DEFAULT_CONFIG_PATH, VERSION
from hpcbridge.pipeline import SKIPPABLE_STAGES


class Arguments(argparse.Namespace):
    """Parsed command-line arguments."""

    action: str

    config: str
    debug: bool

    # File access
    path: str
    source: str
    destination: str

    # Jobs
    working_directory: Optional[str]
    command: List[str]
    job_ids: List[str]
    lines: int
    no_wait: bool

    # Pipeline
    project_path: str
    trimming_tool: str
    assembler: str
    min_contig_length: int
    quality: int
    profile: str
    queue: str
    skip: List[str]

    @classmethod
    def parse(cls, args: Optional[List[str]] = None) -> Arguments:
        """
        Parse command-line arguments from the given list of strings.

        Defaults to sys.argv if none are specified.
        """
        return cls._get_parser().parse_args(args, namespace=cls())

    @classmethod
    def _get_parser(cls) -> argparse.ArgumentParser:
        parser = argparse.ArgumentParser(
            description="Run and monitor jobs on a remote HPC host over SSH.",
            usage="hpcbridge [option...] action [arg...]",
        )

        parser.add_argument(
            "--version",
            action="version",
            version=f"%(prog)s {VERSION}",
            help="show the program version",
        )

        # Path to (optional) config file
        parser.add_argument(
            "--config",
            type=str,
            help=f"path to config file (default is {DEFAULT_CONFIG_PATH})",
            default=DEFAULT_CONFIG_PATH,
        )

        # Enable debug output for development
        parser.add_argument(
            "--debug", action="store_true", help="enable debug information"
        )

        actions = parser.add_subparsers(dest="action", metavar="action")
        actions.required = True

        actions.add_parser("check", help="verify the connection to the remote host")

        # File access
        ls = actions.add_parser("ls", help="list a remote directory")
        ls.add_argument("path", type=str, help="remote directory")

        cat = actions.add_parser("cat", help="print a remote file")
        cat.add_argument("path", type=str, help="remote file")

        put = actions.add_parser("put", help="upload a local file")
        put.add_argument("source", type=str, help="local file")
        put.add_argument("destination", type=str, help="remote path")

        mkdir = actions.add_parser("mkdir", help="create a remote directory")
        mkdir.add_argument("path", type=str, help="remote directory")

        rm = actions.add_parser("rm", help="recursively remove a remote path")
        rm.add_argument("path", type=str, help="remote path")

        # Jobs
        submit = actions.add_parser("submit", help="launch a command as detached job")
        submit.add_argument(
            "--no-wait",
            action="store_true",
            help="don't wait to collect early diagnostics",
        )
        submit.add_argument("working_directory", type=str, help="remote directory")
        submit.add_argument(
            "command", type=str, nargs=argparse.REMAINDER, help="command to run"
        )

        pipeline = actions.add_parser("pipeline", help="launch the analysis pipeline")
        pipeline.add_argument("project_path", type=str, help="remote project directory")
        cls._add_pipeline_options(pipeline)

        status = actions.add_parser("status", help="show the state of jobs")
        status.add_argument("job_ids", type=str, nargs="+", help="job identifiers")
        status.add_argument(
            "-C", "--working-directory", type=str, help="remote directory of the job"
        )

        logs = actions.add_parser("logs", help="show the log of a job")
        logs.add_argument("job_ids", type=str, nargs=1, help="job identifier")
        logs.add_argument(
            "-C", "--working-directory", type=str, help="remote directory of the job"
        )
        logs.add_argument(
            "-n",
            "--lines",
            type=cls._parse_positive,
            help="number of log lines to show",
            default=200,
        )

        cancel = actions.add_parser("cancel", help="cancel a scheduler job")
        cancel.add_argument("job_ids", type=str, nargs=1, help="job identifier")

        # Mount
        actions.add_parser("mount", help="mount the remote base path locally")
        actions.add_parser("unmount", help="unmount the remote base path")
        actions.add_parser("mount-status", help="show the state of the mount")

        return parser

    @classmethod
    def _add_pipeline_options(cls, parser: argparse.ArgumentParser) -> None:
        parser.add_argument(
            "--trimming-tool", type=str, help="read trimming tool", default="fastp"
        )
        parser.add_argument(
            "--assembler", type=str, help="de novo assembler", default="megahit"
        )
        parser.add_argument(
            "--min-contig-length",
            type=cls._parse_positive,
            help="minimum length of assembled contigs",
            default=200,
        )
        parser.add_argument(
            "--quality",
            type=cls._parse_positive,
            help="minimum base quality",
            default=20,
        )
        parser.add_argument(
            "--profile", type=str, help="Nextflow execution profile", default="slurm"
        )
        parser.add_argument(
            "--queue", type=str, help="scheduler queue to submit to", default=""
        )
        parser.add_argument(
            "--skip",
            type=str,
            choices=SKIPPABLE_STAGES,
            action="append",
            help="pipeline stage to skip (repeatable)",
            default=[],
        )
        parser.add_argument(
            "--no-wait",
            action="store_true",
            help="don't wait to collect early diagnostics",
        )

    @staticmethod
    def _parse_positive(arg: str) -> int:
        try:
            val = int(arg)
            assert val > 0
            return val
        except (ValueError, AssertionError):
            raise argparse.ArgumentTypeError("expected number > 0")
