"""Run and monitor long-running jobs on a remote HPC host over SSH."""
