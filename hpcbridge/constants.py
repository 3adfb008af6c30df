"""Module defining various global constants."""

# hpcbridge version
VERSION = "1.0.0"

# Special exit code for when hpcbridge itself fails.
ERROR_CODE = 254

# Default location of the optional config file.
DEFAULT_CONFIG_PATH = "~/.hpcbridge/config"

# Prefix of the artifact files that make up the durable record of a job.
ARTIFACT_PREFIX = "hpcbridge"

# Human-readable name used in script headers and log banners.
BANNER_TITLE = "HPCBridge Pipeline"

# Log phrases that indicate that a pipeline finished successfully or failed.
# Success markers take precedence over failure markers.
SUCCESS_MARKERS = ("Pipeline completed successfully", "Succeeded", "Workflow finished")
FAILURE_MARKERS = ("Error", "FAILED")

# Job identifiers are interpolated into remote shell commands, so they are
# restricted to a safe alphabet and may not start with a dash.
JOB_ID_PATTERN = r"^[A-Za-z0-9_][A-Za-z0-9_.-]*$"

# Name of the sshfs helper and the commands used to detach a FUSE mount.
MOUNT_TOOL = "sshfs"
UNMOUNT_COMMANDS = (("fusermount", "-u"), ("umount",))
