"""
Daemonizer - move the server into the background.

The foreground invocation forks; the parent exits at once with success and
the child carries on as the daemon: unrestricted umask, its own session with
no controlling terminal, working directory at the filesystem root, and
stdout/stderr closed after one last message.

Run this before acquiring the PID file so the recorded PID is the daemon's.
"""

import logging
import os
import sys

from warden.console import EXIT_SUCCESS, announce, fatal

logger = logging.getLogger(__name__)


def daemonize() -> int:
    """Detach from the terminal. Returns 0 in the daemon; never returns in the parent."""
    sys.stdout.flush()
    sys.stderr.flush()

    try:
        pid = os.fork()
    except OSError as e:
        fatal(f"Error: Failed to switch to daemon mode (fork failed): {e}")

    if pid > 0:
        # Foreground process is done; skip atexit handlers and finally blocks
        os._exit(EXIT_SUCCESS)

    os.umask(0)

    try:
        os.setsid()
    except OSError as e:
        fatal(f"Error: Unable to create a new session for the daemon process: {e}")

    try:
        os.chdir("/")
    except OSError as e:
        fatal(f"Error: Unable to unmount the inherited filesystem in the daemon process: {e}")

    announce("Background mode ON", logger=logger)

    sys.stderr.close()
    sys.stdout.close()

    # The Python streams do not own fds 1 and 2; point them at /dev/null so
    # nothing reaches the terminal and the fds are never reused for files.
    devnull = os.open(os.devnull, os.O_WRONLY)
    os.dup2(devnull, 1)
    os.dup2(devnull, 2)
    os.close(devnull)
    return 0
