"""
PID File Manager - single-instance enforcement.

acquire() creates the PID file, takes an exclusive fcntl write lock over the
whole file and writes the decimal PID into it. The descriptor stays open for
the life of the process; while it is open no other process can lock the same
path. If the process dies without cleanup the kernel drops the lock and the
leftover file is treated as stale by the next acquire().

Every acquire() failure is fatal: two instances must never share the
resources they assume to own exclusively.
"""

import fcntl
import logging
import os

from warden.console import fatal

logger = logging.getLogger(__name__)

PID_FILE_MODE = 0o444


class PidLock:
    """An open, locked PID file. Lives until release() is called.

    Usable as a context manager; release() is idempotent and is the shutdown
    hook that ends the lock's scope.
    """

    def __init__(self, path: str, fd: int):
        self.path = path
        self.fd = fd
        self.pid = os.getpid()

    @property
    def held(self) -> bool:
        return self.fd is not None

    def release(self) -> None:
        """Remove the PID file, then unlock and close the descriptor."""
        if self.fd is None:
            return
        release(self.path)
        try:
            fcntl.lockf(self.fd, fcntl.LOCK_UN)
        except OSError as e:
            logger.warning(f"Cannot unlock pidfile {self.path}: {e}")
        finally:
            os.close(self.fd)
            self.fd = None

    def __enter__(self) -> "PidLock":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()


def _is_locked(path: str) -> bool:
    """True when another process holds a lock on the file at path."""
    try:
        fd = os.open(path, os.O_RDONLY | os.O_CLOEXEC)
    except OSError:
        return False
    try:
        # A shared probe conflicts with any write lock held elsewhere
        fcntl.lockf(fd, fcntl.LOCK_SH | fcntl.LOCK_NB)
    except OSError:
        return True
    finally:
        os.close(fd)
    return False


def acquire(path: str) -> PidLock:
    """Create, lock and fill the PID file at path. Exits the process on failure."""
    if os.path.lexists(path):
        if _is_locked(path):
            fatal(f"Error: pidfile {path} is locked by another running instance")
        # Left behind by an instance that died without cleanup
        try:
            os.unlink(path)
        except OSError as e:
            fatal(f"Could not remove old PID-file path {path}: {e}")

    try:
        fd = os.open(
            path,
            os.O_WRONLY | os.O_CREAT | os.O_EXCL | os.O_CLOEXEC,
            PID_FILE_MODE,
        )
    except OSError as e:
        fatal(f"Error: I can't log pid to {path}: {e}")

    try:
        fcntl.lockf(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
    except OSError as e:
        os.close(fd)
        fatal(f"Error: I cannot set the lock for the pid file {path}: {e}")

    pidstr = str(os.getpid()).encode("ascii")
    try:
        written = os.write(fd, pidstr)
    except OSError as e:
        os.close(fd)
        fatal(f"Error: I cannot write the pid to {path}: {e}")
    if written != len(pidstr):
        os.close(fd)
        fatal(f"Error: short write of the pid to {path}")

    logger.debug(f"Pidfile {path} locked by pid {pidstr.decode()}")
    return PidLock(path, fd)


def release(path: str) -> int:
    """Remove the PID file. A failure is only worth a warning at shutdown."""
    try:
        os.unlink(path)
    except OSError as e:
        logger.warning(f"cannot delete pidfile {path}: {e}")
    return 0
