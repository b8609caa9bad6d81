"""Worker Spawner - start joinable worker threads."""

import logging
import sys
import threading
from pathlib import Path
from typing import Any, Callable

from warden.console import fatal

logger = logging.getLogger(__name__)

# Kernel thread names are limited to 15 bytes plus the terminator
MAX_THREAD_NAME = 15


def spawn(entry_point: Callable[[Any], Any], argument: Any = None, name: str = None) -> threading.Thread:
    """Run entry_point(argument) on a new joinable thread.

    The caller owns the returned thread and is responsible for joining it.
    Failing to start a thread is fatal.
    """
    thread = threading.Thread(
        target=entry_point, args=(argument,), name=name, daemon=False
    )
    try:
        thread.start()
    except (RuntimeError, OSError) as e:
        fatal(f"Error: cannot spawn worker thread {thread.name}: {e}")
    logger.debug(f"Worker spawned: {thread.name}")
    return thread


def rename(title: str) -> bool:
    """Rename the calling worker thread.

    Sets the Python thread name and, on Linux, the kernel-visible name shown
    by ps/top. Returns False when the kernel name could not be set.
    """
    threading.current_thread().name = title
    if not sys.platform.startswith("linux"):
        return False

    comm = Path(f"/proc/self/task/{threading.get_native_id()}/comm")
    try:
        comm.write_bytes(title.encode("utf-8")[:MAX_THREAD_NAME])
    except OSError as e:
        logger.debug(f"Cannot set kernel thread name to {title!r}: {e}")
        return False
    return True
