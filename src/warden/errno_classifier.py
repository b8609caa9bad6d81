"""Debug helper: trace the symbolic name of common I/O error codes."""

import errno

from warden.tracer import Tracer

# Codes that mark a failed I/O call
FAILURE_CODES = {
    errno.EAGAIN: "EAGAIN",
    errno.EBADF: "EBADF",
    errno.EFAULT: "EFAULT",
    errno.EFBIG: "EFBIG",
    errno.EINTR: "EINTR",
    errno.EINVAL: "EINVAL",
    errno.EPIPE: "EPIPE",
}


def classify_errno(code: int, tracer: Tracer) -> bool:
    """Trace the name of an OS error code.

    Returns True for a recognized failure code and False for anything else,
    which is traced as unknown.
    """
    name = FAILURE_CODES.get(code)
    if name is None:
        tracer.here("errno", "DONT KNOW (%s)", code)
        return False
    tracer.here("errno", name)
    return True
