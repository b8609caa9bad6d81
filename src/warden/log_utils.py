"""Shared locking for trace output.

Every tracer in the process must write under this single lock so that one
trace line never interleaves with another thread's line.
"""

import threading

# Single process-wide lock for ALL trace line writes
trace_lock = threading.Lock()
