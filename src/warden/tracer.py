"""
Runtime Tracer - fine-grained diagnostic lines for debugging.

A trace line carries the time elapsed since process start, the component
tag, the source location and the calling function:

    ~  3.004512 [server|server.py:142] run() heartbeat #3

Tracing is off unless WARDEN_TRACE (or WARDEN_DEBUG) is set. When off, every
trace call returns before doing any work. WARDEN_TRACE_FILTER restricts output
to call sites whose file contains the filter; filtered calls return before
taking the lock. WARDEN_TRACE_BACKGROUND=light switches to the light palette.

All tracers share one process-wide lock so each line is written whole.
"""

import enum
import os
import sys
import threading
from dataclasses import dataclass, field

from warden.clock import ProcessClock
from warden.console import (
    ANSI_BLUE,
    ANSI_BOLD_BLUE,
    ANSI_BOLD_GREEN,
    ANSI_BOLD_MAGENTA,
    ANSI_BOLD_RED,
    ANSI_BOLD_WHITE,
    ANSI_CYAN,
    ANSI_GREEN,
    ANSI_RESET,
    ANSI_YELLOW,
)
from warden.log_utils import trace_lock


def _env_flag(env, name: str) -> bool:
    return env.get(name, "false").strip().lower() in ("1", "true", "yes", "on")


class TraceClass(enum.Enum):
    """Subsystem tags, each with its own palette."""

    CORE = "core"
    PLUGIN = "plugin"


class TraceTheme(enum.Enum):
    LIGHT = "light"
    DARK = "dark"

    @classmethod
    def parse(cls, value: str | None) -> "TraceTheme":
        """'light' selects LIGHT; anything else, including unset, is DARK."""
        if value is not None and value.strip().lower() == "light":
            return cls.LIGHT
        return cls.DARK


# (component, function, file:line) colors per theme and trace class
PALETTES = {
    TraceTheme.LIGHT: {
        TraceClass.CORE: (ANSI_BOLD_GREEN, ANSI_BOLD_MAGENTA, ANSI_GREEN),
        TraceClass.PLUGIN: (ANSI_BOLD_GREEN, ANSI_BLUE, ANSI_GREEN),
    },
    TraceTheme.DARK: {
        TraceClass.CORE: (ANSI_BOLD_GREEN, ANSI_YELLOW, ANSI_BOLD_WHITE),
        TraceClass.PLUGIN: (ANSI_BOLD_BLUE, ANSI_BLUE, ANSI_BOLD_WHITE),
    },
}


@dataclass(frozen=True)
class TraceContext:
    """Everything the tracer needs, built once at startup.

    The filter and theme are read from the environment a single time and
    never change afterwards.
    """

    clock: ProcessClock
    enabled: bool = False
    trace_filter: str | None = None
    theme: TraceTheme = TraceTheme.DARK
    stream: object = None
    lock: threading.Lock = field(default=trace_lock, repr=False, compare=False)

    @classmethod
    def from_env(cls, clock: ProcessClock, stream=None, environ=None) -> "TraceContext":
        env = os.environ if environ is None else environ
        enabled = _env_flag(env, "WARDEN_TRACE") or _env_flag(env, "WARDEN_DEBUG")
        return cls(
            clock=clock,
            enabled=enabled,
            trace_filter=env.get("WARDEN_TRACE_FILTER") or None,
            theme=TraceTheme.parse(env.get("WARDEN_TRACE_BACKGROUND")),
            stream=stream,
        )


class Tracer:
    """Writes trace lines for one TraceContext."""

    def __init__(self, context: TraceContext):
        self.context = context

    @property
    def enabled(self) -> bool:
        return self.context.enabled

    def _stream(self):
        return self.context.stream if self.context.stream is not None else sys.stdout

    def trace(
        self,
        component: str,
        trace_class: TraceClass,
        function: str,
        file: str,
        line: int,
        message: str,
        *args,
    ) -> None:
        ctx = self.context
        if not ctx.enabled:
            return
        if ctx.trace_filter and ctx.trace_filter not in file:
            return

        with ctx.lock:
            stream = self._stream()
            elapsed = ctx.clock.elapsed()
            secs = int(elapsed)
            usecs = int(round((elapsed - secs) * 1_000_000))
            if usecs >= 1_000_000:
                secs, usecs = secs + 1, 0

            try:
                color = stream.isatty()
            except (AttributeError, ValueError, OSError):
                color = False

            if color:
                comp_color, func_color, loc_color = PALETTES[ctx.theme][trace_class]
                reset, magenta, red, cyan = (
                    ANSI_RESET,
                    ANSI_RESET + ANSI_BOLD_MAGENTA,
                    ANSI_RESET + ANSI_BOLD_RED,
                    ANSI_RESET + ANSI_CYAN,
                )
            else:
                comp_color = func_color = loc_color = ""
                reset = magenta = red = cyan = ""

            try:
                text = message % args if args else message
                stream.write(
                    f"~ {cyan}{secs:2d}.{usecs:06d}{reset} "
                    f"{magenta}[{comp_color}{component}{loc_color}|{file}:{line:<3d}{magenta}] "
                    f"{func_color}{function}(){red} {text}{reset}\n"
                )
                stream.flush()
            except (OSError, ValueError, TypeError):
                # Tracing is diagnostics only; bad args or a dead stream are dropped.
                pass

    def here(self, component: str, message: str, *args, trace_class: TraceClass = TraceClass.CORE) -> None:
        """Trace with function, file and line taken from the caller."""
        if not self.context.enabled:
            return
        frame = sys._getframe(1)
        code = frame.f_code
        self.trace(
            component,
            trace_class,
            code.co_name,
            os.path.basename(code.co_filename),
            frame.f_lineno,
            message,
            *args,
        )
