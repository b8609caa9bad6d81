"""Tests for the Runtime Tracer and the errno classifier."""

import errno
import io
import re
import threading
from unittest.mock import patch

import pytest

from warden.clock import ProcessClock
from warden.errno_classifier import FAILURE_CODES, classify_errno
from warden.tracer import TraceClass, TraceContext, TraceTheme, Tracer

TRACE_RE = re.compile(r"^~ +(\d+)\.(\d{6}) \[(\w+)\|(\S+):(\d+) *\] (\w+)\(\) (.*)$")


class TtyStream(io.StringIO):
    """StringIO that claims to be a terminal."""

    def isatty(self):
        return True


class CountingLock:
    """Lock wrapper that records how often it was taken."""

    def __init__(self):
        self._lock = threading.Lock()
        self.acquired = 0

    def __enter__(self):
        self._lock.acquire()
        self.acquired += 1
        return self

    def __exit__(self, *exc):
        self._lock.release()


@pytest.fixture
def clock():
    c = ProcessClock()
    c.start()
    return c


@pytest.fixture
def stream():
    return io.StringIO()


def make_tracer(clock, stream, **kwargs):
    return Tracer(TraceContext(clock=clock, enabled=True, stream=stream, **kwargs))


class TestProcessClock:
    """Test the process start epoch."""

    def test_unstarted_clock_reports_zero(self):
        assert ProcessClock().elapsed() == 0.0

    def test_elapsed_relative_to_start(self):
        c = ProcessClock()
        started = c.start()
        assert c.started_at == started
        assert c.elapsed(now=started + 2.5) == pytest.approx(2.5)

    def test_elapsed_never_negative(self):
        c = ProcessClock()
        started = c.start()
        assert c.elapsed(now=started - 10) == 0.0


class TestTraceContext:
    """Test reading the trace settings from the environment."""

    def test_disabled_by_default(self, clock):
        ctx = TraceContext.from_env(clock, environ={})
        assert ctx.enabled is False
        assert ctx.trace_filter is None
        assert ctx.theme is TraceTheme.DARK

    def test_reads_env(self, clock):
        ctx = TraceContext.from_env(
            clock,
            environ={
                "WARDEN_TRACE": "1",
                "WARDEN_TRACE_FILTER": "pidfile",
                "WARDEN_TRACE_BACKGROUND": "light",
            },
        )
        assert ctx.enabled is True
        assert ctx.trace_filter == "pidfile"
        assert ctx.theme is TraceTheme.LIGHT

    def test_debug_mode_enables_tracing(self, clock):
        ctx = TraceContext.from_env(clock, environ={"WARDEN_DEBUG": "true"})
        assert ctx.enabled is True

    def test_reads_process_environment(self, clock, monkeypatch):
        monkeypatch.setenv("WARDEN_TRACE", "yes")
        monkeypatch.setenv("WARDEN_TRACE_FILTER", "server")
        ctx = TraceContext.from_env(clock)
        assert ctx.enabled is True
        assert ctx.trace_filter == "server"

    @pytest.mark.parametrize("value", ["dark", "", "garbage", None])
    def test_theme_defaults_to_dark(self, value):
        assert TraceTheme.parse(value) is TraceTheme.DARK

    def test_context_is_immutable(self, clock):
        ctx = TraceContext.from_env(clock, environ={"WARDEN_TRACE_FILTER": "a"})
        with pytest.raises(AttributeError):
            ctx.trace_filter = "b"


class TestTraceLine:
    """Test the rendered trace line."""

    def test_line_format(self, clock, stream):
        tracer = make_tracer(clock, stream)
        tracer.trace("server", TraceClass.CORE, "run", "server.py", 42, "%d workers", 3)

        lines = stream.getvalue().splitlines()
        assert len(lines) == 1
        match = TRACE_RE.match(lines[0])
        assert match is not None, lines[0]
        assert match.group(3) == "server"
        assert match.group(4) == "server.py"
        assert match.group(5) == "42"
        assert match.group(6) == "run"
        assert match.group(7) == "3 workers"

    def test_elapsed_time_from_clock(self, stream):
        c = ProcessClock()
        c.started_at = 1000.0
        tracer = make_tracer(c, stream)

        with patch("warden.clock.time.time", return_value=1003.25):
            tracer.trace("core", TraceClass.CORE, "f", "x.py", 1, "tick")

        assert stream.getvalue().startswith("~  3.250000 ")

    def test_here_uses_caller_location(self, clock, stream):
        tracer = make_tracer(clock, stream)

        def handler():
            tracer.here("plugin", "from %s", "here", trace_class=TraceClass.PLUGIN)

        handler()

        match = TRACE_RE.match(stream.getvalue().rstrip("\n"))
        assert match is not None
        assert match.group(4) == "test_tracer.py"
        assert match.group(6) == "handler"
        assert match.group(7) == "from here"

    def test_bad_args_are_dropped(self, clock, stream):
        tracer = make_tracer(clock, stream)
        tracer.trace("core", TraceClass.CORE, "f", "x.py", 1, "%d", "nan")
        assert stream.getvalue() == ""


class TestTraceFiltering:
    """Test the disabled and filtered fast paths."""

    def test_disabled_tracer_is_silent(self, clock, stream):
        lock = CountingLock()
        tracer = Tracer(TraceContext(clock=clock, enabled=False, stream=stream, lock=lock))
        tracer.trace("core", TraceClass.CORE, "f", "server.py", 1, "hidden")
        tracer.here("core", "hidden")
        assert stream.getvalue() == ""
        assert lock.acquired == 0

    def test_non_matching_file_is_silent_and_lock_free(self, clock, stream):
        lock = CountingLock()
        tracer = make_tracer(clock, stream, trace_filter="pidfile", lock=lock)

        tracer.trace("core", TraceClass.CORE, "f", "lifecycle/worker.py", 1, "hidden")

        assert stream.getvalue() == ""
        assert lock.acquired == 0

    def test_matching_file_emits_one_line(self, clock, stream):
        lock = CountingLock()
        tracer = make_tracer(clock, stream, trace_filter="pidfile", lock=lock)

        tracer.trace("core", TraceClass.CORE, "acquire", "lifecycle/pidfile.py", 7, "locked")

        assert len(stream.getvalue().splitlines()) == 1
        assert lock.acquired == 1


class TestTraceColors:
    """Test palette selection and suppression."""

    @pytest.mark.parametrize("trace_class", list(TraceClass))
    @pytest.mark.parametrize("theme", list(TraceTheme))
    def test_no_ansi_when_not_a_terminal(self, clock, stream, theme, trace_class):
        tracer = make_tracer(clock, stream, theme=theme)
        tracer.trace("core", trace_class, "f", "x.py", 1, "plain")
        assert "\033[" not in stream.getvalue()

    def test_dark_core_palette(self, clock):
        tty = TtyStream()
        tracer = make_tracer(clock, tty, theme=TraceTheme.DARK)
        tracer.trace("core", TraceClass.CORE, "f", "x.py", 1, "colored")
        out = tty.getvalue()
        assert "\033[33mf()" in out  # yellow function name
        assert "\033[1m\033[37m|x.py" in out  # bold white location

    def test_light_plugin_palette(self, clock):
        tty = TtyStream()
        tracer = make_tracer(clock, tty, theme=TraceTheme.LIGHT)
        tracer.trace("auth", TraceClass.PLUGIN, "f", "x.py", 1, "colored")
        out = tty.getvalue()
        assert "\033[34mf()" in out  # blue function name
        assert "\033[32m|x.py" in out  # green location


class TestTraceConcurrency:
    """Concurrent writers never interleave within a line."""

    def test_lines_stay_whole(self, clock, stream):
        tracer = make_tracer(clock, stream)

        def writer(tag):
            for i in range(200):
                tracer.trace(tag, TraceClass.CORE, "writer", "t.py", i, "%s-%d", tag, i)

        threads = [threading.Thread(target=writer, args=(f"w{n}",)) for n in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=10)

        lines = stream.getvalue().splitlines()
        assert len(lines) == 800
        for line in lines:
            match = TRACE_RE.match(line)
            assert match is not None, line
            assert match.group(7).startswith(match.group(3) + "-")


class TestClassifyErrno:
    """Test the errno classifier."""

    @pytest.mark.parametrize("code", sorted(FAILURE_CODES))
    def test_recognized_codes_are_failures(self, clock, stream, code):
        tracer = make_tracer(clock, stream)
        assert classify_errno(code, tracer) is True
        assert FAILURE_CODES[code] in stream.getvalue()

    def test_unrecognized_code_is_neutral(self, clock, stream):
        tracer = make_tracer(clock, stream)
        assert classify_errno(errno.ENOENT, tracer) is False
        assert "DONT KNOW" in stream.getvalue()

    def test_disabled_tracer_keeps_outcome(self, clock, stream):
        tracer = Tracer(TraceContext(clock=clock, enabled=False, stream=stream))
        assert classify_errno(errno.EPIPE, tracer) is True
        assert classify_errno(errno.ENOENT, tracer) is False
        assert stream.getvalue() == ""
