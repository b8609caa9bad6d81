"""
Server - host process that runs the lifecycle layer end to end.

Startup order matters:
1. Start the process clock (trace time base)
2. Optionally daemonize (the PID we record must be the daemon's)
3. Acquire the PID file lock (single instance)
4. Spawn the heartbeat workers

Shutdown stops and joins the workers, then releases the PID lock through
its explicit release() hook.
"""

import os
import sys
import signal
import logging
import threading
from pathlib import Path
from dotenv import load_dotenv

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from warden.clock import ProcessClock
from warden.console import EXIT_SUCCESS, setup_logging
from warden.tracer import TraceContext, Tracer
from warden.lifecycle import PidLock, acquire, daemonize, rename, spawn

load_dotenv()

# Configuration from environment with validation
PID_FILE = os.getenv("WARDEN_PID_FILE", "./warden.pid")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
DAEMON_MODE = os.getenv("WARDEN_DAEMON", "false").lower() == "true"
DEBUG_MODE = os.getenv("WARDEN_DEBUG", "false").lower() == "true"

try:
    WORKERS = max(0, int(os.getenv("WARDEN_WORKERS", "1")))
except ValueError:
    WORKERS = 1

try:
    CHECK_INTERVAL = max(1, int(os.getenv("CHECK_INTERVAL", "10")))
except ValueError:
    CHECK_INTERVAL = 10

# Validate LOG_LEVEL
if not hasattr(logging, LOG_LEVEL):
    LOG_LEVEL = "INFO"

logger = logging.getLogger("Server")


class Server:
    """Owns the startup sequence, the worker threads and the PID lock."""

    def __init__(
        self,
        pid_file: str = PID_FILE,
        daemon: bool = DAEMON_MODE,
        workers: int = WORKERS,
        check_interval: float = CHECK_INTERVAL,
        clock: ProcessClock = None,
    ):
        # Absolute, because daemonizing moves the working directory to /
        self.pid_file = os.path.abspath(pid_file)
        self.daemon = daemon
        self.worker_count = workers
        self.check_interval = check_interval
        self.clock = clock or ProcessClock()
        self.tracer: Tracer | None = None
        self.pid_lock: PidLock | None = None
        self._workers: dict[str, threading.Thread] = {}
        self._stop_event = threading.Event()
        self._running = False
        self._stopped = False

    def start(self) -> None:
        """Run the startup sequence. Any failure here terminates the process."""
        self.clock.start()
        self.tracer = Tracer(TraceContext.from_env(self.clock))

        if self.daemon:
            daemonize()

        self.pid_lock = acquire(self.pid_file)
        logger.info(f"Pidfile: {self.pid_file} (pid {self.pid_lock.pid})")

        for index in range(self.worker_count):
            name = f"worker-{index}"
            self._workers[name] = spawn(self._heartbeat, index, name=name)

        self._running = True
        self.tracer.here("server", "started with %d worker(s)", len(self._workers))

    def _heartbeat(self, index: int) -> None:
        """Worker body: beat every check_interval until stopped."""
        rename(f"warden-w{index}")
        beats = 0
        while not self._stop_event.is_set():
            beats += 1
            self.tracer.here("worker", "heartbeat #%d", beats)
            if self._stop_event.wait(timeout=self.check_interval):
                break

    def get_status(self) -> dict:
        """Return a snapshot of the server state."""
        return {
            "running": self._running,
            "pid": os.getpid(),
            "pid_file": self.pid_file,
            "pid_lock_held": bool(self.pid_lock and self.pid_lock.held),
            "uptime": round(self.clock.elapsed(), 3),
            "workers": {name: t.is_alive() for name, t in self._workers.items()},
        }

    def run(self) -> None:
        """Main loop: start up, then idle until stop() is called."""
        logger.info("=" * 60)
        logger.info("warden - Server Starting")
        logger.info(f"  Pidfile: {self.pid_file}")
        logger.info(f"  Daemon Mode: {self.daemon}")
        logger.info(f"  Workers: {self.worker_count}")
        logger.info(f"  Check Interval: {self.check_interval}s")
        logger.info("=" * 60)

        self.start()

        try:
            while self._running:
                if self._stop_event.wait(timeout=self.check_interval):
                    break
                self.tracer.here("server", "alive: %s", self.get_status()["workers"])
        except KeyboardInterrupt:
            logger.info("Shutdown requested (Ctrl+C)")
        finally:
            self.stop()

    def stop(self) -> None:
        """Stop workers and release the PID lock.

        Idempotent: safe to call multiple times.
        """
        if self._stopped:
            return
        self._stopped = True

        logger.info("Shutting down server...")
        self._running = False
        self._stop_event.set()

        for name, thread in self._workers.items():
            thread.join(timeout=self.check_interval + 1)
            if thread.is_alive():
                logger.warning(f"Worker did not stop in time: {name}")
            else:
                logger.info(f"Worker stopped: {name}")

        if self.pid_lock is not None:
            self.pid_lock.release()

        logger.info("Server stopped")


def main() -> int:
    """Entry point for the server."""
    setup_logging(LOG_LEVEL, debug=DEBUG_MODE)
    server = Server()

    # Handle graceful shutdown via signal
    def signal_handler(sig, frame):
        server.stop()
        sys.exit(EXIT_SUCCESS)

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    server.run()
    return EXIT_SUCCESS


if __name__ == "__main__":
    sys.exit(main())
