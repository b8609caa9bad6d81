from .daemon import daemonize
from .pidfile import PidLock, acquire, release
from .worker import rename, spawn

__all__ = ["PidLock", "acquire", "daemonize", "release", "rename", "spawn"]
