"""
============================================================================
DEPWATCH - PER-HOST CONCURRENCY LIMIT
============================================================================
Counts in-flight polls per hostname so one host cannot absorb every
slot when many targets live behind it.

Author: Professional Development Team
Version: 1.0.0
License: MIT
============================================================================
"""

from typing import Dict

from utils.validators import extract_hostname


class HostRateLimiter:
    """
    Non-blocking per-host slot counter.

    ``acquire`` either takes a slot and returns True or returns False
    straight away; callers skip the target and try again next tick.
    """

    def __init__(self, max_per_host: int = 5):
        self.max_per_host = max_per_host
        self._active: Dict[str, int] = {}

    @staticmethod
    def get_hostname(url: str) -> str:
        return extract_hostname(url)

    def acquire(self, url: str) -> bool:
        host = self.get_hostname(url)
        count = self._active.get(host, 0)
        if count >= self.max_per_host:
            return False
        self._active[host] = count + 1
        return True

    def release(self, url: str) -> None:
        host = self.get_hostname(url)
        count = self._active.get(host, 0)
        if count <= 1:
            self._active.pop(host, None)
        else:
            self._active[host] = count - 1

    def active_count(self, url: str) -> int:
        return self._active.get(self.get_hostname(url), 0)
