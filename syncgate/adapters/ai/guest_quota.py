"""Process-local quotas for the anonymous guest chat."""

from __future__ import annotations

import time
from threading import Lock

_WINDOW_SECONDS = 3600
_PRUNE_EVERY = 100


class GuestQuota:
    """Thread-safe per-IP session counter and per-session message counter."""

    def __init__(self, *, sessions_per_ip: int, messages_per_session: int) -> None:
        self.sessions_per_ip = max(1, int(sessions_per_ip))
        self.messages_per_session = max(1, int(messages_per_session))
        self._ip_windows: dict[str, tuple[int, float]] = {}
        self._session_counts: dict[str, int] = {}
        self._requests = 0
        self._lock = Lock()

    def _prune(self, now: float) -> None:
        expired = [ip for ip, (_, reset_at) in self._ip_windows.items() if now > reset_at]
        for ip in expired:
            self._ip_windows.pop(ip, None)
        exhausted = [sid for sid, count in self._session_counts.items() if count >= self.messages_per_session]
        for sid in exhausted:
            self._session_counts.pop(sid, None)

    def tick(self, now: float | None = None) -> None:
        with self._lock:
            self._requests += 1
            if self._requests % _PRUNE_EVERY == 0:
                self._prune(time.time() if now is None else now)

    def acquire_session(self, ip: str, now: float | None = None) -> tuple[bool, int]:
        """Count a new session for *ip*; returns (allowed, remaining)."""

        current = time.time() if now is None else now
        with self._lock:
            entry = self._ip_windows.get(ip)
            if entry is None or current > entry[1]:
                self._ip_windows[ip] = (1, current + _WINDOW_SECONDS)
                return True, self.sessions_per_ip - 1
            count, reset_at = entry
            if count >= self.sessions_per_ip:
                return False, 0
            self._ip_windows[ip] = (count + 1, reset_at)
            return True, self.sessions_per_ip - (count + 1)

    def acquire_message(self, session_id: str) -> bool:
        with self._lock:
            count = self._session_counts.get(session_id, 0)
            if count >= self.messages_per_session:
                return False
            self._session_counts[session_id] = count + 1
            return True
