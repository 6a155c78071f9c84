"""Mutable state of one console session, kept free of I/O."""

from __future__ import annotations

from dataclasses import dataclass

KEEPALIVE_INTERVAL = 120.0


@dataclass(slots=True)
class SessionState:
    """Running flag and keepalive clock for the I/O loop.

    Moves ``not-started -> running -> stopped`` exactly once; a stopped
    session is never restarted.
    """

    keepalive_interval: float = KEEPALIVE_INTERVAL
    running: bool = False
    started: bool = False
    last_ping: float = 0.0
    stop_reason: str | None = None

    @property
    def phase(self) -> str:
        if self.running:
            return "running"
        return "stopped" if self.started else "not-started"

    def start(self, now: float) -> None:
        if self.started:
            raise RuntimeError("Session state cannot be restarted")
        self.started = True
        self.running = True
        self.last_ping = now

    def stop(self, reason: str) -> None:
        """Request loop exit. The first reason wins."""
        if self.running:
            self.stop_reason = reason
        self.running = False

    def mark_ping(self, now: float) -> None:
        self.last_ping = now

    def ping_due(self, now: float) -> bool:
        return now - self.last_ping >= self.keepalive_interval

    def seconds_until_ping(self, now: float) -> float:
        """Time left before the next keepalive, never negative."""
        return max(self.keepalive_interval - (now - self.last_ping), 0.0)
