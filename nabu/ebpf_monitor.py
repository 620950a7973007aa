"""Kernel traffic monitor front end with a no-op backend.

The monitor keeps running ingress/egress counters and offers a channel of
per-packet events. Without a compiled kernel program the stub backend is
used: counters stay at zero and no events are produced.
"""

from __future__ import annotations

import enum
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Tuple

from nabu.channel import Channel

COUNTER_POLL_INTERVAL = 0.5
_CANCEL_POLL = 0.05


class Direction(enum.IntEnum):
    """Packet flow relative to the monitored interface."""

    INGRESS = 0
    EGRESS = 1


@dataclass(frozen=True)
class Event:
    """A single packet observation."""

    timestamp_ns: int
    iat_ns: int
    pkt_len: int
    direction: Direction


@dataclass(frozen=True)
class Counter:
    """Aggregate counters for one direction."""

    packets: int = 0
    bytes: int = 0


@dataclass(frozen=True)
class MonitorSnapshot:
    """Ingress and egress counters read at one moment."""

    at: datetime
    ingress: Counter = field(default_factory=Counter)
    egress: Counter = field(default_factory=Counter)


class _Cancellation:
    """Set by stop(), or by the caller's own stop event."""

    def __init__(self, parent: Optional[threading.Event]) -> None:
        self._own = threading.Event()
        self._parent = parent

    def cancel(self) -> None:
        self._own.set()

    def is_set(self) -> bool:
        return self._own.is_set() or (self._parent is not None and self._parent.is_set())

    def wait(self, timeout: Optional[float] = None) -> bool:
        deadline = None if timeout is None else time.monotonic() + timeout
        while not self.is_set():
            if deadline is None:
                self._own.wait(_CANCEL_POLL)
                continue
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return False
            self._own.wait(min(_CANCEL_POLL, remaining))
        return True


class _StubBackend:
    """Backend that hooks into nothing and reports zero traffic."""

    def __init__(self) -> None:
        self.attached_iface: Optional[str] = None

    def attach(self, iface: str) -> None:
        self.attached_iface = iface

    def read_events(self, cancellation: _Cancellation, events: Channel) -> None:
        cancellation.wait()

    def counters(self) -> Tuple[Counter, Counter]:
        return Counter(), Counter()

    def close(self) -> None:
        self.attached_iface = None


def is_stub() -> bool:
    """Report whether monitors run on the no-op backend."""
    return True


STUB_SENTINEL = Event(
    timestamp_ns=time.time_ns(), iat_ns=0, pkt_len=64, direction=Direction.INGRESS
)


class Monitor:
    """Tracks traffic counters and packet events for one interface."""

    def __init__(self, iface: str, event_buf_size: int = 64) -> None:
        self._iface = iface
        self._events = Channel(max(1, event_buf_size))
        self._lock = threading.Lock()
        self._ingress = Counter()
        self._egress = Counter()
        self._cancellation: Optional[_Cancellation] = None
        self._threads: List[threading.Thread] = []
        self._backend = _StubBackend()

    @property
    def iface(self) -> str:
        return self._iface

    @property
    def running(self) -> bool:
        """True between start() and stop()."""
        with self._lock:
            return self._cancellation is not None

    @property
    def events(self) -> Channel:
        """The channel of packet events; events are dropped when it is full."""
        return self._events

    def start(self, stop: Optional[threading.Event] = None) -> None:
        """Attach the backend and start reading; a no-op if already started.

        Setting stop ends the background work as stop() would, but the
        monitor still counts as running until stop() is called.
        """
        with self._lock:
            if self._cancellation is not None:
                return
            try:
                self._backend.attach(self._iface)
            except OSError as exc:
                raise RuntimeError(f"ebpf monitor: attach {self._iface!r}: {exc}") from exc
            cancellation = _Cancellation(stop)
            self._cancellation = cancellation
            self._threads = [
                threading.Thread(
                    target=self._backend.read_events,
                    args=(cancellation, self._events),
                    name="ebpf-events",
                    daemon=True,
                ),
                threading.Thread(
                    target=self._aggregate,
                    args=(cancellation,),
                    name="ebpf-counters",
                    daemon=True,
                ),
            ]
            for thread in self._threads:
                thread.start()

    def _aggregate(self, cancellation: _Cancellation) -> None:
        while not cancellation.wait(COUNTER_POLL_INTERVAL):
            try:
                ingress, egress = self._backend.counters()
            except OSError:
                continue
            with self._lock:
                self._ingress = ingress
                self._egress = egress

    def stop(self) -> None:
        """Detach the backend and wait for the background threads; idempotent."""
        with self._lock:
            cancellation = self._cancellation
            if cancellation is None:
                return
            cancellation.cancel()
            self._cancellation = None
            threads, self._threads = self._threads, []
        for thread in threads:
            thread.join()
        self._backend.close()

    def snapshot(self) -> MonitorSnapshot:
        """Return the latest counters with the current time."""
        with self._lock:
            return MonitorSnapshot(at=datetime.now(), ingress=self._ingress, egress=self._egress)