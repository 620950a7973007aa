"""Adaptive rate governor driven by interface throughput and time of day.

Interface counters are read from /proc/net/dev. A time-of-day coefficient
scales the target bandwidth so tunnel traffic follows the daily rhythm of
ordinary residential traffic.
"""

from __future__ import annotations

import math
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, List, Optional, Union

from nabu.channel import Channel

DEFAULT_PROC_NET_DEV = "/proc/net/dev"
DEFAULT_MAX_BANDWIDTH_BPS = 10.0 * 1024 * 1024
DEFAULT_POLL_INTERVAL = 2.0

_MAX_UINT64 = (1 << 64) - 1
_MIN_FIELDS = 16

PathLike = Union[str, Path]


def time_of_day_coeff(t: datetime) -> float:
    """Return a bandwidth multiplier in [0.30, 1.00] for the time of day.

    raw(h) = 0.5 * (1 - cos(2*pi*(h - 8) / 24)) peaks at 20:00 and is
    zero at 08:00; the result is raw clamped to [0.30, 1.00].
    """
    hour = t.hour + t.minute / 60.0
    raw = 0.5 * (1 - math.cos(2 * math.pi * (hour - 8) / 24))
    return min(1.0, max(0.30, raw))


@dataclass(frozen=True)
class InterfaceStats:
    """Cumulative byte and packet counters of one network interface."""

    name: str
    rx_bytes: int = 0
    tx_bytes: int = 0
    rx_pkts: int = 0
    tx_pkts: int = 0


def _parse_uint(text: str) -> int:
    if not (text.isascii() and text.isdigit()):
        return 0
    return min(int(text), _MAX_UINT64)


def read_proc_net_dev(path: PathLike) -> Dict[str, InterfaceStats]:
    """Parse a /proc/net/dev style file into interface name -> stats.

    Raises OSError if the file cannot be read. Lines without a colon or
    with fewer than 16 counter columns are skipped.
    """
    result: Dict[str, InterfaceStats] = {}
    with open(path, encoding="utf-8", errors="replace") as handle:
        for number, line in enumerate(handle):
            if number < 2:
                continue
            name, colon, counters = line.strip().partition(":")
            if not colon:
                continue
            name = name.strip()
            fields = counters.split()
            if len(fields) < _MIN_FIELDS:
                continue
            result[name] = InterfaceStats(
                name=name,
                rx_bytes=_parse_uint(fields[0]),
                rx_pkts=_parse_uint(fields[1]),
                tx_bytes=_parse_uint(fields[8]),
                tx_pkts=_parse_uint(fields[9]),
            )
    return result


@dataclass(frozen=True)
class Snapshot:
    """Interface counters captured at one moment."""

    at: datetime
    stats: Dict[str, InterfaceStats] = field(default_factory=dict)


@dataclass(frozen=True)
class ThroughputBps:
    """Per-interface throughput in bytes per second."""

    iface: str
    rx_bytes_s: float
    tx_bytes_s: float


def _safe_delta(current: int, previous: int) -> int:
    return current - previous if current >= previous else 0


def compute_throughput(a: Snapshot, b: Snapshot) -> List[ThroughputBps]:
    """Return bytes/s for interfaces present in both snapshots.

    Counters that went backwards (wrapped) count as zero traffic.
    """
    dt = (b.at - a.at).total_seconds()
    if dt <= 0:
        return []
    out = []
    for name, later in b.stats.items():
        earlier = a.stats.get(name)
        if earlier is None:
            continue
        out.append(
            ThroughputBps(
                iface=name,
                rx_bytes_s=_safe_delta(later.rx_bytes, earlier.rx_bytes) / dt,
                tx_bytes_s=_safe_delta(later.tx_bytes, earlier.tx_bytes) / dt,
            )
        )
    return out


@dataclass
class GovernorConfig:
    """Tunable governor parameters; empty or zero values take the defaults."""

    proc_path: str = DEFAULT_PROC_NET_DEV
    interface: str = ""
    max_bandwidth_bps: float = DEFAULT_MAX_BANDWIDTH_BPS
    poll_interval: float = DEFAULT_POLL_INTERVAL
    now_func: Optional[Callable[[], datetime]] = None

    def __post_init__(self) -> None:
        if not self.proc_path:
            self.proc_path = DEFAULT_PROC_NET_DEV
        if self.max_bandwidth_bps == 0:
            self.max_bandwidth_bps = DEFAULT_MAX_BANDWIDTH_BPS
        if self.poll_interval <= 0:
            self.poll_interval = DEFAULT_POLL_INTERVAL
        if self.now_func is None:
            self.now_func = datetime.now


@dataclass(frozen=True)
class Recommendation:
    """The governor's output for one polling tick."""

    target_bytes_s: float
    tod_coeff: float
    observed_rx_bytes_s: float
    observed_tx_bytes_s: float
    at: datetime


class Governor:
    """Polls interface counters and publishes bandwidth recommendations."""

    def __init__(self, config: Optional[GovernorConfig] = None) -> None:
        self._config = config if config is not None else GovernorConfig()
        self._lock = threading.Lock()
        self._last: Optional[Recommendation] = None

    @property
    def config(self) -> GovernorConfig:
        return self._config

    @property
    def last_recommendation(self) -> Optional[Recommendation]:
        """The most recent recommendation, or None before the first tick."""
        with self._lock:
            return self._last

    def run(self, stop: threading.Event) -> Channel:
        """Start polling on a background thread until stop is set.

        Recommendations go to the returned channel (capacity 1); one that
        finds the channel full is dropped. The channel closes on stop.
        """
        channel = Channel(1)
        thread = threading.Thread(
            target=self._loop, args=(stop, channel), name="governor", daemon=True
        )
        thread.start()
        return channel

    def _now(self) -> datetime:
        return self._config.now_func()

    def _snapshot(self) -> Snapshot:
        stats = read_proc_net_dev(self._config.proc_path)
        return Snapshot(at=self._now(), stats=stats)

    def _loop(self, stop: threading.Event, channel: Channel) -> None:
        try:
            try:
                prev = self._snapshot()
            except OSError:
                prev = Snapshot(at=self._now())
            interval = self._config.poll_interval
            deadline = time.monotonic() + interval
            while not stop.wait(max(0.0, deadline - time.monotonic())):
                now = time.monotonic()
                deadline = deadline + interval if deadline + interval > now else now + interval
                try:
                    cur = self._snapshot()
                except OSError:
                    cur = Snapshot(at=self._now(), stats=prev.stats)
                rec = self._compute(prev, cur)
                prev = cur
                with self._lock:
                    self._last = rec
                channel.send(rec)
        finally:
            channel.close()

    def _compute(self, prev: Snapshot, cur: Snapshot) -> Recommendation:
        rx_bps = tx_bps = 0.0
        wanted = self._config.interface
        for tp in compute_throughput(prev, cur):
            if wanted:
                chosen = tp.iface == wanted
            else:
                chosen = tp.iface != "lo" and (tp.rx_bytes_s > 0 or tp.tx_bytes_s > 0)
            if chosen:
                rx_bps, tx_bps = tp.rx_bytes_s, tp.tx_bytes_s
                break
        tod = time_of_day_coeff(cur.at)
        return Recommendation(
            target_bytes_s=self._config.max_bandwidth_bps * tod,
            tod_coeff=tod,
            observed_rx_bytes_s=rx_bps,
            observed_tx_bytes_s=tx_bps,
            at=cur.at,
        )