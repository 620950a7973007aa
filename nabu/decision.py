"""Adaptive decision engine over governor throughput and optional kernel telemetry.

Every tick the engine emits a Decision with four outputs:

* phantom_rate: suggested cover-traffic injection rate in bytes/s
* scheduler_bias: multipath scheduler weight bias in [-1, +1]
* fec_ratio: forward-error-correction redundancy ratio in [0, 1]
* burst_mode: True when the link is lightly loaded and bursting is safe

Packet-count deltas from the optional snapshot provider give an estimate
of the inter-arrival time (IAT). A spike well above its moving average
suggests probing, and the engine then cuts phantom traffic and raises FEC.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional, Protocol, runtime_checkable

from nabu.channel import Channel
from nabu.governor import Governor

DEFAULT_TICK_INTERVAL = 0.1
DEFAULT_MAX_PHANTOM_BYTES_S = 512.0 * 1024
DEFAULT_IAT_SPIKE_THRESHOLD = 3.0
FALLBACK_MAX_BPS = 10.0 * 1024 * 1024
INITIAL_IAT_EWMA_NS = 1e6

IAT_EWMA_ALPHA = 0.1
UTIL_EWMA_ALPHA = 0.2


def clamp(v: float, lo: float, hi: float) -> float:
    """Return v clamped to [lo, hi]."""
    return max(lo, min(hi, v))


@dataclass(frozen=True)
class EBPFSnapshot:
    """Cumulative traffic counters read at one moment; at is None if unset."""

    at: Optional[datetime] = None
    ingress_packets: int = 0
    ingress_bytes: int = 0
    egress_packets: int = 0
    egress_bytes: int = 0


@runtime_checkable
class SnapshotProvider(Protocol):
    """A source of cumulative counter snapshots."""

    def snapshot(self) -> EBPFSnapshot:
        """Return the latest cumulative counter snapshot."""
        ...


@dataclass(frozen=True)
class Decision:
    """The engine's output for one tick."""

    phantom_rate: float
    scheduler_bias: float
    fec_ratio: float
    burst_mode: bool
    tod_coeff: float
    util_fraction: float
    at: datetime


@dataclass
class EngineConfig:
    """Decision engine settings; zero or missing values take the defaults."""

    governor: Governor
    ebpf: Optional[SnapshotProvider] = None
    tick_interval: float = DEFAULT_TICK_INTERVAL
    max_phantom_bytes_s: float = DEFAULT_MAX_PHANTOM_BYTES_S
    iat_spike_threshold: float = DEFAULT_IAT_SPIKE_THRESHOLD
    now_func: Optional[Callable[[], datetime]] = None

    def __post_init__(self) -> None:
        if self.tick_interval <= 0:
            self.tick_interval = DEFAULT_TICK_INTERVAL
        if self.max_phantom_bytes_s == 0:
            self.max_phantom_bytes_s = DEFAULT_MAX_PHANTOM_BYTES_S
        if self.iat_spike_threshold <= 0:
            self.iat_spike_threshold = DEFAULT_IAT_SPIKE_THRESHOLD
        if self.now_func is None:
            self.now_func = datetime.now


class DecisionEngine:
    """Turns throughput and IAT telemetry into periodic adaptive decisions."""

    def __init__(self, config: EngineConfig) -> None:
        self._cfg = config
        self._lock = threading.Lock()
        self._last: Optional[Decision] = None
        self._iat_ewma = INITIAL_IAT_EWMA_NS
        self._prev_snapshot = EBPFSnapshot()
        self._util_ewma = 0.0

    @property
    def config(self) -> EngineConfig:
        return self._cfg

    @property
    def last_decision(self) -> Optional[Decision]:
        """The most recent decision, or None before the first tick."""
        with self._lock:
            return self._last

    @property
    def iat_ewma_ns(self) -> float:
        """Current moving average of the inter-arrival time in nanoseconds."""
        with self._lock:
            return self._iat_ewma

    def run(self, stop: threading.Event) -> Channel:
        """Start ticking on a background thread until stop is set.

        Decisions go to the returned channel (capacity 1); a slow consumer
        sees only the newest one. The channel closes on stop.
        """
        channel = Channel(1)
        thread = threading.Thread(
            target=self._loop, args=(stop, channel), name="decision-engine", daemon=True
        )
        thread.start()
        return channel

    def _loop(self, stop: threading.Event, channel: Channel) -> None:
        try:
            interval = self._cfg.tick_interval
            deadline = time.monotonic() + interval
            while not stop.wait(max(0.0, deadline - time.monotonic())):
                now = time.monotonic()
                deadline = deadline + interval if deadline + interval > now else now + interval
                decision = self._tick()
                with self._lock:
                    self._last = decision
                channel.send(decision, replace_oldest=True)
        finally:
            channel.close()

    def _tick(self) -> Decision:
        cfg = self._cfg
        now = cfg.now_func()

        tod = 0.5
        rx_bps = 0.0
        max_bps = 0.0
        rec = cfg.governor.last_recommendation
        if rec is not None:
            tod = rec.tod_coeff
            rx_bps = rec.observed_rx_bytes_s
            max_bps = cfg.governor.config.max_bandwidth_bps
        if max_bps <= 0:
            max_bps = FALLBACK_MAX_BPS

        util = min(1.0, rx_bps / max_bps)
        self._util_ewma = UTIL_EWMA_ALPHA * util + (1 - UTIL_EWMA_ALPHA) * self._util_ewma
        util_ewma = self._util_ewma

        spiking = False
        if cfg.ebpf is not None:
            snap = cfg.ebpf.snapshot()
            spiking = self._update_iat(snap)
            self._prev_snapshot = snap

        phantom = cfg.max_phantom_bytes_s * tod * (1 - util_ewma)
        if spiking:
            phantom *= 0.25
        phantom_rate = clamp(phantom, 0.0, cfg.max_phantom_bytes_s)

        scheduler_bias = clamp(1.0 - 2.0 * util_ewma, -1.0, 1.0)

        if spiking:
            fec_ratio = 0.25
        elif util_ewma > 0.7:
            fec_ratio = 0.10
        else:
            fec_ratio = 0.05

        return Decision(
            phantom_rate=phantom_rate,
            scheduler_bias=scheduler_bias,
            fec_ratio=fec_ratio,
            burst_mode=util_ewma < 0.30 and not spiking,
            tod_coeff=tod,
            util_fraction=util_ewma,
            at=now,
        )

    def _update_iat(self, snap: EBPFSnapshot) -> bool:
        """Fold the snapshot delta into the IAT average; True on a spike."""
        prev = self._prev_snapshot
        if prev.at is None or snap.at is None:
            return False
        dt = (snap.at - prev.at).total_seconds()
        if dt <= 0:
            return False
        pkt_delta = snap.ingress_packets - prev.ingress_packets
        if pkt_delta <= 0:
            return False
        iat_ns = dt * 1e9 / pkt_delta
        with self._lock:
            self._iat_ewma = IAT_EWMA_ALPHA * iat_ns + (1 - IAT_EWMA_ALPHA) * self._iat_ewma
            ewma = self._iat_ewma
        return iat_ns > self._cfg.iat_spike_threshold * ewma