"""Batches raw packets into FEC groups with a bounded flush delay."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Iterable, List, Optional, Union

from nabu.channel import Channel, ChannelClosed
from nabu.fec import Codec, FECError

GROUP_FLUSH_TIMEOUT = 0.05
OUT_CAPACITY = 64
_POLL_INTERVAL = 0.05


@dataclass(frozen=True)
class FECGroup:
    """One encoded Reed-Solomon group: data and parity frames."""

    group_id: int
    frames: List[bytes]


def _clamp_ratio(ratio: float) -> float:
    return min(1.0, max(0.0, float(ratio)))


class Grouper:
    """Collects packets until a group is full or GROUP_FLUSH_TIMEOUT passes.

    Encoded groups are published on the out channel; when the consumer falls
    behind, the oldest queued group is dropped.
    """

    def __init__(self, codec: Codec, ratio: float = 0.0) -> None:
        self._codec = codec
        self._ratio = _clamp_ratio(ratio)
        self._group_id = 0
        self._lock = threading.Lock()
        self._pending: List[bytes] = []
        self._timer: Optional[threading.Timer] = None
        self._timer_gen = 0
        self._out = Channel(OUT_CAPACITY)
        self._closed = False

    @property
    def ratio(self) -> float:
        with self._lock:
            return self._ratio

    @property
    def out(self) -> Channel:
        return self._out

    def set_ratio(self, ratio: float) -> None:
        """Update the FEC ratio, clamped to [0, 1]."""
        with self._lock:
            self._ratio = _clamp_ratio(ratio)

    def add(self, pkt: bytes) -> None:
        """Queue a copy of pkt; flush at once if the group is full."""
        with self._lock:
            if self._closed:
                raise ChannelClosed("add on closed grouper")
            self._pending.append(bytes(pkt))
            if len(self._pending) >= self._codec.data_shards:
                self._flush_locked()
                return
            if self._timer is None:
                self._timer_gen += 1
                self._timer = threading.Timer(
                    GROUP_FLUSH_TIMEOUT, self._on_timer, args=(self._timer_gen,)
                )
                self._timer.daemon = True
                self._timer.start()

    def _on_timer(self, generation: int) -> None:
        with self._lock:
            if self._closed or generation != self._timer_gen or self._timer is None:
                return
            self._timer = None
            if self._pending:
                self._flush_locked()

    def _cancel_timer_locked(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
            self._timer_gen += 1

    def _flush_locked(self) -> None:
        self._cancel_timer_locked()
        group_id = self._group_id
        self._group_id = (self._group_id + 1) & 0xFFFFFFFF
        batch, self._pending = self._pending, []
        try:
            frames = self._codec.encode(group_id, batch)
        except FECError:
            return
        self._out.send(FECGroup(group_id=group_id, frames=frames), replace_oldest=True)

    def flush(self) -> None:
        """Encode whatever is pending now, even an incomplete group."""
        with self._lock:
            if self._pending:
                self._flush_locked()

    def close(self) -> None:
        """Flush pending packets and close the out channel."""
        with self._lock:
            if self._closed:
                return
            self._cancel_timer_locked()
            if self._pending:
                self._flush_locked()
            self._closed = True
        self._out.close()

    def run(
        self,
        packets: Union[Channel, Iterable[bytes]],
        stop: Optional[threading.Event] = None,
    ) -> threading.Thread:
        """Feed packets to add() on a background thread, closing when done.

        The thread stops when packets run out (or the channel closes) or
        when stop is set.
        """
        stop = stop if stop is not None else threading.Event()

        def drain_channel(source: Channel) -> None:
            while not stop.is_set():
                try:
                    pkt = source.get(timeout=_POLL_INTERVAL)
                except TimeoutError:
                    continue
                except ChannelClosed:
                    return
                self.add(pkt)

        def drain_iterable(source: Iterable[bytes]) -> None:
            for pkt in source:
                if stop.is_set():
                    return
                self.add(pkt)

        def worker() -> None:
            try:
                if isinstance(packets, Channel):
                    drain_channel(packets)
                else:
                    drain_iterable(packets)
            finally:
                self.close()

        thread = threading.Thread(target=worker, name="fec-grouper", daemon=True)
        thread.start()
        return thread