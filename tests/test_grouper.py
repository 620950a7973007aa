import threading

import pytest

from nabu.channel import Channel, ChannelClosed
from nabu.fec import DEFAULT_DATA_SHARDS, DEFAULT_PARITY_SHARDS, HEADER_SIZE, Codec
from nabu.grouper import GROUP_FLUSH_TIMEOUT, Grouper


def make_packets(n, size):
    return [bytes((i * size + j) & 0xFF for j in range(size)) for i in range(n)]


@pytest.fixture
def codec():
    return Codec(DEFAULT_DATA_SHARDS, DEFAULT_PARITY_SHARDS)


def test_flush_on_full(codec):
    grouper = Grouper(codec, 0.3)
    try:
        for pkt in make_packets(codec.data_shards, 64):
            grouper.add(pkt)
        group = grouper.out.get(timeout=0.2)
        assert len(group.frames) == codec.total_shards
    finally:
        grouper.close()


def test_flush_on_timeout(codec):
    grouper = Grouper(codec, 0.3)
    try:
        grouper.add(b"hello")
        group = grouper.out.get(timeout=GROUP_FLUSH_TIMEOUT + 0.5)
        assert len(group.frames) == codec.total_shards
        shards = [f[HEADER_SIZE:] for f in group.frames]
        assert codec.reconstruct(shards)[0] == b"hello"
    finally:
        grouper.close()


def test_manual_flush(codec):
    grouper = Grouper(codec, 0.3)
    try:
        grouper.add(b"data1")
        grouper.add(b"data2")
        grouper.flush()
        group = grouper.out.get(timeout=0.2)
        recovered = codec.reconstruct([f[HEADER_SIZE:] for f in group.frames])
        assert recovered[:2] == [b"data1", b"data2"]
    finally:
        grouper.close()


def test_set_ratio(codec):
    grouper = Grouper(codec, 0)
    grouper.set_ratio(0.5)
    assert grouper.ratio == 0.5
    grouper.set_ratio(2)
    assert grouper.ratio == 1.0
    grouper.set_ratio(-1)
    assert grouper.ratio == 0.0
    grouper.close()


def test_group_id_increment(codec):
    grouper = Grouper(codec, 1)
    try:
        for i in range(2 * codec.data_shards):
            grouper.add(bytes([i]))
        ids = [grouper.out.get(timeout=0.5).group_id for _ in range(2)]
        assert ids[1] == ids[0] + 1
    finally:
        grouper.close()


def test_add_copies_buffer(codec):
    grouper = Grouper(codec)
    buf = bytearray(b"original")
    grouper.add(buf)
    buf[:] = b"changed!"
    grouper.flush()
    group = grouper.out.get(timeout=0.2)
    assert codec.reconstruct([f[HEADER_SIZE:] for f in group.frames])[0] == b"original"
    grouper.close()


def test_close_flushes_and_closes_out(codec):
    grouper = Grouper(codec)
    grouper.add(b"tail")
    grouper.close()
    group = grouper.out.get(timeout=0.2)
    assert codec.reconstruct([f[HEADER_SIZE:] for f in group.frames])[0] == b"tail"
    with pytest.raises(ChannelClosed):
        grouper.out.get(timeout=0.05)


def test_add_after_close_raises(codec):
    grouper = Grouper(codec)
    grouper.close()
    with pytest.raises(ChannelClosed):
        grouper.add(b"late")


def test_run_drains_iterable(codec):
    grouper = Grouper(codec)
    packets = make_packets(15, 8)
    thread = grouper.run(iter(packets))
    thread.join(timeout=2)
    groups = list(grouper.out)
    assert [g.group_id for g in groups] == [0, 1]
    recovered = []
    for group in groups:
        recovered += [p for p in codec.reconstruct([f[HEADER_SIZE:] for f in group.frames]) if p]
    assert recovered == packets


def test_run_from_channel_stops_on_event(codec):
    grouper = Grouper(codec)
    source = Channel(4)
    stop = threading.Event()
    thread = grouper.run(source, stop)
    source.send(b"one")
    stop.set()
    thread.join(timeout=2)
    assert not thread.is_alive()
    assert grouper.out.closed is True