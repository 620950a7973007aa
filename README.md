# nabu

Core building blocks for an obfuscating tunnel client and relay, as a plain
Python library:

- **Frame encryption**: AES-256-GCM with a random 12-byte nonce prepended to
  every ciphertext (`nabu.cipher`).
- **Session keys**: HKDF-SHA256 derivation (`nabu.session`) and an ephemeral
  X25519 exchange that mixes a pre-shared key with the Diffie-Hellman secret
  (`nabu.x25519`).
- **Salamander UDP obfuscation**: every datagram becomes
  `salt(8) | nonce(12) | ciphertext + tag(16)`, with a fresh HKDF-derived key
  per frame (`nabu.salamander`).
- **Forward error correction**: a Reed-Solomon codec (10 data + 3 parity
  shards by default) with a 5-byte shard header (`nabu.fec`), and a `Grouper`
  that batches packets into groups (`nabu.grouper`) and publishes them on a
  bounded `Channel` (`nabu.channel`).
- **Secure DNS sidecar settings**: validation for DoH, DoH3 and DoT upstreams,
  rendering of a resolver configuration file, and DNS leak-prevention firewall
  rules (`nabu.dnsconfig`).
- **Client and relay configuration**: defaults, YAML loading and validation
  (`nabu.config`).
- **Adaptive governor**: a time-of-day coefficient, `/proc/net/dev`
  throughput sampling (`nabu.governor`), a decision engine (`nabu.decision`)
  and a traffic monitor with a no-op backend (`nabu.ebpf_monitor`).
- **Logging**: JSON log lines with sensitive fields redacted (`nabu.logger`).

Python 3.10 or newer is required. The runtime dependencies are
`cryptography` and `pyyaml`.

## Encrypting frames

```python
import os
from nabu.cipher import encrypt, decrypt

frame_key = os.urandom(32)  # AES-256 needs exactly 32 bytes
sealed = encrypt(b"payload", frame_key)
assert decrypt(sealed, frame_key) == b"payload"
```

Empty plaintext (`EmptyPlaintextError`), a key of the wrong length
(`InvalidKeyLengthError`), a ciphertext too short to hold a nonce and payload
(`CiphertextTooShortError`) and a failed authentication (`DecryptionError`)
each raise a subclass of `CryptoError`.

`derive_session_key(master_key, salt, key_length)` in `nabu.session` returns
1 to 64 bytes of HKDF-SHA256 output; an empty master key or salt, or a length
outside that range, raises its own error.

## Key agreement

```python
from nabu.x25519 import (
    generate_x25519_keypair,
    x25519_shared_secret,
    derive_session_key_x25519,
)

psk = b"secret"
client = generate_x25519_keypair()
relay = generate_x25519_keypair()

shared = x25519_shared_secret(client.private, relay.public)
session_key = derive_session_key_x25519(psk, shared, client.public, relay.public)
assert len(session_key) == 32
```

Both sides arrive at the same key; new ephemeral key pairs give a new session
key even when the pre-shared key stays the same. Keys that are not 32 bytes
raise `InvalidX25519KeyError`.

## Salamander

```python
from nabu.salamander import salamander_encode, salamander_decode

psk = b"secret"
datagram = salamander_encode(psk, b"hello")
assert len(datagram) == len(b"hello") + 36
assert salamander_decode(psk, datagram) == b"hello"
```

An empty key or payload raises `SalamanderError`. A packet shorter than the
36-byte overhead raises `SalamanderShortPacketError`; a wrong key or a
tampered packet raises `SalamanderError`.

## Forward error correction

```python
from nabu.fec import Codec, decode_fec_header

codec = Codec(10, 3)
frames = codec.encode(1, [b"a" * 100, b"b" * 80])  # one frame per shard
header = decode_fec_header(frames[0])               # group_id=1, shard_idx=0, num_data=10

shards = [frame[5:] for frame in frames]  # strip the 5-byte header
shards[0] = shards[4] = shards[11] = None  # lose up to 3 shards
recovered = codec.reconstruct(shards)
assert recovered[0] == b"a" * 100
assert recovered[2] is None  # padding shard
```

More packets than data shards, or a packet over 64 KiB
(`DataTooLargeError`), is rejected by `encode`. Losing more shards than there
is parity raises `TooFewShardsError`.

`Grouper(codec)` collects packets passed to `add()`. It publishes an
`FECGroup` (group id and frames) on its `out` channel as soon as a group is
full, or 50 ms after the first pending packet. Group ids count up from 0.
`flush()` forces an early group, `close()` flushes what is left and closes the
channel, and `run(packets, stop)` feeds a `Channel` or any iterable of packets
to `add()` on a background thread. If the consumer falls behind, the oldest
queued group is dropped.

A `Channel` is a thread-safe FIFO of fixed capacity: `send()` never blocks
(it drops the new item, or with `replace_oldest=True` the oldest one),
`get(timeout)` waits for the next item, and iteration ends once the channel is
closed and drained.

## DNS and configuration

```python
from nabu.config import load_client_config, build_dns_config

cfg = load_client_config("configs/client.yaml")
dns = build_dns_config(cfg)
print(dns.upstream_summary())        # "disabled", or e.g. "DOH via https://dns.quad9.net/dns-query"
for rule in dns.leak_prevention_rules():  # empty when DNS is disabled
    print(rule)
print(dns.render_labyrinth_config())
```

A missing file raises `FileNotFoundError`, so a caller can fall back to
`default_client_config()`. A file that does not parse or does not validate
raises `ConfigError`. `load_relay_config`, `default_relay_config` and
`validate_relay_config` do the same for the relay side, and
`validate_config_mode` accepts `file-only`, `flags-only` and `hybrid`.
`DNSConfig.validate()` raises `DNSConfigError` for an unusable enabled
configuration; `parse_duration` and `format_duration` convert between seconds
and strings such as `"5s"` or `"1m30s"`.

## Governor and decisions

`time_of_day_coeff()` maps a time of day to a multiplier in `[0.30, 1.00]`
that peaks at 20:00. `read_proc_net_dev()` and `compute_throughput()` turn two
readings of `/proc/net/dev` into bytes per second. `Governor.run(stop)` polls
in the background and publishes `Recommendation`s on a channel until the
`threading.Event` is set.

`DecisionEngine(EngineConfig(governor=...)).run(stop)` publishes a `Decision`
every tick (100 ms by default): phantom rate, scheduler bias, FEC ratio and
burst mode. An optional `SnapshotProvider` supplies packet counters from which
inter-arrival spikes are detected.

`Monitor` from `nabu.ebpf_monitor` has `start()`, `stop()`, `events` and
`snapshot()`, but runs only a no-op backend: `is_stub()` is true, its counters
stay at zero and no events arrive.

## Logging

`new_logger(level, stream)` and `logger_for_level("debug" | "info" | "warn" |
"error", stream)` return a standalone `logging.Logger` that writes one JSON
object per line. Values passed through `extra=` under keys such as `psk`,
`key`, `password`, `secret` or `token` are written as `***REDACTED***`.

## What is not included

This package is a library of parts. It has no command-line programs, no
SOCKS5 listener, no UDP, TCP, WebSocket or QUIC relay server, no HTTP CONNECT
or WebSocket obfuscation transports, and no kernel packet hooks; the traffic
monitor only offers the no-op backend described above.

## Running the tests

Install the `test` extra, then run `pytest` from the project root.