"""Reed-Solomon forward error correction for tunnel packets.

Each encoded frame is a 5-byte header followed by one shard:
GroupID (3 bytes, big endian) | ShardIdx (1) | NumData (1) | shard bytes.
Every data shard carries a 2-byte big-endian length prefix before the packet.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Sequence

DEFAULT_DATA_SHARDS = 10
DEFAULT_PARITY_SHARDS = 3
HEADER_SIZE = 5
MAX_SHARD_BYTES = 64 * 1024
_MAX_TOTAL_SHARDS = 256


class FECError(ValueError):
    """Raised when shards cannot be encoded or reconstructed."""


class TooFewShardsError(FECError):
    """Raised when fewer shards than data shards are available."""


class DataTooLargeError(FECError):
    """Raised when a packet exceeds the shard size limit."""

    def __init__(self) -> None:
        super().__init__("fec: input data exceeds shard size limit")


# ── GF(2^8) arithmetic, polynomial x^8 + x^4 + x^3 + x^2 + 1 ────────────────

def _build_tables() -> tuple:
    exp = [0] * 510
    log = [0] * 256
    value = 1
    for power in range(255):
        exp[power] = value
        log[value] = power
        value <<= 1
        if value & 0x100:
            value ^= 0x11D
    for power in range(255, 510):
        exp[power] = exp[power - 255]
    return exp, log


_EXP, _LOG = _build_tables()


def _mul(a: int, b: int) -> int:
    if a == 0 or b == 0:
        return 0
    return _EXP[_LOG[a] + _LOG[b]]


def _inverse(a: int) -> int:
    if a == 0:
        raise ZeroDivisionError("zero has no inverse in GF(256)")
    return _EXP[(255 - _LOG[a]) % 255]


def _power(a: int, n: int) -> int:
    if n == 0:
        return 1
    if a == 0:
        return 0
    return _EXP[(_LOG[a] * n) % 255]


_MUL_TABLES = [bytes(_mul(c, x) for x in range(256)) for c in range(256)]

Matrix = List[List[int]]


def _mat_mul(left: Matrix, right: Matrix) -> Matrix:
    columns = list(zip(*right))
    result = []
    for row in left:
        out_row = []
        for column in columns:
            acc = 0
            for a, b in zip(row, column):
                acc ^= _mul(a, b)
            out_row.append(acc)
        result.append(out_row)
    return result


def _mat_invert(matrix: Matrix) -> Matrix:
    size = len(matrix)
    work = [list(row) + [1 if i == j else 0 for j in range(size)] for i, row in enumerate(matrix)]
    for col in range(size):
        pivot = next((r for r in range(col, size) if work[r][col]), None)
        if pivot is None:
            raise FECError("fec: matrix is singular")
        work[col], work[pivot] = work[pivot], work[col]
        scale = _inverse(work[col][col])
        work[col] = [_mul(scale, v) for v in work[col]]
        for r in range(size):
            factor = work[r][col]
            if r != col and factor:
                work[r] = [v ^ _mul(factor, p) for v, p in zip(work[r], work[col])]
    return [row[size:] for row in work]


def _encoding_matrix(data_shards: int, total_shards: int) -> Matrix:
    vandermonde = [[_power(r, c) for c in range(data_shards)] for r in range(total_shards)]
    top_inverse = _mat_invert(vandermonde[:data_shards])
    return _mat_mul(vandermonde, top_inverse)


def _combine(coeffs: Sequence[int], inputs: Sequence[bytes], length: int) -> bytes:
    acc = 0
    for coeff, shard in zip(coeffs, inputs):
        if coeff:
            acc ^= int.from_bytes(shard.translate(_MUL_TABLES[coeff]), "big")
    return acc.to_bytes(length, "big")


# ── header ───────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class FECHeader:
    """The header in front of every shard frame."""

    group_id: int
    shard_idx: int
    num_data: int

    def encode(self) -> bytes:
        """Return the 5-byte wire form; only the low 24 bits of group_id are kept."""
        return bytes(
            (
                (self.group_id >> 16) & 0xFF,
                (self.group_id >> 8) & 0xFF,
                self.group_id & 0xFF,
                self.shard_idx & 0xFF,
                self.num_data & 0xFF,
            )
        )


def decode_fec_header(src: bytes) -> FECHeader:
    """Parse the header at the start of src."""
    if len(src) < HEADER_SIZE:
        raise FECError(f"fec: header needs {HEADER_SIZE} bytes, got {len(src)}")
    return FECHeader(
        group_id=(src[0] << 16) | (src[1] << 8) | src[2],
        shard_idx=src[3],
        num_data=src[4],
    )


# ── codec ────────────────────────────────────────────────────────────────────

class Codec:
    """Encodes packet groups into data + parity shards and recovers them."""

    def __init__(
        self,
        data_shards: int = DEFAULT_DATA_SHARDS,
        parity_shards: int = DEFAULT_PARITY_SHARDS,
    ) -> None:
        if data_shards <= 0 or parity_shards <= 0:
            raise FECError(
                f"fec: dataShards={data_shards} parityShards={parity_shards} must both be > 0"
            )
        if data_shards + parity_shards > _MAX_TOTAL_SHARDS:
            raise FECError("fec: too many shards (maximum is 256)")
        self._data_shards = data_shards
        self._parity_shards = parity_shards
        self._matrix = _encoding_matrix(data_shards, data_shards + parity_shards)

    @property
    def data_shards(self) -> int:
        return self._data_shards

    @property
    def parity_shards(self) -> int:
        return self._parity_shards

    @property
    def total_shards(self) -> int:
        return self._data_shards + self._parity_shards

    def encode(self, group_id: int, packets: Sequence[bytes]) -> List[bytes]:
        """Encode up to data_shards packets into one frame per shard."""
        if len(packets) > self._data_shards:
            raise FECError(
                f"fec: Encode: got {len(packets)} packets but dataShards={self._data_shards}"
            )
        max_len = 0
        for packet in packets:
            if len(packet) > MAX_SHARD_BYTES:
                raise DataTooLargeError()
            max_len = max(max_len, len(packet))
        max_len = max(max_len, 1)
        shard_len = 2 + max_len

        data = []
        for index in range(self._data_shards):
            if index < len(packets):
                packet = bytes(packets[index])
                prefix = (len(packet) & 0xFFFF).to_bytes(2, "big")
                data.append((prefix + packet).ljust(shard_len, b"\x00"))
            else:
                data.append(bytes(shard_len))
        parity = [
            _combine(self._matrix[row], data, shard_len)
            for row in range(self._data_shards, self.total_shards)
        ]

        return [
            FECHeader(group_id, index, self._data_shards).encode() + shard
            for index, shard in enumerate(data + parity)
        ]

    def reconstruct(self, shards: Sequence[Optional[bytes]]) -> List[Optional[bytes]]:
        """Recover the data packets; missing shards are given as None.

        Returns data_shards entries; padding shards come back as None.
        """
        if len(shards) != self.total_shards:
            raise FECError(
                f"fec: Reconstruct: got {len(shards)} shards, want {self.total_shards}"
            )
        present = [None if s is None else bytes(s) for s in shards]
        available = [i for i, s in enumerate(present) if s is not None]
        if len(available) < self._data_shards:
            raise TooFewShardsError(
                f"fec: insufficient shards to reconstruct: have {len(available)}, "
                f"need {self._data_shards}"
            )
        sizes = {len(present[i]) for i in available}
        if len(sizes) != 1:
            raise FECError("fec: Reconstruct: shard sizes do not match")
        shard_len = sizes.pop()
        if shard_len == 0:
            raise FECError("fec: Reconstruct: shards contain no data")

        missing = [i for i in range(self._data_shards) if present[i] is None]
        if missing:
            chosen = available[: self._data_shards]
            decode = _mat_invert([self._matrix[i] for i in chosen])
            inputs = [present[i] for i in chosen]
            for index in missing:
                present[index] = _combine(decode[index], inputs, shard_len)

        result: List[Optional[bytes]] = []
        for shard in present[: self._data_shards]:
            if len(shard) < 2:
                result.append(None)
                continue
            length = int.from_bytes(shard[:2], "big")
            if length == 0 or 2 + length > len(shard):
                result.append(None)
                continue
            result.append(shard[2 : 2 + length])
        return result