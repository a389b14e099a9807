"""
Transaction mortality (era).

An immortal transaction encodes as the single byte ``0x00``. A mortal one is
valid for `period` blocks starting at the block whose number is congruent to
`phase` modulo `period`, and encodes as two little-endian bytes:

    low 4 bits   log2(period) - 1       (period is a power of two in [4, 65536])
    high 12 bits phase / quantize        (quantize = max(period >> 12, 1))
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple, Union

from ..codec.scale import decode_uint
from ..errors import CodecError, ErrorCode

MIN_PERIOD = 4
MAX_PERIOD = 1 << 16


@dataclass(frozen=True)
class Era:
    period: int = 0
    phase: int = 0

    @property
    def is_immortal(self) -> bool:
        return self.period == 0

    @classmethod
    def immortal(cls) -> "Era":
        return cls()

    @classmethod
    def mortal(cls, period: int, current: int) -> "Era":
        """Era of (at least) `period` blocks starting at block `current`."""
        if period < 1 or current < 0:
            raise ValueError("period must be >= 1 and current >= 0")
        p = 1 << max(period - 1, 0).bit_length()
        p = min(max(p, MIN_PERIOD), MAX_PERIOD)
        quantize = max(p >> 12, 1)
        phase = (current % p) // quantize * quantize
        return cls(period=p, phase=phase)

    def encode(self) -> bytes:
        if self.is_immortal:
            return b"\x00"
        quantize = max(self.period >> 12, 1)
        tz = (self.period & -self.period).bit_length() - 1
        encoded = min(max(tz - 1, 1), 15) | ((self.phase // quantize) << 4)
        return encoded.to_bytes(2, "little")

    @classmethod
    def decode(cls, data: bytes, offset: int = 0) -> Tuple["Era", int]:
        first, off = decode_uint(data, offset, 1)
        if first == 0:
            return cls(), off
        second, off = decode_uint(data, off, 1)
        encoded = first | (second << 8)
        period = 2 << (encoded % (1 << 4))
        quantize = max(period >> 12, 1)
        phase = (encoded >> 4) * quantize
        if period < MIN_PERIOD or phase >= period:
            raise CodecError(
                ErrorCode.INVALID_VALUE, f"invalid mortal era 0x{encoded:04x}", offset=offset
            )
        return cls(period=period, phase=phase), off

    def birth(self, current: int) -> int:
        """First block number at which this era is valid, as seen from `current`."""
        if self.is_immortal:
            return 0
        return (max(current, self.phase) - self.phase) // self.period * self.period + self.phase

    def death(self, current: int) -> int:
        """First block number at which this era is no longer valid."""
        if self.is_immortal:
            return 2**64 - 1
        return self.birth(current) + self.period


# ---------------------------------------------------------------------------
# Mortality as chosen by the caller
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Immortal:
    def era(self) -> Era:
        return Era.immortal()


@dataclass(frozen=True)
class Mortal:
    """
    Valid for `period` blocks from the checkpoint block. `checkpoint_hash` is
    signed over, so the extrinsic is only valid on the fork containing it.
    """

    period: int
    checkpoint_number: int
    checkpoint_hash: bytes

    def era(self) -> Era:
        return Era.mortal(self.period, self.checkpoint_number)


Mortality = Union[Immortal, Mortal]


__all__ = ["Era", "Immortal", "Mortal", "Mortality", "MIN_PERIOD", "MAX_PERIOD"]
