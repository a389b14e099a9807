"""
Transaction mortality encoding.
"""

from __future__ import annotations

import pytest
from hypothesis import given
from hypothesis import strategies as st

from pallas.errors import CodecError
from pallas.tx.era import MAX_PERIOD, MIN_PERIOD, Era, Immortal, Mortal


def test_immortal() -> None:
    assert Era.immortal().encode() == b"\x00"
    assert Era.decode(b"\x00") == (Era(), 1)
    assert Immortal().era().is_immortal


def test_known_mortal_encoding() -> None:
    # period 64, current block 42 -> phase 42
    era = Era.mortal(64, 42)
    assert (era.period, era.phase) == (64, 42)
    assert era.encode() == bytes([0xA5, 0x02])
    assert Era.decode(era.encode()) == (era, 2)


def test_period_is_rounded_and_clamped() -> None:
    assert Era.mortal(60, 0).period == 64
    assert Era.mortal(1, 0).period == MIN_PERIOD
    assert Era.mortal(10**6, 0).period == MAX_PERIOD


def test_large_period_quantizes_phase() -> None:
    era = Era.mortal(1 << 15, 12_345)
    assert era.phase % ((1 << 15) >> 12) == 0
    assert Era.decode(era.encode())[0] == era


def test_birth_and_death() -> None:
    era = Era.mortal(64, 1000)
    assert era.birth(1000) <= 1000 < era.death(1000)
    assert era.death(1000) - era.birth(1000) == 64


def test_mortal_checkpoint() -> None:
    m = Mortal(period=64, checkpoint_number=42, checkpoint_hash=b"\x01" * 32)
    assert m.era() == Era.mortal(64, 42)


def test_decode_rejects_truncated_mortal() -> None:
    with pytest.raises(CodecError):
        Era.decode(b"\x05")


@given(
    st.integers(min_value=2, max_value=16).map(lambda k: 1 << k),
    st.integers(min_value=0, max_value=2**32),
)
def test_mortal_decodes_back(period: int, current: int) -> None:
    era = Era.mortal(period, current)
    raw = era.encode()
    assert len(raw) == 2
    assert Era.decode(raw) == (era, 2)
