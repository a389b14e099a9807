"""
Dynamic values against the sample registry: encoding rules per type kind,
decoding back into value trees, and the error paths callers rely on.
"""

from __future__ import annotations

import pytest
from hypothesis import given
from hypothesis import strategies as st

from helpers import (
    ALICE,
    BOB,
    T_ACCOUNT,
    T_ACCOUNT_DATA,
    T_ACCOUNT_INFO,
    T_APPROVAL_KEY,
    T_BALANCES_CALL,
    T_BITS,
    T_BOOL,
    T_BYTES,
    T_COMPACT_U32,
    T_COMPACT_U128,
    T_H256_RAW,
    T_I32,
    T_MULTIADDRESS,
    T_OPTION_U32,
    T_PHASE,
    T_STR,
    T_U8,
    T_U16,
    T_U32,
    T_U128,
)
from pallas.dynamic import value as v
from pallas.dynamic.codec import DynamicCodec, encode_value
from pallas.errors import DecodeError, EncodeError, ErrorCode
from pallas.metadata import Metadata


# -- Primitives ----------------------------------------------------------------


def test_primitives(codec: DynamicCodec) -> None:
    assert codec.encode_value(T_U32, v.UInt(1)) == b"\x01\x00\x00\x00"
    assert codec.encode_value(T_I32, v.Int(-1)) == b"\xff\xff\xff\xff"
    assert codec.encode_value(T_BOOL, v.Bool(True)) == b"\x01"
    assert codec.encode_value(T_STR, v.Str("ok")) == b"\x08ok"


def test_no_coercion_between_kinds(codec: DynamicCodec) -> None:
    with pytest.raises(EncodeError) as ei:
        codec.encode_value(T_U32, v.Int(1))
    assert ei.value.code == ErrorCode.SHAPE_MISMATCH
    assert ei.value.type_id == T_U32
    with pytest.raises(EncodeError):
        codec.encode_value(T_BOOL, v.UInt(1))


def test_explicit_width_must_match(codec: DynamicCodec) -> None:
    assert codec.encode_value(T_U32, v.UInt(7, 4)) == b"\x07\x00\x00\x00"
    with pytest.raises(EncodeError) as ei:
        codec.encode_value(T_U32, v.UInt(7, 8))
    assert ei.value.code == ErrorCode.SHAPE_MISMATCH


def test_out_of_range(codec: DynamicCodec) -> None:
    with pytest.raises(EncodeError) as ei:
        codec.encode_value(T_U16, v.UInt(70_000))
    assert ei.value.code == ErrorCode.OUT_OF_RANGE


@given(st.integers(min_value=0, max_value=2**128 - 1))
def test_u128_decodes_to_same_value(metadata: Metadata, n: int) -> None:
    codec = DynamicCodec(metadata.registry)
    raw = codec.encode_value(T_U128, v.UInt(n))
    assert codec.decode_all(T_U128, raw) == v.UInt(n)


# -- Compact -------------------------------------------------------------------


def test_compact_requires_uint_that_fits_inner(codec: DynamicCodec) -> None:
    assert codec.encode_value(T_COMPACT_U128, v.UInt(1000)) == b"\xa1\x0f"
    assert codec.encode_value(T_COMPACT_U32, v.UInt(2**32 - 1)) == b"\x03\xff\xff\xff\xff"
    with pytest.raises(EncodeError) as ei:
        codec.encode_value(T_COMPACT_U32, v.UInt(2**32))
    assert ei.value.code == ErrorCode.OUT_OF_RANGE
    with pytest.raises(EncodeError):
        codec.encode_value(T_COMPACT_U32, v.Int(1))


def test_compact_decodes_with_inner_width(codec: DynamicCodec) -> None:
    value = codec.decode_all(T_COMPACT_U128, b"\xa1\x0f")
    assert value == v.UInt(1000)
    assert value.width == 16


def test_non_canonical_compact(metadata: Metadata) -> None:
    strict = DynamicCodec(metadata.registry)
    lenient = DynamicCodec(metadata.registry, strict_compact=False)
    raw = b"\x05\x00"  # 1 in two-byte mode
    with pytest.raises(DecodeError) as ei:
        strict.decode_all(T_COMPACT_U32, raw)
    assert ei.value.code == ErrorCode.NON_CANONICAL
    assert ei.value.type_id == T_COMPACT_U32
    assert lenient.decode_all(T_COMPACT_U32, raw) == v.UInt(1)


# -- Composite / newtype ---------------------------------------------------------


def test_newtype_accepts_bare_inner_value(codec: DynamicCodec) -> None:
    bare = codec.encode_value(T_ACCOUNT, v.Bytes(ALICE))
    wrapped = codec.encode_value(T_ACCOUNT, v.Composite.unnamed(v.Bytes(ALICE)))
    assert bare == wrapped == ALICE


def test_named_fields_need_exact_name_set(codec: DynamicCodec) -> None:
    data = v.Composite.named(free=v.UInt(1), reserved=v.UInt(2), frozen=v.UInt(3), flags=v.UInt(4))
    raw = codec.encode_value(T_ACCOUNT_DATA, data)
    assert len(raw) == 64
    # field order in the value does not matter
    shuffled = v.Composite.named(flags=v.UInt(4), frozen=v.UInt(3), reserved=v.UInt(2), free=v.UInt(1))
    assert codec.encode_value(T_ACCOUNT_DATA, shuffled) == raw

    with pytest.raises(EncodeError) as ei:
        codec.encode_value(T_ACCOUNT_DATA, v.Composite.named(free=v.UInt(1), reserved=v.UInt(2), frozen=v.UInt(3)))
    assert ei.value.code == ErrorCode.SHAPE_MISMATCH
    with pytest.raises(EncodeError):
        codec.encode_value(
            T_ACCOUNT_DATA,
            v.Composite.named(free=v.UInt(1), reserved=v.UInt(2), frozen=v.UInt(3), flags=v.UInt(4), extra=v.UInt(5)),
        )


def test_positional_value_for_named_fields(codec: DynamicCodec) -> None:
    positional = v.Composite.unnamed(v.UInt(1), v.UInt(2), v.UInt(3), v.UInt(4))
    named = v.Composite.named(free=v.UInt(1), reserved=v.UInt(2), frozen=v.UInt(3), flags=v.UInt(4))
    assert codec.encode_value(T_ACCOUNT_DATA, positional) == codec.encode_value(T_ACCOUNT_DATA, named)


def test_error_path_points_at_offending_field(codec: DynamicCodec) -> None:
    bad = v.Composite.named(free=v.UInt(1), reserved=v.Str("x"), frozen=v.UInt(3), flags=v.UInt(4))
    with pytest.raises(EncodeError) as ei:
        codec.encode_value(T_ACCOUNT_DATA, bad)
    assert ei.value.path == "$.reserved"
    assert ei.value.type_id == T_U128


def test_composite_decodes_named(codec: DynamicCodec) -> None:
    raw = b"\x05\x00\x00\x00" + b"\x00" * 12 + b"\x00" * 64
    info = codec.decode_all(T_ACCOUNT_INFO, raw)
    assert isinstance(info, v.Composite)
    assert info["nonce"] == v.UInt(5)
    assert info.to_python()["data"]["free"] == 0


# -- Variant ---------------------------------------------------------------------


def test_variant_by_name(codec: DynamicCodec) -> None:
    raw = codec.encode_value(T_MULTIADDRESS, v.Variant.of("Id", v.Bytes(BOB)))
    assert raw == b"\x00" + BOB
    raw = codec.encode_value(T_MULTIADDRESS, v.Variant.of("Raw", v.Bytes(b"\x01\x02")))
    assert raw == b"\x02" + b"\x08\x01\x02"


def test_variant_names_are_case_sensitive(codec: DynamicCodec) -> None:
    with pytest.raises(EncodeError) as ei:
        codec.encode_value(T_MULTIADDRESS, v.Variant.of("id", v.Bytes(BOB)))
    assert ei.value.code == ErrorCode.SHAPE_MISMATCH
    assert ei.value.data["variant"] == "id"


def test_variant_requires_variant_value(codec: DynamicCodec) -> None:
    with pytest.raises(EncodeError):
        codec.encode_value(T_MULTIADDRESS, v.Bytes(BOB))


def test_variant_decode(codec: DynamicCodec) -> None:
    value = codec.decode_all(T_PHASE, b"\x00\x02\x00\x00\x00")
    assert value == v.Variant.of("ApplyExtrinsic", v.UInt(2))
    assert codec.decode_all(T_PHASE, b"\x01") == v.Variant("Finalization")


def test_unknown_variant_index(codec: DynamicCodec) -> None:
    with pytest.raises(DecodeError) as ei:
        codec.decode_all(T_PHASE, b"\x07")
    assert ei.value.code == ErrorCode.INVALID_DISCRIMINANT
    assert ei.value.type_id == T_PHASE
    assert ei.value.offset == 0


def test_option_is_a_plain_variant(codec: DynamicCodec) -> None:
    assert codec.encode_value(T_OPTION_U32, v.Variant("None")) == b"\x00"
    assert codec.encode_value(T_OPTION_U32, v.Variant.of("Some", v.UInt(3))) == b"\x01\x03\x00\x00\x00"


def test_call_variant_with_named_args(codec: DynamicCodec) -> None:
    call = v.Variant.of(
        "transfer",
        dest=v.Variant.of("Id", v.Bytes(BOB)),
        value=v.UInt(1000),
    )
    assert codec.encode_value(T_BALANCES_CALL, call) == b"\x00" + b"\x00" + BOB + b"\xa1\x0f"


# -- Sequences / arrays / tuples -------------------------------------------------


def test_byte_sequence_and_array(codec: DynamicCodec) -> None:
    assert codec.encode_value(T_BYTES, v.Bytes(b"ab")) == b"\x08ab"
    items = v.Sequence((v.UInt(97), v.UInt(98)))
    assert codec.encode_value(T_BYTES, items) == b"\x08ab"
    assert codec.decode_all(T_BYTES, b"\x08ab") == v.Bytes(b"ab")
    assert codec.decode_all(T_H256_RAW, ALICE) == v.Bytes(ALICE)


@pytest.mark.parametrize(
    "items, code",
    [
        ((1, v.UInt(2)), ErrorCode.SHAPE_MISMATCH),
        ((v.UInt(2), 1), ErrorCode.SHAPE_MISMATCH),
        ((v.UInt(256),), ErrorCode.OUT_OF_RANGE),
        ((v.UInt(1, 4),), ErrorCode.SHAPE_MISMATCH),
    ],
)
def test_byte_sequence_items_are_checked_one_by_one(codec: DynamicCodec, items: tuple, code: ErrorCode) -> None:
    with pytest.raises(EncodeError) as ei:
        codec.encode_value(T_BYTES, v.Sequence(items))
    assert ei.value.code == code
    assert ei.value.data["path"].endswith("]")


def test_array_length_must_match(codec: DynamicCodec) -> None:
    with pytest.raises(EncodeError) as ei:
        codec.encode_value(T_H256_RAW, v.Bytes(b"\x00" * 31))
    assert ei.value.code == ErrorCode.SHAPE_MISMATCH


def test_tuple_arity(codec: DynamicCodec) -> None:
    pair = v.Tuple((v.Bytes(ALICE), v.UInt(9)))
    assert codec.encode_value(T_APPROVAL_KEY, pair) == ALICE + b"\x09\x00\x00\x00"
    with pytest.raises(EncodeError):
        codec.encode_value(T_APPROVAL_KEY, v.Tuple((v.Bytes(ALICE),)))


def test_tuple_decodes_as_tuple(codec: DynamicCodec) -> None:
    value = codec.decode_all(T_APPROVAL_KEY, ALICE + b"\x09\x00\x00\x00")
    assert isinstance(value, v.Tuple)
    assert value[1] == v.UInt(9)


# -- Bit sequences ---------------------------------------------------------------


def test_bit_sequence(codec: DynamicCodec) -> None:
    bits = v.BitSequence((True, False, True))
    raw = codec.encode_value(T_BITS, bits)
    assert raw == b"\x0c\x05"
    assert codec.decode_all(T_BITS, raw) == bits


# -- Decode errors ---------------------------------------------------------------


def test_truncated_input_reports_inner_type(codec: DynamicCodec) -> None:
    raw = b"\x05\x00\x00\x00" + b"\x00" * 10
    with pytest.raises(DecodeError) as ei:
        codec.decode_all(T_ACCOUNT_INFO, raw)
    assert ei.value.code == ErrorCode.UNEXPECTED_END
    assert ei.value.type_id == T_U32


def test_trailing_bytes(codec: DynamicCodec) -> None:
    with pytest.raises(DecodeError) as ei:
        codec.decode_all(T_U8, b"\x01\x02")
    assert ei.value.code == ErrorCode.TRAILING_BYTES
    assert ei.value.offset == 1


def test_invalid_bool_byte(codec: DynamicCodec) -> None:
    with pytest.raises(DecodeError) as ei:
        codec.decode_all(T_BOOL, b"\x02")
    assert ei.value.code == ErrorCode.INVALID_VALUE


def test_depth_guard(metadata: Metadata) -> None:
    shallow = DynamicCodec(metadata.registry, max_depth=1)
    with pytest.raises(DecodeError) as ei:
        shallow.decode_all(T_ACCOUNT_INFO, b"\x00" * 80)
    assert ei.value.code == ErrorCode.TOO_DEEP


def test_module_level_helper(metadata: Metadata) -> None:
    assert encode_value(metadata.registry, T_U8, v.UInt(5)) == b"\x05"


# -- Python bridge -----------------------------------------------------------------


def test_from_python() -> None:
    assert v.from_python(5) == v.UInt(5)
    assert v.from_python(-5) == v.Int(-5)
    assert v.from_python(True) == v.Bool(True)
    assert v.from_python("0x0102") == v.Bytes(b"\x01\x02")
    assert v.from_python("hi") == v.Str("hi")
    assert v.from_python([1]) == v.Sequence((v.UInt(1),))
    assert v.from_python((1, "a")) == v.Tuple((v.UInt(1), v.Str("a")))
    assert v.from_python({"Id": "0x11"}) == v.Variant.of("Id", v.Bytes(b"\x11"))
    assert v.from_python({"None": None}) == v.Variant("None")
    assert v.from_python({"free": 1}) == v.Composite.named(free=v.UInt(1))
    with pytest.raises(TypeError):
        v.from_python(1.5)


def test_to_python() -> None:
    value = v.Composite.named(
        who=v.Bytes(b"\x01"),
        kind=v.Variant.of("Some", v.UInt(3)),
        flags=v.BitSequence((True, False)),
    )
    assert value.to_python() == {"who": "0x01", "kind": {"Some": 3}, "flags": "10"}


def test_width_is_not_part_of_equality() -> None:
    assert v.UInt(1, 4) == v.UInt(1)
    assert v.UInt(1, 4) != v.Int(1, 4)


def test_composite_rejects_mixed_naming() -> None:
    with pytest.raises(ValueError):
        v.Composite((("a", v.UInt(1)), (None, v.UInt(2))))
