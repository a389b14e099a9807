"""
pallas.codec.scale
==================

SCALE binary codec primitives.

Every decoder takes ``(data, offset)`` and returns ``(value, new_offset)``;
decoders never read past ``len(data)`` and report the offset of the failure.
Every encoder returns ``bytes``.

Wire rules
----------
- Fixed-width integers are little-endian two's complement.
- Booleans are one byte, ``0x00`` or ``0x01``.
- Compact integers select a mode from the two low bits of the first byte:

    0b00  single byte,  value < 2**6
    0b01  two bytes,    value < 2**14
    0b10  four bytes,   value < 2**30
    0b11  big integer,  upper six bits = byte length - 4, then LE bytes

  The minimal mode is always produced. When decoding with ``strict=True``
  (the default) a longer-than-minimal form is rejected.
- Sequences and strings are prefixed by their compact length.
- Options are ``0x00`` (absent) or ``0x01`` followed by the value.
- Bit sequences are a compact bit count followed by store words (u8/u16/u32/u64,
  little-endian); ``lsb0``/``msb0`` selects the bit order inside a word.

Shape API
---------
``encode(value, shape)`` / ``decode(data, offset, shape)`` cover statically
known layouts (metadata documents, RPC payloads) with shapes:

    "bool" "char" "str" "bytes" "compact" "u8".."u256" "i8".."i256"
    ("option", s) ("vec", s) ("array", n, s) ("tuple", s1, s2, ...)
    ("bits", store_bits, "lsb0" | "msb0")
"""

from __future__ import annotations

from typing import Any, Callable, Iterable, List, Optional, Sequence, Tuple, Union

from ..errors import CodecError, ErrorCode

Shape = Union[str, Tuple[Any, ...]]
Decoded = Tuple[Any, int]

UINT_WIDTHS = {"u8": 1, "u16": 2, "u32": 4, "u64": 8, "u128": 16, "u256": 32}
INT_WIDTHS = {"i8": 1, "i16": 2, "i32": 4, "i64": 8, "i128": 16, "i256": 32}

COMPACT_MAX_BYTES = 67
COMPACT_MAX = (1 << (8 * COMPACT_MAX_BYTES)) - 1

BIT_STORE_WIDTHS = (8, 16, 32, 64)


# ---------------------------------------------------------------------------
# Bounds
# ---------------------------------------------------------------------------


def _need(data: bytes, offset: int, n: int) -> None:
    if offset < 0 or offset + n > len(data):
        raise CodecError(
            ErrorCode.UNEXPECTED_END,
            f"need {n} byte(s) at offset {offset}, input has {len(data)}",
            offset=offset,
            needed=n,
        )


def _check_int(value: Any, offset: Optional[int] = None) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise CodecError(
            ErrorCode.INVALID_VALUE,
            f"expected int, got {type(value).__name__}",
            offset=offset,
        )
    return value


# ---------------------------------------------------------------------------
# Integers
# ---------------------------------------------------------------------------


def encode_uint(value: int, width: int) -> bytes:
    value = _check_int(value)
    if value < 0 or value >> (8 * width):
        raise CodecError(
            ErrorCode.OUT_OF_RANGE,
            f"{value} does not fit in u{8 * width}",
            value=str(value),
            bits=8 * width,
        )
    return value.to_bytes(width, "little")


def decode_uint(data: bytes, offset: int, width: int) -> Tuple[int, int]:
    _need(data, offset, width)
    end = offset + width
    return int.from_bytes(data[offset:end], "little"), end


def encode_int(value: int, width: int) -> bytes:
    value = _check_int(value)
    bound = 1 << (8 * width - 1)
    if not -bound <= value < bound:
        raise CodecError(
            ErrorCode.OUT_OF_RANGE,
            f"{value} does not fit in i{8 * width}",
            value=str(value),
            bits=8 * width,
        )
    return value.to_bytes(width, "little", signed=True)


def decode_int(data: bytes, offset: int, width: int) -> Tuple[int, int]:
    _need(data, offset, width)
    end = offset + width
    return int.from_bytes(data[offset:end], "little", signed=True), end


def encode_bool(value: bool) -> bytes:
    if not isinstance(value, bool):
        raise CodecError(ErrorCode.INVALID_VALUE, f"expected bool, got {type(value).__name__}")
    return b"\x01" if value else b"\x00"


def decode_bool(data: bytes, offset: int) -> Tuple[bool, int]:
    _need(data, offset, 1)
    b = data[offset]
    if b > 1:
        raise CodecError(ErrorCode.INVALID_VALUE, f"invalid bool byte 0x{b:02x}", offset=offset)
    return b == 1, offset + 1


def encode_char(value: str) -> bytes:
    if not isinstance(value, str) or len(value) != 1:
        raise CodecError(ErrorCode.INVALID_VALUE, "expected a single character")
    return encode_uint(ord(value), 4)


def decode_char(data: bytes, offset: int) -> Tuple[str, int]:
    cp, end = decode_uint(data, offset, 4)
    if cp > 0x10FFFF or 0xD800 <= cp <= 0xDFFF:
        raise CodecError(ErrorCode.INVALID_VALUE, f"invalid code point {cp:#x}", offset=offset)
    return chr(cp), end


# ---------------------------------------------------------------------------
# Compact integers
# ---------------------------------------------------------------------------


def encode_compact(value: int) -> bytes:
    value = _check_int(value)
    if value < 0 or value > COMPACT_MAX:
        raise CodecError(
            ErrorCode.OUT_OF_RANGE, f"{value} cannot be compact encoded", value=str(value)
        )
    if value < 1 << 6:
        return bytes([value << 2])
    if value < 1 << 14:
        return ((value << 2) | 0b01).to_bytes(2, "little")
    if value < 1 << 30:
        return ((value << 2) | 0b10).to_bytes(4, "little")
    n = max(4, (value.bit_length() + 7) // 8)
    return bytes([((n - 4) << 2) | 0b11]) + value.to_bytes(n, "little")


def decode_compact(data: bytes, offset: int = 0, *, strict: bool = True) -> Tuple[int, int]:
    _need(data, offset, 1)
    b0 = data[offset]
    mode = b0 & 0b11
    if mode == 0b00:
        return b0 >> 2, offset + 1
    if mode == 0b01:
        _need(data, offset, 2)
        value = int.from_bytes(data[offset : offset + 2], "little") >> 2
        minimum, end = 1 << 6, offset + 2
    elif mode == 0b10:
        _need(data, offset, 4)
        value = int.from_bytes(data[offset : offset + 4], "little") >> 2
        minimum, end = 1 << 14, offset + 4
    else:
        n = (b0 >> 2) + 4
        _need(data, offset + 1, n)
        end = offset + 1 + n
        value = int.from_bytes(data[offset + 1 : end], "little")
        minimum = 1 << 30 if n == 4 else 1 << (8 * (n - 1))
    if strict and value < minimum:
        raise CodecError(
            ErrorCode.NON_CANONICAL,
            f"compact value {value} is not minimally encoded",
            offset=offset,
        )
    return value, end


# ---------------------------------------------------------------------------
# Bytes / strings
# ---------------------------------------------------------------------------


def encode_bytes(value: bytes) -> bytes:
    if not isinstance(value, (bytes, bytearray, memoryview)):
        raise CodecError(ErrorCode.INVALID_VALUE, f"expected bytes, got {type(value).__name__}")
    raw = bytes(value)
    return encode_compact(len(raw)) + raw


def decode_bytes(data: bytes, offset: int, *, strict: bool = True) -> Tuple[bytes, int]:
    n, off = decode_compact(data, offset, strict=strict)
    _need(data, off, n)
    return bytes(data[off : off + n]), off + n


def decode_fixed(data: bytes, offset: int, n: int) -> Tuple[bytes, int]:
    _need(data, offset, n)
    return bytes(data[offset : offset + n]), offset + n


def encode_str(value: str) -> bytes:
    if not isinstance(value, str):
        raise CodecError(ErrorCode.INVALID_VALUE, f"expected str, got {type(value).__name__}")
    return encode_bytes(value.encode("utf-8"))


def decode_str(data: bytes, offset: int, *, strict: bool = True) -> Tuple[str, int]:
    raw, end = decode_bytes(data, offset, strict=strict)
    try:
        return raw.decode("utf-8"), end
    except UnicodeDecodeError as e:
        raise CodecError(
            ErrorCode.INVALID_VALUE, "string is not valid UTF-8", offset=offset, cause=e
        ) from e


# ---------------------------------------------------------------------------
# Containers
# ---------------------------------------------------------------------------


def encode_option(value: Any, encode_inner: Callable[[Any], bytes]) -> bytes:
    if value is None:
        return b"\x00"
    return b"\x01" + encode_inner(value)


def decode_option(
    data: bytes, offset: int, decode_inner: Callable[[bytes, int], Decoded]
) -> Decoded:
    _need(data, offset, 1)
    tag = data[offset]
    if tag == 0:
        return None, offset + 1
    if tag == 1:
        return decode_inner(data, offset + 1)
    raise CodecError(
        ErrorCode.INVALID_DISCRIMINANT, f"invalid option tag 0x{tag:02x}", offset=offset
    )


def encode_sequence(items: Iterable[Any], encode_item: Callable[[Any], bytes]) -> bytes:
    parts = [encode_item(x) for x in items]
    return encode_compact(len(parts)) + b"".join(parts)


def decode_sequence(
    data: bytes,
    offset: int,
    decode_item: Callable[[bytes, int], Decoded],
    *,
    strict: bool = True,
) -> Tuple[List[Any], int]:
    n, off = decode_compact(data, offset, strict=strict)
    return decode_array(data, off, n, decode_item)


def decode_array(
    data: bytes, offset: int, n: int, decode_item: Callable[[bytes, int], Decoded]
) -> Tuple[List[Any], int]:
    out: List[Any] = []
    off = offset
    for _ in range(n):
        item, off = decode_item(data, off)
        out.append(item)
    return out, off


# ---------------------------------------------------------------------------
# Bit sequences
# ---------------------------------------------------------------------------


def _check_store(store_bits: int) -> None:
    if store_bits not in BIT_STORE_WIDTHS:
        raise CodecError(ErrorCode.INVALID_VALUE, f"unsupported bit store width {store_bits}")


def encode_bits(bits: Sequence[bool], store_bits: int = 8, msb0: bool = False) -> bytes:
    _check_store(store_bits)
    n = len(bits)
    words = (n + store_bits - 1) // store_bits
    out = bytearray(encode_compact(n))
    for w in range(words):
        word = 0
        for j in range(store_bits):
            i = w * store_bits + j
            if i < n and bits[i]:
                word |= 1 << (store_bits - 1 - j if msb0 else j)
        out += word.to_bytes(store_bits // 8, "little")
    return bytes(out)


def decode_bits(
    data: bytes,
    offset: int,
    store_bits: int = 8,
    msb0: bool = False,
    *,
    strict: bool = True,
) -> Tuple[Tuple[bool, ...], int]:
    _check_store(store_bits)
    n, off = decode_compact(data, offset, strict=strict)
    width = store_bits // 8
    words = (n + store_bits - 1) // store_bits
    _need(data, off, words * width)
    bits: List[bool] = []
    for w in range(words):
        start = off + w * width
        word = int.from_bytes(data[start : start + width], "little")
        for j in range(store_bits):
            if len(bits) == n:
                break
            shift = store_bits - 1 - j if msb0 else j
            bits.append(bool((word >> shift) & 1))
    return tuple(bits), off + words * width


# ---------------------------------------------------------------------------
# Shape API
# ---------------------------------------------------------------------------


def encode(value: Any, shape: Shape) -> bytes:
    """Encode `value` according to a static `shape` (see module docstring)."""
    if isinstance(shape, str):
        if shape in UINT_WIDTHS:
            return encode_uint(value, UINT_WIDTHS[shape])
        if shape in INT_WIDTHS:
            return encode_int(value, INT_WIDTHS[shape])
        if shape == "compact":
            return encode_compact(value)
        if shape == "bool":
            return encode_bool(value)
        if shape == "char":
            return encode_char(value)
        if shape == "str":
            return encode_str(value)
        if shape == "bytes":
            return encode_bytes(value)
        raise ValueError(f"unknown shape {shape!r}")

    kind = shape[0]
    if kind == "option":
        return encode_option(value, lambda v: encode(v, shape[1]))
    if kind == "vec":
        return encode_sequence(value, lambda v: encode(v, shape[1]))
    if kind == "array":
        n, inner = shape[1], shape[2]
        if inner == "u8" and isinstance(value, (bytes, bytearray)):
            value = list(value)
        if len(value) != n:
            raise CodecError(
                ErrorCode.INVALID_VALUE, f"array expects {n} items, got {len(value)}"
            )
        return b"".join(encode(v, inner) for v in value)
    if kind == "tuple":
        inners = shape[1:]
        if len(value) != len(inners):
            raise CodecError(
                ErrorCode.INVALID_VALUE, f"tuple expects {len(inners)} items, got {len(value)}"
            )
        return b"".join(encode(v, s) for v, s in zip(value, inners))
    if kind == "bits":
        return encode_bits(value, shape[1], shape[2] == "msb0")
    raise ValueError(f"unknown shape {shape!r}")


def decode(data: bytes, offset: int, shape: Shape, *, strict: bool = True) -> Decoded:
    """Decode one value of `shape` at `offset`; returns ``(value, new_offset)``."""
    if isinstance(shape, str):
        if shape in UINT_WIDTHS:
            return decode_uint(data, offset, UINT_WIDTHS[shape])
        if shape in INT_WIDTHS:
            return decode_int(data, offset, INT_WIDTHS[shape])
        if shape == "compact":
            return decode_compact(data, offset, strict=strict)
        if shape == "bool":
            return decode_bool(data, offset)
        if shape == "char":
            return decode_char(data, offset)
        if shape == "str":
            return decode_str(data, offset, strict=strict)
        if shape == "bytes":
            return decode_bytes(data, offset, strict=strict)
        raise ValueError(f"unknown shape {shape!r}")

    kind = shape[0]
    if kind == "option":
        return decode_option(data, offset, lambda d, o: decode(d, o, shape[1], strict=strict))
    if kind == "vec":
        return decode_sequence(
            data, offset, lambda d, o: decode(d, o, shape[1], strict=strict), strict=strict
        )
    if kind == "array":
        n, inner = shape[1], shape[2]
        if inner == "u8":
            return decode_fixed(data, offset, n)
        return decode_array(data, offset, n, lambda d, o: decode(d, o, inner, strict=strict))
    if kind == "tuple":
        out = []
        off = offset
        for s in shape[1:]:
            v, off = decode(data, off, s, strict=strict)
            out.append(v)
        return tuple(out), off
    if kind == "bits":
        return decode_bits(data, offset, shape[1], shape[2] == "msb0", strict=strict)
    raise ValueError(f"unknown shape {shape!r}")


def decode_all(data: bytes, shape: Shape, *, strict: bool = True) -> Any:
    """Decode exactly one value of `shape` spanning the whole buffer."""
    value, end = decode(data, 0, shape, strict=strict)
    if end != len(data):
        raise CodecError(
            ErrorCode.TRAILING_BYTES,
            f"{len(data) - end} trailing byte(s) after value",
            offset=end,
        )
    return value


# ---------------------------------------------------------------------------
# Reader
# ---------------------------------------------------------------------------


class Reader:
    """
    Cursor over a byte buffer for hand-written layouts such as the metadata
    document. Each method consumes from the current offset.
    """

    __slots__ = ("data", "offset", "strict")

    def __init__(self, data: bytes, offset: int = 0, *, strict: bool = True) -> None:
        self.data = bytes(data)
        self.offset = offset
        self.strict = strict

    @property
    def remaining(self) -> int:
        return len(self.data) - self.offset

    def u8(self) -> int:
        v, self.offset = decode_uint(self.data, self.offset, 1)
        return v

    def u32(self) -> int:
        v, self.offset = decode_uint(self.data, self.offset, 4)
        return v

    def bool(self) -> bool:
        v, self.offset = decode_bool(self.data, self.offset)
        return v

    def compact(self) -> int:
        v, self.offset = decode_compact(self.data, self.offset, strict=self.strict)
        return v

    def bytes(self) -> bytes:
        v, self.offset = decode_bytes(self.data, self.offset, strict=self.strict)
        return v

    def fixed(self, n: int) -> bytes:
        v, self.offset = decode_fixed(self.data, self.offset, n)
        return v

    def str(self) -> str:
        v, self.offset = decode_str(self.data, self.offset, strict=self.strict)
        return v

    def option(self, read: Callable[[], Any]) -> Any:
        offset = self.offset
        tag = self.u8()
        if tag == 0:
            return None
        if tag == 1:
            return read()
        raise CodecError(
            ErrorCode.INVALID_DISCRIMINANT, f"invalid option tag 0x{tag:02x}", offset=offset
        )

    def vec(self, read: Callable[[], Any]) -> List[Any]:
        return [read() for _ in range(self.compact())]

    def strings(self) -> Tuple[str, ...]:
        return tuple(self.vec(self.str))

    def finish(self) -> None:
        if self.offset != len(self.data):
            raise CodecError(
                ErrorCode.TRAILING_BYTES,
                f"{len(self.data) - self.offset} trailing byte(s)",
                offset=self.offset,
            )


__all__ = [
    "Shape",
    "UINT_WIDTHS",
    "INT_WIDTHS",
    "COMPACT_MAX",
    "encode_uint",
    "decode_uint",
    "encode_int",
    "decode_int",
    "encode_bool",
    "decode_bool",
    "encode_char",
    "decode_char",
    "encode_compact",
    "decode_compact",
    "encode_bytes",
    "decode_bytes",
    "decode_fixed",
    "encode_str",
    "decode_str",
    "encode_option",
    "decode_option",
    "encode_sequence",
    "decode_sequence",
    "decode_array",
    "encode_bits",
    "decode_bits",
    "encode",
    "decode",
    "decode_all",
    "Reader",
]
