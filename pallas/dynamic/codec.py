"""
pallas.dynamic.codec
====================

Encode and decode dynamic `Value`s against a type id of the metadata registry.

Rules
-----
- Composite: named fields are matched by name (all of them, no extras),
  positional fields by position. A single-field composite also accepts its
  bare inner value, so an ``AccountId32([u8; 32])`` takes ``Bytes`` directly.
- Variant: the value's tag name must equal a declared variant name exactly
  (case-sensitive); its index byte is written first, then its fields.
- Sequence: compact length then items. Array: exactly ``len`` items.
  Tuple: exactly one item per element type.
- Compact: compact integer whatever the nominal inner width; the value must
  still fit that width. Newtype inners (``Compact<Perbill>``) are unwrapped.
- BitSequence: store width and bit order come from the registry.
- Nothing is coerced: an unsigned primitive needs `UInt`, a signed one `Int`.

Failures raise EncodeError / DecodeError carrying the type id, and for encoding
the path of the offending value (``$.dest.Id[0]``). Byte-level failures during
decoding are re-raised as DecodeError with the innermost type id and offset.
"""

from __future__ import annotations

import logging
from typing import Any, List, Optional, Tuple, Union

from ..codec import scale
from ..errors import CodecError, DecodeError, EncodeError, ErrorCode
from ..metadata.registry import TypeRegistry
from ..metadata.types import (
    Array,
    BitSequence,
    Compact,
    Composite,
    Field,
    Primitive,
    PrimitiveKind,
    Sequence,
    Tuple_,
    TypeId,
    Variant,
)
from . import value as v

log = logging.getLogger(__name__)

DEFAULT_MAX_DEPTH = 256


class DynamicCodec:
    """Value codec bound to one registry."""

    def __init__(
        self,
        registry: TypeRegistry,
        *,
        strict_compact: bool = True,
        max_depth: int = DEFAULT_MAX_DEPTH,
    ) -> None:
        self.registry = registry
        self.strict_compact = strict_compact
        self.max_depth = max_depth

    # ------------------------------------------------------------------
    # Encoding
    # ------------------------------------------------------------------

    def encode_value(self, type_id: TypeId, value: v.Value) -> bytes:
        out = bytearray()
        self._encode(type_id, value, out, 0, "$")
        return bytes(out)

    def _encode(self, type_id: TypeId, value: Any, out: bytearray, depth: int, path: str) -> None:
        if depth > self.max_depth:
            raise EncodeError(
                ErrorCode.TOO_DEEP,
                f"value nesting exceeds {self.max_depth}",
                type_id=type_id,
                path=path,
            )
        desc = self.registry.descriptor(type_id)

        if isinstance(desc, Composite):
            self._encode_fields(type_id, desc.fields, value, out, depth, path)
        elif isinstance(desc, Variant):
            if not isinstance(value, v.Variant):
                raise _mismatch(type_id, path, "Variant", value)
            vdef = desc.by_name(value.name)
            if vdef is None:
                raise EncodeError(
                    ErrorCode.SHAPE_MISMATCH,
                    f"{path}: type {type_id} has no variant named {value.name!r}",
                    type_id=type_id,
                    path=path,
                    variant=value.name,
                )
            out.append(vdef.index)
            self._encode_fields(
                type_id, vdef.fields, value.fields, out, depth, f"{path}.{value.name}", newtype=False
            )
        elif isinstance(desc, Sequence):
            items = self._items(type_id, desc.type, value, path)
            out += scale.encode_compact(len(items))
            self._encode_items(desc.type, items, out, depth, path)
        elif isinstance(desc, Array):
            items = self._items(type_id, desc.type, value, path)
            if len(items) != desc.len:
                raise EncodeError(
                    ErrorCode.SHAPE_MISMATCH,
                    f"{path}: type {type_id} expects {desc.len} items, got {len(items)}",
                    type_id=type_id,
                    path=path,
                )
            self._encode_items(desc.type, items, out, depth, path)
        elif isinstance(desc, Tuple_):
            if isinstance(value, v.Tuple):
                items = value.items
            elif isinstance(value, v.Composite) and not value.is_named:
                items = value.values()
            else:
                raise _mismatch(type_id, path, "Tuple", value)
            if len(items) != len(desc.types):
                raise EncodeError(
                    ErrorCode.SHAPE_MISMATCH,
                    f"{path}: tuple type {type_id} has {len(desc.types)} elements, got {len(items)}",
                    type_id=type_id,
                    path=path,
                )
            for i, (ty, item) in enumerate(zip(desc.types, items)):
                self._encode(ty, item, out, depth + 1, f"{path}[{i}]")
        elif isinstance(desc, Primitive):
            out += _encode_primitive(type_id, desc.kind, value, path)
        elif isinstance(desc, Compact):
            out += self._encode_compact(type_id, desc, value, path)
        elif isinstance(desc, BitSequence):
            if not isinstance(value, v.BitSequence):
                raise _mismatch(type_id, path, "BitSequence", value)
            store_bits, msb0 = self.registry.bit_sequence_format(desc)
            out += scale.encode_bits(value.bits, store_bits, msb0)
        else:  # pragma: no cover - closed set
            raise EncodeError(ErrorCode.SHAPE_MISMATCH, f"unsupported type kind {desc!r}", type_id=type_id)

    def _encode_fields(
        self,
        type_id: TypeId,
        fields: Tuple[Field, ...],
        value: Any,
        out: bytearray,
        depth: int,
        path: str,
        *,
        newtype: bool = True,
    ) -> None:
        items = _match_fields(fields, value)
        if items is None:
            if newtype and len(fields) == 1:
                name = fields[0].name
                self._encode(fields[0].type, value, out, depth + 1, f"{path}.{name}" if name else path)
                return
            raise _mismatch(type_id, path, _describe_fields(fields), value)
        for i, (f, item) in enumerate(zip(fields, items)):
            label = f".{f.name}" if f.name else f"[{i}]"
            self._encode(f.type, item, out, depth + 1, path + label)

    def _items(self, type_id: TypeId, elem_ty: TypeId, value: Any, path: str) -> Union[bytes, Tuple[Any, ...]]:
        if isinstance(value, v.Sequence):
            return value.items
        if isinstance(value, v.Bytes) and self._is_u8(elem_ty):
            return value.value
        raise _mismatch(type_id, path, "Sequence", value)

    def _encode_items(
        self, elem_ty: TypeId, items: Union[bytes, Tuple[Any, ...]], out: bytearray, depth: int, path: str
    ) -> None:
        if isinstance(items, bytes):
            out += items
            return
        for i, item in enumerate(items):
            self._encode(elem_ty, item, out, depth + 1, f"{path}[{i}]")

    def _encode_compact(self, type_id: TypeId, desc: Compact, value: Any, path: str) -> bytes:
        kind, _ = self._compact_inner(type_id, desc)
        while isinstance(value, (v.Composite, v.Tuple)) and len(value) == 1:
            value = value[0]
        if not isinstance(value, v.UInt):
            raise _mismatch(type_id, path, "UInt", value)
        width = kind.byte_width or 0
        if value.value < 0 or value.value >> (8 * width):
            raise EncodeError(
                ErrorCode.OUT_OF_RANGE,
                f"{path}: {value.value} does not fit in Compact<{kind.value}>",
                type_id=type_id,
                path=path,
            )
        return scale.encode_compact(value.value)

    def _compact_inner(self, type_id: TypeId, desc: Compact) -> Tuple[PrimitiveKind, List[Optional[str]]]:
        """Resolve the primitive behind a compact, through single-field wrappers."""
        wrappers: List[Optional[str]] = []
        inner = self.registry.descriptor(desc.type)
        for _ in range(self.max_depth):
            if isinstance(inner, Composite) and len(inner.fields) == 1:
                wrappers.append(inner.fields[0].name)
                inner = self.registry.descriptor(inner.fields[0].type)
            elif isinstance(inner, Tuple_) and len(inner.types) == 1:
                wrappers.append(None)
                inner = self.registry.descriptor(inner.types[0])
            else:
                break
        if not isinstance(inner, Primitive) or not inner.kind.is_unsigned:
            raise EncodeError(
                ErrorCode.SHAPE_MISMATCH,
                f"compact type {type_id} does not wrap an unsigned integer",
                type_id=type_id,
            )
        return inner.kind, wrappers

    def _is_u8(self, type_id: TypeId) -> bool:
        desc = self.registry.descriptor(type_id)
        return isinstance(desc, Primitive) and desc.kind is PrimitiveKind.U8

    # ------------------------------------------------------------------
    # Decoding
    # ------------------------------------------------------------------

    def decode_value(self, type_id: TypeId, data: bytes, offset: int = 0) -> Tuple[v.Value, int]:
        return self._decode(type_id, bytes(data), offset, 0)

    def decode_all(self, type_id: TypeId, data: bytes) -> v.Value:
        raw = bytes(data)
        value, end = self._decode(type_id, raw, 0, 0)
        if end != len(raw):
            raise DecodeError(
                ErrorCode.TRAILING_BYTES,
                f"{len(raw) - end} trailing byte(s) after type {type_id}",
                type_id=type_id,
                offset=end,
            )
        return value

    def _decode(self, type_id: TypeId, data: bytes, offset: int, depth: int) -> Tuple[v.Value, int]:
        if depth > self.max_depth:
            raise DecodeError(
                ErrorCode.TOO_DEEP,
                f"type nesting exceeds {self.max_depth}",
                type_id=type_id,
                offset=offset,
            )
        desc = self.registry.descriptor(type_id)
        try:
            if isinstance(desc, Composite):
                fields, off = self._decode_fields(desc.fields, data, offset, depth)
                return v.Composite(fields), off
            if isinstance(desc, Variant):
                index, off = scale.decode_uint(data, offset, 1)
                vdef = desc.by_index(index)
                if vdef is None:
                    raise DecodeError(
                        ErrorCode.INVALID_DISCRIMINANT,
                        f"type {type_id} has no variant with index {index}",
                        type_id=type_id,
                        offset=offset,
                        index=index,
                    )
                fields, off = self._decode_fields(vdef.fields, data, off, depth)
                return v.Variant(vdef.name, v.Composite(fields)), off
            if isinstance(desc, Sequence):
                n, off = scale.decode_compact(data, offset, strict=self.strict_compact)
                return self._decode_items(desc.type, n, data, off, depth, v.Sequence)
            if isinstance(desc, Array):
                return self._decode_items(desc.type, desc.len, data, offset, depth, v.Sequence)
            if isinstance(desc, Tuple_):
                items = []
                off = offset
                for ty in desc.types:
                    item, off = self._decode(ty, data, off, depth + 1)
                    items.append(item)
                return v.Tuple(tuple(items)), off
            if isinstance(desc, Primitive):
                return _decode_primitive(desc.kind, data, offset, self.strict_compact)
            if isinstance(desc, Compact):
                return self._decode_compact(type_id, desc, data, offset)
            if isinstance(desc, BitSequence):
                store_bits, msb0 = self.registry.bit_sequence_format(desc)
                bits, off = scale.decode_bits(data, offset, store_bits, msb0, strict=self.strict_compact)
                return v.BitSequence(bits), off
        except DecodeError:
            raise
        except CodecError as e:
            raise DecodeError(
                e.code, e.message, type_id=type_id, offset=e.offset, cause=e
            ) from e
        raise DecodeError(  # pragma: no cover - closed set
            ErrorCode.INVALID_VALUE, f"unsupported type kind {desc!r}", type_id=type_id, offset=offset
        )

    def _decode_fields(
        self, fields: Tuple[Field, ...], data: bytes, offset: int, depth: int
    ) -> Tuple[Tuple[v.FieldItem, ...], int]:
        out = []
        off = offset
        for f in fields:
            item, off = self._decode(f.type, data, off, depth + 1)
            out.append((f.name, item))
        return tuple(out), off

    def _decode_items(self, elem_ty: TypeId, n: int, data: bytes, offset: int, depth: int, kind: type):
        if self._is_u8(elem_ty):
            raw, off = scale.decode_fixed(data, offset, n)
            return v.Bytes(raw), off
        items = []
        off = offset
        for _ in range(n):
            item, off = self._decode(elem_ty, data, off, depth + 1)
            items.append(item)
        return kind(tuple(items)), off

    def _decode_compact(self, type_id: TypeId, desc: Compact, data: bytes, offset: int) -> Tuple[v.Value, int]:
        try:
            kind, wrappers = self._compact_inner(type_id, desc)
        except EncodeError as e:
            raise DecodeError(e.code, e.message, type_id=type_id, offset=offset) from e
        n, off = scale.decode_compact(data, offset, strict=self.strict_compact)
        width = kind.byte_width or 0
        if n >> (8 * width):
            raise DecodeError(
                ErrorCode.OUT_OF_RANGE,
                f"compact value {n} does not fit in {kind.value}",
                type_id=type_id,
                offset=offset,
            )
        value: v.Value = v.UInt(n, width)
        for name in reversed(wrappers):
            value = v.Composite(((name, value),))
        return value, off


# ---------------------------------------------------------------------------
# Primitives
# ---------------------------------------------------------------------------


def _encode_primitive(type_id: TypeId, kind: PrimitiveKind, value: Any, path: str) -> bytes:
    try:
        if kind is PrimitiveKind.BOOL:
            if not isinstance(value, v.Bool):
                raise _mismatch(type_id, path, "Bool", value)
            return scale.encode_bool(value.value)
        if kind is PrimitiveKind.CHAR:
            if not isinstance(value, v.Char):
                raise _mismatch(type_id, path, "Char", value)
            return scale.encode_char(value.value)
        if kind is PrimitiveKind.STR:
            if not isinstance(value, v.Str):
                raise _mismatch(type_id, path, "Str", value)
            return scale.encode_str(value.value)
        width = kind.byte_width
        if width is None:
            raise EncodeError(
                ErrorCode.SHAPE_MISMATCH,
                f"{path}: unsupported primitive {kind.value}",
                type_id=type_id,
                path=path,
            )
        expected = v.UInt if kind.is_unsigned else v.Int
        if not isinstance(value, expected):
            raise _mismatch(type_id, path, f"{expected.__name__} ({kind.value})", value)
        if value.width is not None and value.width != width:
            raise EncodeError(
                ErrorCode.SHAPE_MISMATCH,
                f"{path}: {kind.value} given a {value.width * 8}-bit value",
                type_id=type_id,
                path=path,
            )
        if kind.is_unsigned:
            return scale.encode_uint(value.value, width)
        return scale.encode_int(value.value, width)
    except CodecError as e:
        code = ErrorCode.OUT_OF_RANGE if e.code == ErrorCode.OUT_OF_RANGE else ErrorCode.SHAPE_MISMATCH
        raise EncodeError(code, f"{path}: {e.message}", type_id=type_id, path=path, cause=e) from e


def _decode_primitive(kind: PrimitiveKind, data: bytes, offset: int, strict: bool) -> Tuple[v.Value, int]:
    if kind is PrimitiveKind.BOOL:
        b, off = scale.decode_bool(data, offset)
        return v.Bool(b), off
    if kind is PrimitiveKind.CHAR:
        c, off = scale.decode_char(data, offset)
        return v.Char(c), off
    if kind is PrimitiveKind.STR:
        s, off = scale.decode_str(data, offset, strict=strict)
        return v.Str(s), off
    width = kind.byte_width
    if width is None:
        raise DecodeError(ErrorCode.INVALID_VALUE, f"unsupported primitive {kind.value}", offset=offset)
    if kind.is_unsigned:
        n, off = scale.decode_uint(data, offset, width)
        return v.UInt(n, width), off
    n, off = scale.decode_int(data, offset, width)
    return v.Int(n, width), off


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _match_fields(fields: Tuple[Field, ...], value: Any) -> Optional[Tuple[Any, ...]]:
    """Line up a Composite/Tuple value with declared fields, or None if it does not fit."""
    if isinstance(value, v.Tuple):
        if _all_named(fields) or len(value.items) != len(fields):
            return None
        return value.items
    if not isinstance(value, v.Composite):
        return None
    if not fields:
        return () if not value.fields else None
    if _all_named(fields) and value.is_named:
        names = [n for n, _ in value.fields]
        if sorted(names) != sorted(f.name for f in fields) or len(set(names)) != len(names):
            return None
        return tuple(value.get(f.name) for f in fields)  # type: ignore[arg-type]
    if not value.is_named and len(value.fields) == len(fields):
        return value.values()
    return None


def _all_named(fields: Tuple[Field, ...]) -> bool:
    return bool(fields) and all(f.name is not None for f in fields)


def _describe_fields(fields: Tuple[Field, ...]) -> str:
    if not fields:
        return "empty Composite"
    if _all_named(fields):
        return "Composite{" + ", ".join(f.name or "" for f in fields) + "}"
    return f"Composite with {len(fields)} positional field(s)"


def _mismatch(type_id: TypeId, path: str, expected: str, value: Any) -> EncodeError:
    return EncodeError(
        ErrorCode.SHAPE_MISMATCH,
        f"{path}: type {type_id} expects {expected}, got {_describe_value(value)}",
        type_id=type_id,
        path=path,
        expected=expected,
    )


def _describe_value(value: Any) -> str:
    if isinstance(value, v.Composite):
        return "Composite{" + ", ".join(str(n) for n, _ in value.fields) + "}" if value.is_named else f"Composite({len(value)})"
    if isinstance(value, v.Variant):
        return f"Variant({value.name})"
    return type(value).__name__


# ---------------------------------------------------------------------------
# Module-level convenience
# ---------------------------------------------------------------------------


def encode_value(registry: TypeRegistry, type_id: TypeId, value: v.Value, **kw: Any) -> bytes:
    return DynamicCodec(registry, **kw).encode_value(type_id, value)


def decode_value(
    registry: TypeRegistry, type_id: TypeId, data: bytes, offset: int = 0, **kw: Any
) -> Tuple[v.Value, int]:
    return DynamicCodec(registry, **kw).decode_value(type_id, data, offset)


def decode_all(registry: TypeRegistry, type_id: TypeId, data: bytes, **kw: Any) -> v.Value:
    return DynamicCodec(registry, **kw).decode_all(type_id, data)


__all__ = ["DEFAULT_MAX_DEPTH", "DynamicCodec", "encode_value", "decode_value", "decode_all"]
