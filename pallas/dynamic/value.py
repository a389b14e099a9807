"""
Dynamic values: a closed set of immutable nodes that mirror the metadata type
kinds, so any runtime type can be built or inspected without generated code.

    transfer_args = Composite.named(
        dest=Variant.of("Id", Bytes(alice)),
        value=UInt(1000),
    )

Conventions
-----------
- `UInt`/`Int` carry an optional `width` (in bytes) that is informational and
  excluded from equality. When given, the encoder requires it to match.
- Sequences and arrays of `u8` decode to `Bytes`.
- `Composite.fields` is a tuple of ``(name | None, Value)``; a composite is
  either fully named or fully positional.
"""

from __future__ import annotations

import typing as t
from dataclasses import dataclass, field

from ..utils.bytes import from_hex


class Value:
    """Base class of all dynamic value nodes."""

    __slots__ = ()

    def to_python(self) -> t.Any:  # pragma: no cover - overridden
        raise NotImplementedError


@dataclass(frozen=True, slots=True)
class Bool(Value):
    value: bool

    def to_python(self) -> bool:
        return self.value


@dataclass(frozen=True, slots=True)
class Char(Value):
    value: str

    def to_python(self) -> str:
        return self.value


@dataclass(frozen=True, slots=True)
class Str(Value):
    value: str

    def to_python(self) -> str:
        return self.value


@dataclass(frozen=True, slots=True)
class UInt(Value):
    value: int
    width: t.Optional[int] = field(default=None, compare=False)

    def to_python(self) -> int:
        return self.value


@dataclass(frozen=True, slots=True)
class Int(Value):
    value: int
    width: t.Optional[int] = field(default=None, compare=False)

    def to_python(self) -> int:
        return self.value


@dataclass(frozen=True, slots=True)
class Bytes(Value):
    value: bytes

    def __post_init__(self) -> None:
        if not isinstance(self.value, bytes):
            object.__setattr__(self, "value", bytes(self.value))

    def to_python(self) -> str:
        return "0x" + self.value.hex()

    def __len__(self) -> int:
        return len(self.value)


FieldItem = t.Tuple[t.Optional[str], Value]


@dataclass(frozen=True, slots=True)
class Composite(Value):
    fields: t.Tuple[FieldItem, ...] = ()

    def __post_init__(self) -> None:
        items = tuple((name, v) for name, v in self.fields)
        named = [name is not None for name, _ in items]
        if any(named) and not all(named):
            raise ValueError("composite fields must be all named or all positional")
        object.__setattr__(self, "fields", items)

    @classmethod
    def named(cls, **values: Value) -> "Composite":
        return cls(tuple(values.items()))

    @classmethod
    def unnamed(cls, *values: Value) -> "Composite":
        return cls(tuple((None, v) for v in values))

    @property
    def is_named(self) -> bool:
        return bool(self.fields) and self.fields[0][0] is not None

    def values(self) -> t.Tuple[Value, ...]:
        return tuple(v for _, v in self.fields)

    def get(self, name: str) -> t.Optional[Value]:
        for n, v in self.fields:
            if n == name:
                return v
        return None

    def __getitem__(self, key: t.Union[str, int]) -> Value:
        if isinstance(key, int):
            return self.fields[key][1]
        v = self.get(key)
        if v is None:
            raise KeyError(key)
        return v

    def __len__(self) -> int:
        return len(self.fields)

    def to_python(self) -> t.Any:
        if self.is_named:
            return {n: v.to_python() for n, v in self.fields}
        return [v.to_python() for _, v in self.fields]


@dataclass(frozen=True, slots=True)
class Variant(Value):
    name: str
    fields: Composite = field(default_factory=Composite)

    @classmethod
    def of(cls, name: str, *values: Value, **named: Value) -> "Variant":
        if values and named:
            raise ValueError("variant fields must be all named or all positional")
        fields = Composite.named(**named) if named else Composite.unnamed(*values)
        return cls(name, fields)

    def to_python(self) -> t.Any:
        if not self.fields.fields:
            return {self.name: None}
        if not self.fields.is_named and len(self.fields) == 1:
            return {self.name: self.fields[0].to_python()}
        return {self.name: self.fields.to_python()}


@dataclass(frozen=True, slots=True)
class Sequence(Value):
    items: t.Tuple[Value, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "items", tuple(self.items))

    def __len__(self) -> int:
        return len(self.items)

    def __getitem__(self, i: int) -> Value:
        return self.items[i]

    def to_python(self) -> t.List[t.Any]:
        return [v.to_python() for v in self.items]


@dataclass(frozen=True, slots=True)
class Tuple(Value):
    items: t.Tuple[Value, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "items", tuple(self.items))

    def __len__(self) -> int:
        return len(self.items)

    def __getitem__(self, i: int) -> Value:
        return self.items[i]

    def to_python(self) -> t.List[t.Any]:
        return [v.to_python() for v in self.items]


@dataclass(frozen=True, slots=True)
class BitSequence(Value):
    bits: t.Tuple[bool, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "bits", tuple(bool(b) for b in self.bits))

    def __len__(self) -> int:
        return len(self.bits)

    def to_python(self) -> str:
        return "".join("1" if b else "0" for b in self.bits)


# ---------------------------------------------------------------------------
# Python / JSON bridge
# ---------------------------------------------------------------------------


def from_python(obj: t.Any) -> Value:
    """
    Build a Value from plain Python/JSON data.

    - bool -> Bool, int >= 0 -> UInt, int < 0 -> Int
    - bytes, or a str starting with "0x" -> Bytes; any other str -> Str
    - list -> Sequence, tuple -> Tuple
    - dict with a single capitalised key -> Variant (``{"Id": "0x.."}``,
      ``{"None": None}``); any other dict -> named Composite
    - Value instances pass through unchanged
    """
    if isinstance(obj, Value):
        return obj
    if isinstance(obj, bool):
        return Bool(obj)
    if isinstance(obj, int):
        return UInt(obj) if obj >= 0 else Int(obj)
    if isinstance(obj, (bytes, bytearray)):
        return Bytes(bytes(obj))
    if isinstance(obj, str):
        if obj.startswith(("0x", "0X")):
            return Bytes(from_hex(obj))
        return Str(obj)
    if isinstance(obj, list):
        return Sequence(tuple(from_python(x) for x in obj))
    if isinstance(obj, tuple):
        return Tuple(tuple(from_python(x) for x in obj))
    if isinstance(obj, dict):
        if len(obj) == 1:
            (key, inner), = obj.items()
            if isinstance(key, str) and key[:1].isupper():
                return Variant(key, _variant_fields(inner))
        return Composite(tuple((str(k), from_python(v)) for k, v in obj.items()))
    raise TypeError(f"cannot convert {type(obj).__name__} to a dynamic value")


def _variant_fields(inner: t.Any) -> Composite:
    if inner is None:
        return Composite()
    if isinstance(inner, dict) and not (len(inner) == 1 and str(next(iter(inner)))[:1].isupper()):
        return Composite(tuple((str(k), from_python(v)) for k, v in inner.items()))
    if isinstance(inner, (list, tuple)):
        return Composite.unnamed(*(from_python(x) for x in inner))
    return Composite.unnamed(from_python(inner))


__all__ = [
    "Value",
    "Bool",
    "Char",
    "Str",
    "UInt",
    "Int",
    "Bytes",
    "Composite",
    "Variant",
    "Sequence",
    "Tuple",
    "BitSequence",
    "from_python",
]
