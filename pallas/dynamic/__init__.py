"""
Dynamic values and their metadata-driven codec.
"""

from .codec import DEFAULT_MAX_DEPTH, DynamicCodec, decode_all, decode_value, encode_value
from .value import (
    BitSequence,
    Bool,
    Bytes,
    Char,
    Composite,
    Int,
    Sequence,
    Str,
    Tuple,
    UInt,
    Value,
    Variant,
    from_python,
)

__all__ = [
    "DEFAULT_MAX_DEPTH",
    "DynamicCodec",
    "encode_value",
    "decode_value",
    "decode_all",
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
