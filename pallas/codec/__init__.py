"""
Binary codec engine (SCALE).

    from pallas.codec import scale
    scale.encode_compact(64)        # b'\\x01\\x01'
    scale.decode(b'\\x01\\x01', 0, "compact")  # (64, 2)
"""

from . import scale
from .scale import Reader, decode, decode_all, decode_compact, encode, encode_compact

__all__ = ["scale", "Reader", "encode", "decode", "decode_all", "encode_compact", "decode_compact"]
