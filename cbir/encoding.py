"""
Fixed-width binary encoding of stored signatures.

Perceptual hashes are stored as 16 lowercase hex characters. Float
vectors are stored as a little-endian header followed by float32 values:

    offset  size  field
    0       4     magic b"CBIR"
    4       1     kind (1 = color histogram, 2 = edge features)
    5       1     format version
    6       2     parameter (bins per channel, or grid cells per side)
    8       2     resize dimension used before extraction
    10      4     element count
    14      4*n   float32 values

FORMAT_VERSION identifies the frozen preprocessing choices (bilinear
resize, 0.299/0.587/0.114 luminance, zero-padded Sobel). Version 1 blobs
excluded the Sobel border and are rejected.
Decoding is strict: any mismatch with the requested configuration raises
ConfigurationError so vectors from different settings are never compared.
"""

import string
import struct

import numpy as np

from .errors import ConfigurationError, RecordFormatError

MAGIC = b"CBIR"
FORMAT_VERSION = 2

KIND_COLOR_HISTOGRAM = 1
KIND_EDGE_FEATURES = 2

HEADER = struct.Struct("<4sBBHHI")
VALUE_DTYPE = np.dtype("<f4")

HASH_HEX_LENGTH = 16


def encode_hash(value: int) -> str:
    if not 0 <= value < 1 << 64:
        raise ValueError(f"Hash out of 64-bit range: {value}")
    return f"{value:016x}"


def decode_hash(text: str) -> int:
    if not isinstance(text, str) or len(text) != HASH_HEX_LENGTH:
        raise RecordFormatError(f"Stored hash must be {HASH_HEX_LENGTH} hex characters")
    if text.strip(string.hexdigits):
        raise RecordFormatError(f"Stored hash is not hexadecimal: {text!r}")
    return int(text, 16)


def encode_vector(vector: np.ndarray, kind: int, parameter: int, resize_dim: int) -> bytes:
    values = np.ascontiguousarray(vector, dtype=VALUE_DTYPE).ravel()
    header = HEADER.pack(MAGIC, kind, FORMAT_VERSION, parameter, resize_dim, values.size)
    return header + values.tobytes()


def decode_vector(blob: bytes, kind: int, parameter: int, resize_dim: int,
                  expected_length: int) -> np.ndarray:
    """
    Decode a vector blob, checking it against the current configuration.

    Args:
        blob: Bytes produced by encode_vector().
        kind: Expected KIND_* tag.
        parameter: Expected bins or grid size.
        resize_dim: Expected resize dimension.
        expected_length: Expected element count.

    Returns:
        Float32 vector of expected_length values.

    Raises:
        RecordFormatError: Truncated, untagged or non-finite data.
        ConfigurationError: Valid blob written under other settings.
    """
    if not isinstance(blob, (bytes, bytearray, memoryview)):
        raise RecordFormatError(f"Stored vector must be bytes, got {type(blob).__name__}")
    blob = bytes(blob)
    if len(blob) < HEADER.size:
        raise RecordFormatError(f"Stored vector is truncated ({len(blob)} bytes)")

    magic, stored_kind, version, stored_param, stored_resize, count = HEADER.unpack_from(blob)
    if magic != MAGIC:
        raise RecordFormatError("Stored vector has no format tag")
    if stored_kind != kind:
        raise RecordFormatError(f"Stored vector kind {stored_kind}, expected {kind}")
    if version != FORMAT_VERSION:
        raise ConfigurationError(
            f"Stored vector format version {version}, current is {FORMAT_VERSION}"
        )
    if stored_param != parameter or stored_resize != resize_dim:
        raise ConfigurationError(
            f"Stored vector was computed with parameter={stored_param}, "
            f"resize_dim={stored_resize}; current configuration uses "
            f"parameter={parameter}, resize_dim={resize_dim}"
        )
    if count != expected_length:
        raise RecordFormatError(f"Stored vector has {count} values, expected {expected_length}")
    if len(blob) != HEADER.size + count * VALUE_DTYPE.itemsize:
        raise RecordFormatError(
            f"Stored vector length {len(blob)} does not match its header ({count} values)"
        )

    values = np.frombuffer(blob, dtype=VALUE_DTYPE, offset=HEADER.size).astype(np.float32)
    if not np.all(np.isfinite(values)):
        raise RecordFormatError("Stored vector contains non-finite values")
    return values
