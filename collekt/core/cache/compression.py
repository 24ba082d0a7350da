"""
Cache Value Compression

Gzip compression for cached collection values. Compressed values are
base64-encoded so they remain valid Redis strings; small or poorly
compressible payloads are stored as plain JSON. Reads accept either form.
"""

import base64
import binascii
import gzip
import json
import logging
import zlib
from dataclasses import dataclass
from typing import Any

from collekt.core.exceptions import CacheError

logger = logging.getLogger(__name__)

# Compressed output must be at most this fraction of the original to be kept
MIN_SAVINGS_RATIO = 0.9

# base64 of the gzip magic bytes (1f 8b 08)
_GZIP_B64_PREFIX = "H4sI"


@dataclass(frozen=True)
class CompressionConfig:
    enabled: bool = True
    threshold: int = 1024
    level: int = 6


@dataclass(frozen=True)
class CompressionResult:
    data: str
    is_compressed: bool
    original_size: int
    compressed_size: int

    @property
    def compression_ratio(self) -> float:
        if not self.is_compressed or self.original_size == 0:
            return 1.0
        return self.compressed_size / self.original_size


def compress_value(value: Any, config: CompressionConfig | None = None) -> CompressionResult:
    """
    Serialize ``value`` to JSON and gzip it when worthwhile.

    Args:
        value: JSON-serializable value
        config: Compression settings (defaults when omitted)

    Returns:
        CompressionResult whose ``data`` is ready to store
    """
    config = config or CompressionConfig()
    json_string = json.dumps(value, separators=(",", ":"))
    raw = json_string.encode("utf-8")
    original_size = len(raw)

    if not config.enabled or original_size < config.threshold:
        return CompressionResult(json_string, False, original_size, original_size)

    compressed = gzip.compress(raw, compresslevel=config.level)
    if len(compressed) / original_size > MIN_SAVINGS_RATIO:
        logger.debug(
            f"Skipping compression: {original_size} -> {len(compressed)} bytes saves too little"
        )
        return CompressionResult(json_string, False, original_size, original_size)

    return CompressionResult(
        base64.b64encode(compressed).decode("ascii"),
        True,
        original_size,
        len(compressed),
    )


def is_compressed(data: str) -> bool:
    return data.startswith(_GZIP_B64_PREFIX)


def decompress_value(data: str) -> Any:
    """
    Decode a stored value, compressed or plain.

    Raises:
        CacheError: If the value is neither valid JSON nor valid gzip
    """
    try:
        if is_compressed(data):
            data = gzip.decompress(base64.b64decode(data, validate=True)).decode("utf-8")
        return json.loads(data)
    except (binascii.Error, OSError, EOFError, zlib.error, UnicodeDecodeError, ValueError) as e:
        raise CacheError(f"Failed to decode cached value: {e}") from e
