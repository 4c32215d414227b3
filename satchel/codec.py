from __future__ import annotations

import gzip
import os
from typing import BinaryIO, Optional

from .constants import COMPRESSED_SUFFIXES, DEFAULT_COMPRESS_LEVEL


def is_compressed_name(path: str) -> bool:
    """True when the archive name asks for gzip. The suffix is the only signal."""
    return os.path.basename(path).lower().endswith(COMPRESSED_SUFFIXES)


def wrap_writer(raw: BinaryIO, path: str, level: Optional[int] = None) -> Optional[gzip.GzipFile]:
    """Interpose a gzip compressor in front of ``raw`` if ``path`` calls for one.

    The returned object does not own ``raw``; closing it only flushes the gzip
    trailer. No file name is stored in the gzip header.
    """
    if not is_compressed_name(path):
        return None
    if level is None:
        level = DEFAULT_COMPRESS_LEVEL
    if not 1 <= level <= 9:
        raise ValueError(f"compression level must be 1-9, got {level}")
    return gzip.GzipFile(filename="", mode="wb", compresslevel=level, fileobj=raw)


def wrap_reader(raw: BinaryIO, path: str) -> Optional[gzip.GzipFile]:
    if not is_compressed_name(path):
        return None
    return gzip.GzipFile(filename="", mode="rb", fileobj=raw)
