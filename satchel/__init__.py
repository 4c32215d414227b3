"""
Satchel: a small tar archiver built on a streaming walk-and-copy engine.

Features:

- Depth-first pre-order packing of files and directories; each input root is
  named from its own base name.
- gzip compression chosen purely by the archive name (.gz / .gzip).
- Optional password sealing of the whole stream (XChaCha20-Poly1305 frames,
  Argon2id key derivation).
- Extraction guarded against entries that would land outside the destination.
- Fail-fast by default; --keep-going skips unreadable or unwritable entries.
"""

__version__ = "0.1"

__all__ = [
    "constants",
    "writer",
    "reader",
    "codec",
    "encryption",
    "errors",
    "options",
]

# Importable programmatic API: satchel.writer.write_archive and
# satchel.reader.read_archive, or the cmd_* functions in satchel.cli which take
# an Options instance.
