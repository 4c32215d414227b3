"""Password-sealed byte stream.

An optional layer between the archive file and the gzip/tar layers. The
header carries the Argon2id parameters and salt; the body is a sequence of
XChaCha20-Poly1305 frames. Frame i is authenticated together with the header,
its index, its length and its final flag, so a reordered, spliced or cut
stream fails authentication instead of yielding a shorter archive.

Header (little endian)::

    magic[8] version u16 time_cost u32 memory_cost_kib u32 parallelism u32 salt[16]

Frame::

    plain_len u32  flags u8  nonce[24] ciphertext[plain_len] tag[16]
"""

import hashlib
import hmac
import os
import struct
import tarfile
from dataclasses import dataclass
from typing import BinaryIO, Optional

from argon2.low_level import Type as _ArgonType, hash_secret_raw as _argon_hash
from Cryptodome.Cipher import ChaCha20_Poly1305

from .constants import SEAL_FLAG_FINAL, SEAL_FRAME_SIZE, SEAL_MAGIC, SEAL_VERSION
from .errors import FormatError, PasswordRequired


NONCE_SIZE = 24
TAG_SIZE = 16
KEY_SIZE = 32
SALT_SIZE = 16

# Argon2id defaults for new archives
ARGON_TIME_COST = 3
ARGON_MEMORY_COST_KIB = 256 * 1024  # 256 MiB
ARGON_PARALLELISM = 4

# Accepted ranges when reading a header; keeps a hostile header from pinning memory
_MAX_TIME_COST = 64
_MAX_MEMORY_COST_KIB = 4 * 1024 * 1024
_MAX_PARALLELISM = 64

_HEADER_STRUCT = struct.Struct("<8sHIII16s")
_FRAME_STRUCT = struct.Struct("<IB")


@dataclass
class EncryptionParams:
    salt: bytes
    time_cost: int = ARGON_TIME_COST
    memory_cost_kib: int = ARGON_MEMORY_COST_KIB
    parallelism: int = ARGON_PARALLELISM

    def check(self) -> None:
        if len(self.salt) != SALT_SIZE:
            raise FormatError("unsupported key derivation salt")
        if not 1 <= self.time_cost <= _MAX_TIME_COST:
            raise FormatError(f"unsupported Argon2 time cost {self.time_cost}")
        if not 1 <= self.parallelism <= _MAX_PARALLELISM:
            raise FormatError(f"unsupported Argon2 parallelism {self.parallelism}")
        if not 8 * self.parallelism <= self.memory_cost_kib <= _MAX_MEMORY_COST_KIB:
            raise FormatError(f"unsupported Argon2 memory cost {self.memory_cost_kib} KiB")

    def pack(self) -> bytes:
        return _HEADER_STRUCT.pack(
            SEAL_MAGIC, SEAL_VERSION, self.time_cost, self.memory_cost_kib, self.parallelism, self.salt
        )


class EncryptionContext:
    def __init__(self, key: bytes, params: EncryptionParams):
        self.key = key
        self.params = params

    @classmethod
    def create(
        cls,
        password: str,
        *,
        time_cost: int = ARGON_TIME_COST,
        memory_cost_kib: int = ARGON_MEMORY_COST_KIB,
        parallelism: int = ARGON_PARALLELISM,
    ) -> "EncryptionContext":
        params = EncryptionParams(
            salt=os.urandom(SALT_SIZE),
            time_cost=time_cost,
            memory_cost_kib=memory_cost_kib,
            parallelism=parallelism,
        )
        params.check()
        return cls(_derive_key(password, params), params)

    @classmethod
    def from_params(cls, password: str, params: EncryptionParams) -> "EncryptionContext":
        params.check()
        return cls(_derive_key(password, params), params)

    def _derive_nonce(self, nonce_material: bytes) -> bytes:
        return hmac.new(self.key, b"SATCHEL_FRAME_NONCE" + nonce_material, hashlib.sha512).digest()[:NONCE_SIZE]

    def encrypt(self, aad: bytes, plaintext: bytes, *, nonce_material: bytes) -> bytes:
        nonce = self._derive_nonce(nonce_material)
        cipher = ChaCha20_Poly1305.new(key=self.key, nonce=nonce)
        cipher.update(aad)
        ciphertext, tag = cipher.encrypt_and_digest(plaintext)
        return nonce + ciphertext + tag

    def decrypt(self, aad: bytes, payload: bytes) -> bytes:
        if len(payload) < NONCE_SIZE + TAG_SIZE:
            raise FormatError("sealed frame too short")
        nonce = payload[:NONCE_SIZE]
        tag = payload[-TAG_SIZE:]
        ciphertext = payload[NONCE_SIZE:-TAG_SIZE]
        cipher = ChaCha20_Poly1305.new(key=self.key, nonce=nonce)
        cipher.update(aad)
        try:
            return cipher.decrypt_and_verify(ciphertext, tag)
        except ValueError as exc:
            raise FormatError("failed to authenticate archive (wrong password or corrupted data)", cause=exc)

    def overhead(self) -> int:
        return NONCE_SIZE + TAG_SIZE

    def export_params(self) -> EncryptionParams:
        return self.params


def _derive_key(password: str, params: EncryptionParams) -> bytes:
    return _argon_hash(
        password.encode("utf-8"),
        params.salt,
        time_cost=params.time_cost,
        memory_cost=params.memory_cost_kib,
        parallelism=params.parallelism,
        hash_len=KEY_SIZE,
        type=_ArgonType.ID,
    )


def _frame_aad(header: bytes, index: int, length: int, flags: int) -> bytes:
    return header + struct.pack("<QIB", index, length, flags)


def is_sealed(raw: BinaryIO) -> bool:
    """Peek at the start of a seekable stream without consuming it.

    A plain tar whose first member name happens to begin with the magic still
    has a valid tar header in its first block, and is not sealed.
    """
    pos = raw.tell()
    try:
        block = raw.read(tarfile.BLOCKSIZE)
    finally:
        raw.seek(pos)
    if not block.startswith(SEAL_MAGIC):
        return False
    try:
        tarfile.TarInfo.frombuf(block, tarfile.ENCODING, "surrogateescape")
    except tarfile.HeaderError:
        return True
    return False


class SealedWriter:
    """Write-only file object that seals everything written to it.

    Does not own ``raw``; ``close()`` emits the final frame and leaves ``raw``
    open for its owner.
    """

    def __init__(self, raw: BinaryIO, ctx: EncryptionContext, frame_size: int = SEAL_FRAME_SIZE):
        self.raw = raw
        self.ctx = ctx
        self.frame_size = frame_size
        self.closed = False
        self._buf = bytearray()
        self._index = 0
        self._header = ctx.export_params().pack()
        self.raw.write(self._header)

    def writable(self) -> bool:
        return True

    def write(self, data) -> int:
        if self.closed:
            raise ValueError("write to closed sealed stream")
        self._buf += data
        while len(self._buf) >= self.frame_size:
            chunk = bytes(self._buf[: self.frame_size])
            del self._buf[: self.frame_size]
            self._emit(chunk, 0)
        return len(data)

    def flush(self) -> None:
        # Frames are only cut at frame_size or at close.
        self.raw.flush()

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._emit(bytes(self._buf), SEAL_FLAG_FINAL)
        self._buf.clear()

    def _emit(self, chunk: bytes, flags: int) -> None:
        aad = _frame_aad(self._header, self._index, len(chunk), flags)
        payload = self.ctx.encrypt(aad, chunk, nonce_material=struct.pack("<Q", self._index))
        self.raw.write(_FRAME_STRUCT.pack(len(chunk), flags))
        self.raw.write(payload)
        self._index += 1


class SealedReader:
    """Read-only file object that opens a sealed stream frame by frame."""

    def __init__(self, raw: BinaryIO, password: Optional[str]):
        self.raw = raw
        self.closed = False
        self._buf = bytearray()
        self._index = 0
        self._done = False
        self._header = _read_exact(raw, _HEADER_STRUCT.size, "sealed header")
        magic, version, time_cost, memory_kib, lanes, salt = _HEADER_STRUCT.unpack(self._header)
        if magic != SEAL_MAGIC:
            raise FormatError("not a sealed archive (bad magic)")
        if version != SEAL_VERSION:
            raise FormatError(f"unsupported sealed archive version {version}")
        if not password:
            raise PasswordRequired("archive is encrypted; password required")
        params = EncryptionParams(salt=salt, time_cost=time_cost, memory_cost_kib=memory_kib, parallelism=lanes)
        self.ctx = EncryptionContext.from_params(password, params)

    def readable(self) -> bool:
        return True

    def read(self, size: int = -1) -> bytes:
        if self.closed:
            raise ValueError("read from closed sealed stream")
        while not self._done and (size < 0 or len(self._buf) < size):
            self._next_frame()
        if size < 0 or size >= len(self._buf):
            out = bytes(self._buf)
            self._buf.clear()
        else:
            out = bytes(self._buf[:size])
            del self._buf[:size]
        return out

    def close(self) -> None:
        self.closed = True
        self._buf.clear()

    def _next_frame(self) -> None:
        hdr = self.raw.read(_FRAME_STRUCT.size)
        if not hdr:
            raise FormatError("sealed stream truncated (missing final frame)")
        if len(hdr) != _FRAME_STRUCT.size:
            raise FormatError("sealed stream truncated (short frame header)")
        length, flags = _FRAME_STRUCT.unpack(hdr)
        if length > SEAL_FRAME_SIZE or flags & ~SEAL_FLAG_FINAL:
            raise FormatError("malformed sealed frame header")
        payload = _read_exact(self.raw, length + self.ctx.overhead(), "sealed frame")
        aad = _frame_aad(self._header, self._index, length, flags)
        self._buf += self.ctx.decrypt(aad, payload)
        self._index += 1
        if flags & SEAL_FLAG_FINAL:
            self._done = True
            if self.raw.read(1):
                raise FormatError("unexpected data after final sealed frame")


def _read_exact(raw: BinaryIO, n: int, what: str) -> bytes:
    data = raw.read(n)
    if len(data) != n:
        raise FormatError(f"{what} truncated")
    return data
