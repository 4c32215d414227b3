from __future__ import annotations

import gzip
import os
import stat
import sys
import tarfile
import zlib
from dataclasses import dataclass, field
from typing import BinaryIO, Callable, Iterator, List, Optional, Tuple

from .codec import wrap_reader
from .constants import COPY_BUFSIZE, KIND_DIR, KIND_FILE
from .encryption import SealedReader, is_sealed
from .entryutil import Entry, EntryResult, entry_from_tarinfo
from .errors import ArchiveIOError, FormatError, SatchelError, TraversalGuardError
from .handles import HandleStack
from .options import Options
from .pathutil import abs_path, resolve_under

# What a damaged archive raises from the tar or gzip layers
_FORMAT_ERRORS = (tarfile.TarError, gzip.BadGzipFile, EOFError, zlib.error)


@dataclass
class ReadSummary:
    files: int = 0
    dirs: int = 0
    bytes: int = 0
    skipped: List[EntryResult] = field(default_factory=list)
    unsupported: List[str] = field(default_factory=list)

    def record(self, res: EntryResult) -> None:
        if res.status == "extracted":
            if res.kind == KIND_DIR:
                self.dirs += 1
            else:
                self.files += 1
                self.bytes += res.size
        elif res.status == "skipped":
            self.skipped.append(res)
        elif res.status == "unsupported":
            self.unsupported.append(res.name)


def _safe_utime(path: str, mtime: Optional[float]) -> None:
    """Best-effort utime that never raises."""
    if mtime is None:
        return
    try:
        os.utime(path, (mtime, mtime), follow_symlinks=False)
    except (OSError, NotImplementedError) as exc:
        print(f"Warning: failed to set timestamps on {path}: {exc}", file=sys.stderr)


class ArchiveReader:
    """Single-pass reader for tar archives, gzip'ed and/or sealed.

    The archive is consumed as a stream, so one reader serves exactly one of
    ``entries()`` or ``extract_all()``.
    """

    def __init__(self, path: str, options: Optional[Options] = None):
        self.path = path
        self.options = options or Options()
        self.abs_path: Optional[str] = None
        self.tar: Optional[tarfile.TarFile] = None
        self.sealed = False
        self._handles = HandleStack()

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb):
        if exc_type is None:
            self.close()
        else:
            self._abort()
        return False

    def open(self):
        if self.tar is not None:
            return
        self.abs_path = abs_path(self.path, "archive file")
        try:
            f = open(self.abs_path, "rb")
        except OSError as exc:
            raise ArchiveIOError("failed to open archive file", self.abs_path, exc)
        self._handles.push("archive file", self.abs_path, f.close)
        try:
            stream: BinaryIO = f
            if is_sealed(f):
                self.sealed = True
                sealed = SealedReader(f, self.options.password)
                self._handles.push("encryption reader", self.abs_path, sealed.close)
                stream = sealed  # type: ignore[assignment]
            gz = wrap_reader(stream, self.abs_path)
            if gz is not None:
                self._handles.push("gzip reader", self.abs_path, gz.close)
                stream = gz  # type: ignore[assignment]
            self.tar = tarfile.open(fileobj=stream, mode="r|", bufsize=COPY_BUFSIZE)
            self._handles.push("archive reader", self.abs_path, self.tar.close)
        except SatchelError:
            self._abort()
            raise
        except _FORMAT_ERRORS as exc:
            self._abort()
            raise FormatError("failed to read archive", self.abs_path, exc)
        except OSError as exc:
            self._abort()
            raise ArchiveIOError("failed to read archive", self.abs_path, exc)

    def close(self):
        """Release all handles; a close failure is raised only from here."""
        err = self._handles.close_all()
        self.tar = None
        if err is not None:
            raise err

    def _abort(self):
        # an error is already in flight; it wins over any close failure
        self._handles.close_all()
        self.tar = None

    def entries(self) -> Iterator[Entry]:
        """Yield every restorable entry without touching the filesystem."""
        for info in self._members():
            e = entry_from_tarinfo(info)
            if e is not None:
                yield e

    def members(self) -> Iterator[Tuple[tarfile.TarInfo, Optional[Entry]]]:
        for info in self._members():
            yield info, entry_from_tarinfo(info)

    def extract_all(self, target: str) -> Iterator[EntryResult]:
        """Recreate every entry under ``target``, yielding one result per member.

        Directory modes and times are applied last, deepest first, so entries
        can still be written into directories that end up read-only.
        Fail-fast unless ``options.keep_going``: then filesystem failures and
        names rejected by the traversal guard are yielded as "skipped". Damage
        to the archive itself always aborts.
        """
        target = abs_path(target, "extract directory")
        deferred: List[Tuple[str, Entry]] = []
        for info, e in self.members():
            if e is None:
                yield EntryResult(info.name, "unsupported")
                continue
            try:
                dst = resolve_under(target, e.name)
                if e.kind == KIND_DIR:
                    self._make_dir(dst)
                    deferred.append((dst, e))
                    yield EntryResult(e.name, "extracted", KIND_DIR)
                else:
                    self._extract_file(info, e, dst)
                    yield EntryResult(e.name, "extracted", KIND_FILE, e.size)
            except (ArchiveIOError, TraversalGuardError) as exc:
                if not self.options.keep_going:
                    raise
                yield EntryResult(e.name, "skipped", e.kind, error=exc)
        for dst, e in reversed(deferred):
            try:
                os.chmod(dst, e.mode)
            except OSError as exc:
                err = ArchiveIOError("failed to set mode on", dst, exc)
                if not self.options.keep_going:
                    raise err
                print(f"Warning: {err}", file=sys.stderr)
            if self.options.restore_mtime:
                _safe_utime(dst, e.mtime)

    # internals
    def _members(self) -> Iterator[tarfile.TarInfo]:
        if self.tar is None:
            raise RuntimeError("Archive not open")
        it = iter(self.tar)
        while True:
            try:
                info = next(it)
            except StopIteration:
                return
            except _FORMAT_ERRORS as exc:
                raise FormatError("failed to read archive", self.abs_path, exc)
            except OSError as exc:
                raise ArchiveIOError("failed to read archive", self.abs_path, exc)
            yield info

    def _make_dir(self, dst: str) -> None:
        try:
            os.makedirs(dst, mode=0o700, exist_ok=True)
            # A read-only directory left by an earlier run must accept new
            # children; its recorded mode is restored once all entries are in.
            st = os.stat(dst)
            if st.st_mode & 0o700 != 0o700:
                os.chmod(dst, stat.S_IMODE(st.st_mode) | 0o700)
        except OSError as exc:
            raise ArchiveIOError("failed to make directories", dst, exc)

    def _extract_file(self, info: tarfile.TarInfo, e: Entry, dst: str) -> None:
        if self.tar is None:
            raise RuntimeError("Archive not open")
        parent = os.path.dirname(dst)
        try:
            os.makedirs(parent, exist_ok=True)
        except OSError as exc:
            raise ArchiveIOError("failed to make directories", parent, exc)
        # Replace whatever non-directory sits at the path, a symlink included,
        # instead of writing through it.
        try:
            st = os.lstat(dst)
        except FileNotFoundError:
            st = None
        except OSError as exc:
            raise ArchiveIOError("failed to access", dst, exc)
        if st is not None and not stat.S_ISDIR(st.st_mode):
            try:
                os.unlink(dst)
            except OSError as exc:
                raise ArchiveIOError("failed to replace file", dst, exc)
        try:
            fd = os.open(dst, os.O_WRONLY | os.O_CREAT | os.O_TRUNC | getattr(os, "O_BINARY", 0), e.mode)
            out = os.fdopen(fd, "wb")
        except OSError as exc:
            raise ArchiveIOError("failed to create file", dst, exc)
        with HandleStack() as handles:
            handles.push("file", dst, out.close)
            src = self._open_member(info)
            handles.push("archive member", e.name, src.close)
            copied = self._copy_body(src, out, e.name, dst)
            if copied != e.size:
                raise FormatError("archive member is truncated", e.name)
            try:
                os.chmod(dst, e.mode)
            except OSError as exc:
                raise ArchiveIOError("failed to set mode on", dst, exc)
        if self.options.restore_mtime:
            _safe_utime(dst, e.mtime)

    def _open_member(self, info: tarfile.TarInfo):
        if self.tar is None:
            raise RuntimeError("Archive not open")
        try:
            src = self.tar.extractfile(info)
        except _FORMAT_ERRORS as exc:
            raise FormatError("failed to read archive member", info.name, exc)
        if src is None:
            raise FormatError("archive member has no data", info.name)
        return src

    def _copy_body(self, src, out, name: str, dst: str) -> int:
        copied = 0
        while True:
            try:
                buf = src.read(COPY_BUFSIZE)
            except _FORMAT_ERRORS as exc:
                raise FormatError("failed to read archive member", name, exc)
            except OSError as exc:
                raise ArchiveIOError("failed to read archive member", name, exc)
            if not buf:
                return copied
            try:
                out.write(buf)
            except OSError as exc:
                raise ArchiveIOError("failed to copy data to", dst, exc)
            copied += len(buf)


def read_archive(
    archive_path: str,
    destination_dir: str,
    options: Optional[Options] = None,
    report: Optional[Callable[[EntryResult], None]] = None,
) -> ReadSummary:
    """Unpack ``archive_path`` into ``destination_dir`` (created as needed).

    Raises:
        PathResolutionError: a path cannot be made absolute.
        ArchiveIOError: open/create/read/write/close failure.
        FormatError: damaged, truncated or wrongly sealed archive.
        TraversalGuardError: an entry name escapes ``destination_dir``.
    """
    summary = ReadSummary()
    with ArchiveReader(archive_path, options) as r:
        for res in r.extract_all(destination_dir):
            summary.record(res)
            if report is not None:
                report(res)
    return summary
