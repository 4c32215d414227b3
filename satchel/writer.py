from __future__ import annotations

import os
import sys
import tarfile
from dataclasses import dataclass, field
from typing import Callable, Iterable, Iterator, List, Optional, Tuple

from .codec import wrap_writer
from .constants import COPY_BUFSIZE, KIND_DIR, KIND_FILE
from .encryption import EncryptionContext, SealedWriter
from .entryutil import EntryResult, build_tarinfo, entry_from_stat, entry_kind
from .errors import ArchiveIOError, FormatError, PathResolutionError, SatchelError, UsageError
from .handles import HandleStack
from .options import Options
from .pathutil import abs_path
from .walk import Node, walk_root


@dataclass
class WriteSummary:
    files: int = 0
    dirs: int = 0
    bytes: int = 0
    skipped: List[EntryResult] = field(default_factory=list)
    excluded: List[str] = field(default_factory=list)
    unsupported: List[str] = field(default_factory=list)

    def record(self, res: EntryResult) -> None:
        if res.status == "added":
            if res.kind == KIND_DIR:
                self.dirs += 1
            else:
                self.files += 1
                self.bytes += res.size
        elif res.status == "skipped":
            self.skipped.append(res)
        elif res.status == "excluded":
            self.excluded.append(res.name)
        elif res.status == "unsupported":
            self.unsupported.append(res.name)


def stat_root(root: str) -> Tuple[str, os.stat_result]:
    """Resolve a root argument; the root itself may be a symlink."""
    abs_root = abs_path(root, "archive root")
    try:
        return abs_root, os.stat(abs_root)
    except OSError as exc:
        raise PathResolutionError("failed to access archive root", root, exc)


class ArchiveWriter:
    """Streaming tar writer over optional sealing and gzip layers.

    Handles are stacked as file -> sealed writer -> gzip -> tar and released
    in the opposite order. When the writer is closed after a failure, the
    destination file is removed so no truncated archive is left behind.
    """

    def __init__(self, out_path: str, options: Optional[Options] = None):
        self.out_path = out_path
        self.options = options or Options()
        self.abs_path: Optional[str] = None
        self.tar: Optional[tarfile.TarFile] = None
        self._handles = HandleStack()
        self._self_id: Optional[Tuple[int, int]] = None

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close(failed=exc_type is not None)
        return False

    def open(self):
        if self.tar is not None:
            return
        self.abs_path = abs_path(self.out_path, "archive file")
        try:
            f = open(self.abs_path, "wb")
        except OSError as exc:
            raise ArchiveIOError("failed to create archive file", self.abs_path, exc)
        self._handles.push("archive file", self.abs_path, f.close)
        try:
            st = os.fstat(f.fileno())
            self._self_id = (st.st_dev, st.st_ino)
            stream = f
            if self.options.password:
                ctx = EncryptionContext.create(
                    self.options.password,
                    time_cost=self.options.kdf_time_cost,
                    memory_cost_kib=self.options.kdf_memory_cost_kib,
                    parallelism=self.options.kdf_parallelism,
                )
                stream = SealedWriter(f, ctx)
                self._handles.push("encryption writer", self.abs_path, stream.close)
            gz = wrap_writer(stream, self.abs_path, self.options.compress_level)
            if gz is not None:
                self._handles.push("gzip writer", self.abs_path, gz.close)
                stream = gz
            self.tar = tarfile.open(fileobj=stream, mode="w|", bufsize=COPY_BUFSIZE)
            self._handles.push("archive writer", self.abs_path, self.tar.close)
        except SatchelError:
            self.close(failed=True)
            raise
        except (OSError, ValueError, tarfile.TarError) as exc:
            self.close(failed=True)
            raise ArchiveIOError("failed to open archive writer", self.abs_path, exc)

    def close(self, failed: bool = False):
        err = self._handles.close_all()
        self.tar = None
        if failed or err is not None:
            self._discard()
        if err is not None and not failed:
            raise err

    def add_root(self, root: str) -> Iterator[EntryResult]:
        """Archive one root argument, yielding one result per visited node.

        Fail-fast unless ``options.keep_going``: then nodes that cannot be
        stat'ed, listed or opened come back as "skipped" and the walk goes on.
        Errors after an entry header has been written are always raised.
        """
        if self.tar is None:
            raise RuntimeError("Archive not open")
        abs_root, root_st = stat_root(root)
        for node in walk_root(abs_root, root_st):
            if node.error is not None:
                yield self._skip(node.name, "failed to read", node.path, node.error)
                continue
            yield self._add_node(node)

    # internals
    def _add_node(self, node: Node) -> EntryResult:
        st = node.st
        if st is None:
            raise RuntimeError(f"no stat result for {node.path}")
        if (st.st_dev, st.st_ino) == self._self_id:
            return EntryResult(node.name, "excluded")
        kind = entry_kind(st)
        if kind is None:
            return EntryResult(node.name, "unsupported")
        if kind == KIND_DIR:
            e = entry_from_stat(node.name, st)
            self._write(build_tarinfo(e), None, node.path)
            return EntryResult(e.name, "added", KIND_DIR)
        try:
            src = open(node.path, "rb")
        except OSError as exc:
            return self._skip(node.name, "failed to open file", node.path, exc)
        with HandleStack() as handles:
            handles.push("file", node.path, src.close)
            try:
                fst = os.fstat(src.fileno())
            except OSError as exc:
                return self._skip(node.name, "failed to stat file", node.path, exc)
            if entry_kind(fst) != KIND_FILE:
                return EntryResult(node.name, "unsupported")
            e = entry_from_stat(node.name, fst)
            self._write(build_tarinfo(e), src, node.path)
        return EntryResult(e.name, "added", KIND_FILE, e.size)

    def _write(self, info: tarfile.TarInfo, src, path: str) -> None:
        if self.tar is None:
            raise RuntimeError("Archive not open")
        try:
            self.tar.addfile(info, src)
        except OSError as exc:
            raise ArchiveIOError("failed to copy data from", path, exc)
        except (ValueError, tarfile.TarError) as exc:
            raise FormatError("failed to encode header for", path, exc)

    def _skip(self, name: str, op: str, path: str, exc: OSError) -> EntryResult:
        err = ArchiveIOError(op, path, exc)
        if not self.options.keep_going:
            raise err
        return EntryResult(name, "skipped", error=err)

    def _discard(self) -> None:
        if self.abs_path is None:
            return
        try:
            os.unlink(self.abs_path)
        except FileNotFoundError:
            pass
        except OSError as exc:
            print(f"Warning: failed to remove incomplete archive {self.abs_path}: {exc}", file=sys.stderr)


def write_archive(
    roots: Iterable[str],
    destination: str,
    options: Optional[Options] = None,
    report: Optional[Callable[[EntryResult], None]] = None,
) -> WriteSummary:
    """Pack ``roots`` into ``destination``.

    Every root must exist before the destination is created. ``report`` is
    called with each node's result as it is produced.

    Raises:
        UsageError: no roots were given.
        PathResolutionError: a root or the destination cannot be resolved.
        ArchiveIOError: any open/read/write/close failure (first one wins).
    """
    roots = list(roots)
    if not roots:
        raise UsageError("missing files to create archive")
    for root in roots:
        stat_root(root)
    summary = WriteSummary()
    with ArchiveWriter(destination, options) as w:
        for root in roots:
            for res in w.add_root(root):
                summary.record(res)
                if report is not None:
                    report(res)
    return summary
