from __future__ import annotations

import os
import stat
import tarfile
from dataclasses import dataclass
from typing import Optional

from .constants import KIND_DIR, KIND_FILE
from .pathutil import norm_path


@dataclass
class Entry:
    name: str
    kind: str  # KIND_FILE or KIND_DIR
    mode: int = 0
    size: int = 0
    mtime: int = 0


@dataclass
class EntryResult:
    """Outcome for one visited node or one archive member.

    status is one of: "added", "extracted", "excluded", "unsupported", "skipped".
    """

    name: str
    status: str
    kind: Optional[str] = None
    size: int = 0
    error: Optional[BaseException] = None


def entry_kind(st: os.stat_result) -> Optional[str]:
    if stat.S_ISDIR(st.st_mode):
        return KIND_DIR
    if stat.S_ISREG(st.st_mode):
        return KIND_FILE
    return None


def entry_from_stat(name: str, st: os.stat_result) -> Entry:
    kind = entry_kind(st)
    if kind is None:
        raise ValueError(f"unsupported file type for {name}")
    return Entry(
        name=norm_path(name),
        kind=kind,
        mode=stat.S_IMODE(st.st_mode),
        size=st.st_size if kind == KIND_FILE else 0,
        mtime=int(st.st_mtime),
    )


def build_tarinfo(e: Entry) -> tarfile.TarInfo:
    info = tarfile.TarInfo(e.name)
    info.type = tarfile.DIRTYPE if e.kind == KIND_DIR else tarfile.REGTYPE
    info.mode = e.mode
    info.size = e.size if e.kind == KIND_FILE else 0
    info.mtime = e.mtime
    return info


def entry_from_tarinfo(info: tarfile.TarInfo) -> Optional[Entry]:
    """Map a tar member to an Entry; None for kinds satchel does not restore."""
    if info.isdir():
        kind = KIND_DIR
    elif info.isreg():
        kind = KIND_FILE
    else:
        return None
    return Entry(
        name=info.name,
        kind=kind,
        mode=info.mode & 0o7777,
        size=info.size if kind == KIND_FILE else 0,
        mtime=int(info.mtime),
    )
