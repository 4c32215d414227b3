from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional

from .constants import DEFAULT_ARCHIVE_NAME, DEFAULT_COMPRESS_LEVEL
from .encryption import ARGON_MEMORY_COST_KIB, ARGON_PARALLELISM, ARGON_TIME_COST
from .errors import UsageError

MODE_ARCHIVE = "archive"
MODE_EXTRACT = "extract"
MODE_LIST = "list"


@dataclass
class Options:
    """Run configuration, built once from the command line.

    Writer and reader only look at the fields that concern them; the
    positional ``paths`` are interpreted per ``mode``.
    """

    mode: str = MODE_ARCHIVE
    archive: str = DEFAULT_ARCHIVE_NAME
    paths: List[str] = field(default_factory=list)
    keep_going: bool = False
    quiet: bool = False
    password: Optional[str] = None
    compress_level: int = DEFAULT_COMPRESS_LEVEL
    restore_mtime: bool = True
    # Argon2id cost for newly sealed archives
    kdf_time_cost: int = ARGON_TIME_COST
    kdf_memory_cost_kib: int = ARGON_MEMORY_COST_KIB
    kdf_parallelism: int = ARGON_PARALLELISM

    def validate(self) -> "Options":
        if self.mode == MODE_ARCHIVE:
            if not self.paths:
                raise UsageError("missing files to create archive")
        elif self.mode == MODE_EXTRACT:
            if len(self.paths) != 1:
                raise UsageError("invalid args - extract requires exactly one destination directory")
        elif self.mode == MODE_LIST:
            if self.paths:
                raise UsageError("invalid args - list takes no paths")
        else:
            raise UsageError(f"unknown mode {self.mode!r}")
        if not self.archive:
            raise UsageError("archive file name must not be empty")
        if not 1 <= self.compress_level <= 9:
            raise UsageError(f"compression level must be 1-9, got {self.compress_level}")
        return self
