from __future__ import annotations

import tarfile
from typing import Callable, List, Optional, Tuple

from .errors import ArchiveIOError, SatchelError


class HandleStack:
    """Release opened handles in reverse order of acquisition.

    Every registered closer runs, even after one of them fails. Only the first
    failure is kept, and it is only raised when the block itself succeeded:
    an error already in flight always wins over a cleanup error.
    """

    def __init__(self):
        self._closers: List[Tuple[str, Optional[str], Callable[[], None]]] = []

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        err = self.close_all()
        if exc_type is None and err is not None:
            raise err
        return False

    def push(self, what: str, path: Optional[str], closer: Callable[[], None]) -> None:
        self._closers.append((what, path, closer))

    def close_all(self) -> Optional[SatchelError]:
        first: Optional[SatchelError] = None
        while self._closers:
            what, path, closer = self._closers.pop()
            try:
                closer()
            except SatchelError as exc:
                if first is None:
                    first = exc
            except (OSError, ValueError, EOFError, tarfile.TarError) as exc:
                if first is None:
                    first = ArchiveIOError(f"failed to close {what}", path, exc)
        return first
