from __future__ import annotations

from typing import Optional


class SatchelError(Exception):
    """Base class for satchel errors.

    Carries the failed operation, the path it was acting on and the underlying
    cause so the CLI can print one self-contained line.
    """

    def __init__(self, op: str, path: Optional[str] = None, cause: Optional[BaseException] = None):
        self.op = op
        self.path = path
        self.cause = cause
        super().__init__(self._render())

    def _render(self) -> str:
        msg = self.op
        if self.path:
            msg += f" {self.path}"
        if self.cause is not None:
            detail = getattr(self.cause, "strerror", None) or str(self.cause) or type(self.cause).__name__
            msg += f": {detail}"
        return msg


class UsageError(SatchelError):
    pass


class PathResolutionError(SatchelError):
    pass


class ArchiveIOError(SatchelError):
    pass


# Stream/header related
class FormatError(SatchelError):
    pass


class PasswordRequired(FormatError):
    pass


class TraversalGuardError(SatchelError):
    pass
