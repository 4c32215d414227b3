from __future__ import annotations

import os

from .errors import PathResolutionError, TraversalGuardError


def norm_path(p: str) -> str:
    """Normalize archive paths to a canonical forward-slash form.

    Rules:
    - Convert the platform separators (os.sep, os.altsep) to slashes; elsewhere
      a backslash is an ordinary file name character
    - Strip leading/trailing slashes
    - Remove empty and '.' segments
    - Reject '..' segments
    """
    for sep in (os.sep, os.altsep):
        if sep and sep != "/":
            p = p.replace(sep, "/")
    p = p.strip("/")
    parts = [q for q in p.split("/") if q not in ("", ".")]
    for q in parts:
        if q == "..":
            raise ValueError("Path may not contain '..'")
    return "/".join(parts)


def abs_path(p: str, what: str) -> str:
    try:
        return os.path.abspath(p)
    except OSError as exc:  # cwd vanished
        raise PathResolutionError(f"failed to find absolute path to {what}", p, exc)


def root_base(abs_root: str) -> str:
    """Top-level entry name for a root: its own base name.

    Empty for a filesystem root, whose children are then named without a prefix.
    """
    return os.path.basename(abs_root)


def child_name(parent: str, name: str) -> str:
    return f"{parent}/{name}" if parent else name


def resolve_under(target: str, name: str) -> str:
    """Join an archive entry name onto ``target`` without escaping it.

    Raises TraversalGuardError for '..' segments and for names whose real path
    (after following symlinks already present in the target) lands outside it.
    Returns ``target`` itself for names that normalize to nothing.
    """
    try:
        rel = norm_path(name)
    except ValueError as exc:
        raise TraversalGuardError("refusing to extract entry outside destination", name, exc)
    if not rel:
        return target
    dst = os.path.join(target, *rel.split("/"))
    real_target = os.path.realpath(target)
    real_dst = os.path.realpath(dst)
    if os.path.commonpath([real_target, real_dst]) != real_target:
        raise TraversalGuardError("refusing to extract entry outside destination", name)
    return dst
