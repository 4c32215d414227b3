from __future__ import annotations

import os
import stat
from dataclasses import dataclass
from typing import Iterator, List, Optional

from .pathutil import child_name, root_base


@dataclass
class Node:
    """One visited filesystem object.

    ``st`` is None and ``error`` set when the object could not be stat'ed, or
    when a directory that was already yielded could not be listed.
    """

    path: str
    name: str
    st: Optional[os.stat_result] = None
    error: Optional[OSError] = None


def walk_root(abs_root: str, root_st: os.stat_result) -> Iterator[Node]:
    """Depth-first pre-order walk of one root.

    Directories are yielded before their children, siblings in name order.
    Symlinks below the root are reported, never followed. Entry names start
    with the root's own base name.
    """
    base = root_base(abs_root)
    stack: List[Node] = [Node(abs_root, base, root_st)]
    while stack:
        node = stack.pop()
        if node.name or node.error is not None:
            yield node
        if node.st is None or not stat.S_ISDIR(node.st.st_mode):
            continue
        try:
            with os.scandir(node.path) as it:
                children = sorted(it, key=lambda d: d.name)
        except OSError as exc:
            yield Node(node.path, node.name, None, exc)
            continue
        pending: List[Node] = []
        for child in children:
            cname = child_name(node.name, child.name)
            try:
                pending.append(Node(child.path, cname, child.stat(follow_symlinks=False)))
            except OSError as exc:
                pending.append(Node(child.path, cname, None, exc))
        stack.extend(reversed(pending))
