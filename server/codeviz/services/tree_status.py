from typing import Optional

from codeviz.models import GitStatus, RawNode


def node_path(name: str, parent_path: Optional[str]) -> str:
    """
    Build the identity of a node from its parent's identity.

    The root is the node transformed with ``parent_path=None`` and gets the
    empty path, so every other path reads like a repo-relative file path
    (``src/app.py``) and lines up with what git and the activity map report.
    """
    if parent_path is None:
        return ""
    return f"{parent_path}/{name}" if parent_path else name


def aggregate_status(node: RawNode) -> GitStatus:
    """
    Return ``clean`` if the node and everything below it is clean, otherwise
    the first non-clean status found walking the subtree in pre-order.

    This is first-found, not worst-found: a folder whose first changed child
    is ``modified`` reports ``modified`` even if a later child is ``deleted``.
    """
    if node.git_status != GitStatus.CLEAN:
        return node.git_status

    for child in node.children:
        status = aggregate_status(child)
        if status != GitStatus.CLEAN:
            return status

    return GitStatus.CLEAN
