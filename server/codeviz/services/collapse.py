from typing import Iterator, List, Optional

from codeviz.models import DisplayNode


class CollapseSet:
    """
    Paths of folders the user has collapsed.

    This is plain session state: the transform reads it, user actions change
    it, and whoever changes it is responsible for re-rendering.
    """

    def __init__(self, paths: Optional[List[str]] = None) -> None:
        self._paths: set[str] = set(paths or [])

    def __contains__(self, path: object) -> bool:
        return path in self._paths

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self._paths))

    def __len__(self) -> int:
        return len(self._paths)

    def snapshot(self) -> frozenset[str]:
        """Immutable copy to hand to the transform."""
        return frozenset(self._paths)

    def add(self, path: str) -> None:
        self._paths.add(path)

    def discard(self, path: str) -> None:
        self._paths.discard(path)

    def toggle(self, path: str) -> bool:
        """Flip membership. Returns True if the path is now collapsed."""
        if path in self._paths:
            self._paths.remove(path)
            return False
        self._paths.add(path)
        return True

    def focus(self, node: DisplayNode, parent: Optional[DisplayNode]) -> None:
        """
        Drill into ``node``: collapse every sibling folder and expand ``node``.

        The root has no siblings to hide, so focusing it does nothing.
        """
        if parent is None:
            return

        for sibling in parent.children:
            if sibling.path != node.path and sibling.is_folder:
                self.add(sibling.path)
        self.discard(node.path)

    def clear(self) -> None:
        self._paths.clear()


def find_with_parent(
    root: DisplayNode, path: str
) -> tuple[Optional[DisplayNode], Optional[DisplayNode]]:
    """Locate ``path`` in a display tree. Returns ``(node, parent)``; both None if absent."""
    if root.path == path:
        return root, None

    stack = [root]
    while stack:
        current = stack.pop()
        for child in current.children:
            if child.path == path:
                return child, current
            stack.append(child)
    return None, None
