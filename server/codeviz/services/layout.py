from dataclasses import dataclass
from typing import Dict, List, Optional

from codeviz.config import ROOT_KEY
from codeviz.models import DisplayNode


@dataclass(frozen=True)
class Rect:
    x0: float
    y0: float
    x1: float
    y1: float

    @property
    def width(self) -> float:
        return max(0.0, self.x1 - self.x0)

    @property
    def height(self) -> float:
        return max(0.0, self.y1 - self.y0)


@dataclass(frozen=True)
class LayoutNode:
    key: str
    depth: int
    rect: Rect
    weight: float
    node: DisplayNode
    parent_key: Optional[str] = None


def node_key(node: DisplayNode) -> str:
    """Render identity: the path, with the root's empty path swapped for a sentinel."""
    return node.path if node.path else ROOT_KEY


def _weights(node: DisplayNode, out: Dict[int, float]) -> float:
    # Only leaves (files, collapsed or empty folders) weigh anything; an
    # expanded folder is exactly the sum of what is inside it.
    if node.children:
        total = sum(_weights(child, out) for child in node.children)
    else:
        total = float(node.value)
    out[id(node)] = total
    return total


def _height(node: DisplayNode) -> int:
    if not node.children:
        return 0
    return 1 + max(_height(child) for child in node.children)


def partition(root: DisplayNode, width: float, height: float) -> List[LayoutNode]:
    """
    Icicle layout of a display tree inside ``width`` x ``height``.

    Every depth gets a horizontal band of equal height; inside its band each
    node spans a share of its parent's width proportional to its weight,
    children kept in the order the transform sorted them. Returns the nodes
    in pre-order.
    """
    weights: Dict[int, float] = {}
    _weights(root, weights)
    band = height / (_height(root) + 1)

    laid_out: List[LayoutNode] = []

    def place(node: DisplayNode, depth: int, x0: float, x1: float, parent_key: Optional[str]) -> None:
        key = node_key(node)
        weight = weights[id(node)]
        laid_out.append(
            LayoutNode(
                key=key,
                depth=depth,
                rect=Rect(x0, depth * band, x1, (depth + 1) * band),
                weight=weight,
                node=node,
                parent_key=parent_key,
            )
        )

        scale = (x1 - x0) / weight if weight else 0.0
        cursor = x0
        for child in node.children:
            child_x1 = cursor + weights[id(child)] * scale
            place(child, depth + 1, cursor, child_x1, key)
            cursor = child_x1

    place(root, 0, 0.0, float(width), None)
    return laid_out
