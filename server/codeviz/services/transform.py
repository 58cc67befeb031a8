from typing import AbstractSet, List, Optional

from codeviz.config import COLLAPSED_MIN_VALUE
from codeviz.models import DisplayNode, GitStatus, NodeType, RawNode, ViewConfig
from codeviz.services.sizing import SizingStrategy, get_sizing_strategy
from codeviz.services.tree_status import aggregate_status, node_path

# Porcelain code for "modified in the worktree, nothing staged".
UNSTAGED_ONLY_CODE = " M"


def effective_status(node: RawNode, config: ViewConfig) -> GitStatus:
    """
    The status a node is shown with.

    With ``show_unstaged`` off, changes that only exist in the working tree
    are shown as clean: untracked files, and files modified but not staged
    (`` M``). Anything with staged content (``M `` or ``MM``) stays visible.
    """
    status = node.git_status
    if config.show_unstaged or node.type != NodeType.FILE:
        return status

    if status == GitStatus.UNTRACKED:
        return GitStatus.CLEAN
    if status == GitStatus.MODIFIED and (node.git_code or "") == UNSTAGED_ONLY_CODE:
        return GitStatus.CLEAN
    return status


def _alpha_key(node: DisplayNode) -> tuple[str, str]:
    # Case-insensitive first, then exact name so the order is total.
    return (node.name.casefold(), node.name)


def sort_children(children: List[DisplayNode], config: ViewConfig) -> List[DisplayNode]:
    """
    Order a folder's (already transformed) children.

    Folders go before files when ``folders_first`` is set; inside each group
    ``alpha`` sorts by name and ``size`` by value, largest first. Both sorts
    are stable, so equal keys keep scan order.
    """
    if config.sort_mode == "alpha":
        ordered = sorted(children, key=_alpha_key)
    else:
        ordered = sorted(children, key=lambda child: -child.value)

    if config.folders_first:
        ordered = sorted(ordered, key=lambda child: 0 if child.is_folder else 1)
    return ordered


def _keep_when_hiding_clean(child: DisplayNode) -> bool:
    # A clean folder survives as long as something under it still has weight.
    return child.git_status != GitStatus.CLEAN or (child.is_folder and child.value > 0)


def _transform(
    node: RawNode,
    parent_path: Optional[str],
    config: ViewConfig,
    collapsed_paths: AbstractSet[str],
    size_file: SizingStrategy,
) -> DisplayNode:
    path = node_path(node.name, parent_path)
    status = effective_status(node, config)
    is_folder = node.type == NodeType.FOLDER

    # Folders summarise their raw subtree; files just report what they show.
    aggregate = aggregate_status(node) if is_folder else status

    is_collapsed = is_folder and (
        path in collapsed_paths
        or (config.collapse_clean and aggregate == GitStatus.CLEAN)
    )

    children: List[DisplayNode] = []
    collapsed_status: Optional[GitStatus] = None

    if is_collapsed:
        collapsed_status = aggregate
        value = COLLAPSED_MIN_VALUE
    elif is_folder:
        children = [
            _transform(child, path, config, collapsed_paths, size_file)
            for child in node.children
        ]
        if config.hide_clean:
            children = [child for child in children if _keep_when_hiding_clean(child)]
        children = sort_children(children, config)
        # Expanded folders have no weight of their own.
        value = sum(child.value for child in children)
    else:
        value = size_file(node, status, path, config)

    return DisplayNode(
        name=node.name,
        type=node.type,
        value=value,
        git_status=status,
        git_code=node.git_code,
        last_modified=node.last_modified,
        message=node.message,
        path=path,
        aggregate_status=aggregate,
        collapsed_status=collapsed_status,
        children=children,
    )


def filter_node(
    node: RawNode,
    parent_path: Optional[str] = None,
    config: Optional[ViewConfig] = None,
    collapsed_paths: AbstractSet[str] = frozenset(),
) -> DisplayNode:
    """
    Rewrite a raw scan tree into the tree that gets laid out and drawn.

    ``parent_path=None`` marks ``node`` as the root (path ``""``). The result
    depends only on the arguments: the raw tree is never touched and the
    collapse set is only read, so equal inputs give equal trees.

    Raises ``UnknownSizingModeError`` if ``config.mode`` names no sizing policy.
    """
    config = config or ViewConfig()
    size_file = get_sizing_strategy(config.mode)
    return _transform(node, parent_path, config, collapsed_paths, size_file)
