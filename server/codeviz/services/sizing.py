"""
File sizing policies for the view transform.

Each policy turns a file leaf into the weight the layout uses for it. Folder
weights never come from here: an expanded folder is always the sum of its
children and a collapsed one is pinned to ``COLLAPSED_MIN_VALUE``.

Policies are looked up by ``ViewConfig.mode`` so a new one only needs a
``@sizing_strategy("name")`` function; the tree walk does not change.
"""

from typing import Callable, Dict

from codeviz.config import (
    ACTIVITY_FALLBACK_VALUE,
    CHANGED_FILE_WEIGHT,
    CLEAN_FILE_WEIGHT,
    MIN_DIRTY_FILE_SIZE,
)
from codeviz.models import GitStatus, RawNode, ViewConfig

# (raw file, effective status after unstaged suppression, path, config) -> weight
SizingStrategy = Callable[[RawNode, GitStatus, str, ViewConfig], int]

SIZING_STRATEGIES: Dict[str, SizingStrategy] = {}


class UnknownSizingModeError(ValueError):
    pass


def sizing_strategy(mode: str) -> Callable[[SizingStrategy], SizingStrategy]:
    def register(func: SizingStrategy) -> SizingStrategy:
        SIZING_STRATEGIES[mode] = func
        return func

    return register


def get_sizing_strategy(mode: str) -> SizingStrategy:
    try:
        return SIZING_STRATEGIES[mode]
    except KeyError:
        known = ", ".join(sorted(SIZING_STRATEGIES))
        raise UnknownSizingModeError(f"Unknown sizing mode '{mode}' (expected one of: {known})") from None


@sizing_strategy("size")
def size_by_bytes(node: RawNode, status: GitStatus, path: str, config: ViewConfig) -> int:
    value = node.value or 0
    # Small changed files would vanish next to large ones without a floor.
    if status != GitStatus.CLEAN:
        value = max(value, MIN_DIRTY_FILE_SIZE)
    return value


@sizing_strategy("count")
def size_uniform(node: RawNode, status: GitStatus, path: str, config: ViewConfig) -> int:
    return CHANGED_FILE_WEIGHT if status != GitStatus.CLEAN else CLEAN_FILE_WEIGHT


@sizing_strategy("activity")
def size_by_activity(node: RawNode, status: GitStatus, path: str, config: ViewConfig) -> int:
    count = (config.activity_map or {}).get(path, 0)
    return count if count > 0 else ACTIVITY_FALLBACK_VALUE
