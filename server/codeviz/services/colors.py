from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional

from codeviz.config import (
    COLLAPSED_COLORS,
    DIRTY_FOLDER_COLOR,
    NEUTRAL_COLOR,
    SCALE_HIGH_COLOR,
    SCALE_LOW_COLOR,
    STATUS_COLORS,
    UNKNOWN_STATUS_COLOR,
)
from codeviz.models import DisplayNode, GitStatus


def _hex_to_rgb(color: str) -> tuple[int, int, int]:
    color = color.lstrip("#")
    return int(color[0:2], 16), int(color[2:4], 16), int(color[4:6], 16)


def interpolate_rgb(low: str, high: str, t: float) -> str:
    """Linear blend of two ``#rrggbb`` colours, ``t`` clamped to [0, 1]."""
    t = min(1.0, max(0.0, t))
    a = _hex_to_rgb(low)
    b = _hex_to_rgb(high)
    r, g, bl = (round(a[i] + (b[i] - a[i]) * t) for i in range(3))
    return f"#{r:02x}{g:02x}{bl:02x}"


def scale_color(value: float, lo: float, hi: float) -> str:
    if hi <= lo:
        return SCALE_HIGH_COLOR if value >= hi else SCALE_LOW_COLOR
    return interpolate_rgb(SCALE_LOW_COLOR, SCALE_HIGH_COLOR, (value - lo) / (hi - lo))


def collapsed_fill(status: Optional[GitStatus]) -> str:
    # created beats modified; everything else reads as neutral.
    if status == GitStatus.CREATED:
        return COLLAPSED_COLORS["created"]
    if status == GitStatus.MODIFIED:
        return COLLAPSED_COLORS["modified"]
    return COLLAPSED_COLORS["neutral"]


@dataclass
class FillContext:
    color_mode: str = "git"
    now: Optional[datetime] = None
    age_threshold_days: int = 30
    activity_map: Optional[Dict[str, int]] = None
    max_activity: int = field(init=False, default=1)

    def __post_init__(self) -> None:
        counts = list((self.activity_map or {}).values())
        self.max_activity = max(counts) if counts else 1


def node_fill(node: DisplayNode, ctx: FillContext) -> str:
    if node.is_collapsed:
        return collapsed_fill(node.collapsed_status)

    if node.is_folder and ctx.color_mode == "git" and node.aggregate_status != GitStatus.CLEAN:
        return DIRTY_FOLDER_COLOR

    if ctx.color_mode == "age":
        if node.last_modified is None:
            return NEUTRAL_COLOR
        now = ctx.now or datetime.now(timezone.utc)
        modified = node.last_modified
        if modified.tzinfo is None:
            modified = modified.replace(tzinfo=timezone.utc)
        oldest = now - timedelta(days=ctx.age_threshold_days)
        return scale_color(modified.timestamp(), oldest.timestamp(), now.timestamp())

    if ctx.color_mode == "activity":
        if not node.is_folder and ctx.activity_map:
            count = ctx.activity_map.get(node.path, 0)
            if count > 0:
                return scale_color(count, 0, ctx.max_activity)
        return NEUTRAL_COLOR

    return STATUS_COLORS.get(node.git_status.value, UNKNOWN_STATUS_COLOR)
