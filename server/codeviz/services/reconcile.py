"""
Keyed enter/update/exit reconciliation between two renders.

Elements are identified by node path only, so a folder that moves because its
siblings were re-sorted is an *update* that slides to its new rectangle, never
an exit followed by an enter.

Every op starts from what is on screen *now*: if an element is mid-transition
when a new render arrives, the running transition is dropped and the new one
starts from the interpolated current state. Nothing is queued.
"""

import time
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional, Sequence

from codeviz.config import (
    ENTER_DURATION_MS,
    EXIT_DURATION_MS,
    TRANSITION_EASE,
    UPDATE_DURATION_MS,
)
from codeviz.models import RenderItem, RenderOp, RenderPlan
from codeviz.services.colors import FillContext, interpolate_rgb, node_fill
from codeviz.services.layout import LayoutNode

_GEOMETRY = ("x0", "y0", "x1", "y1", "opacity")


@dataclass(frozen=True)
class KeyDiff:
    enter: List[str]
    update: List[str]
    exit: List[str]


def diff_keys(old_keys: Iterable[str], new_keys: Iterable[str]) -> KeyDiff:
    """
    Split two key collections into enter / update / exit.

    Enter and update keep the order of ``new_keys``, exit the order of
    ``old_keys``; membership alone decides which list a key lands in.
    """
    old_list = list(dict.fromkeys(old_keys))
    new_list = list(dict.fromkeys(new_keys))
    old_set = set(old_list)
    new_set = set(new_list)
    return KeyDiff(
        enter=[k for k in new_list if k not in old_set],
        update=[k for k in new_list if k in old_set],
        exit=[k for k in old_list if k not in new_set],
    )


def ease_cubic_in_out(t: float) -> float:
    t = min(1.0, max(0.0, t)) * 2
    if t <= 1:
        return t * t * t / 2
    t -= 2
    return (t * t * t + 2) / 2


def interpolate_item(start: RenderItem, end: RenderItem, t: float) -> RenderItem:
    """State of an element ``t`` (already eased) of the way from ``start`` to ``end``."""
    values = {
        attr: getattr(start, attr) + (getattr(end, attr) - getattr(start, attr)) * t
        for attr in _GEOMETRY
    }
    return end.model_copy(update={**values, "fill": interpolate_rgb(start.fill, end.fill, t)})


def to_render_items(layout: Sequence[LayoutNode], ctx: FillContext) -> List[RenderItem]:
    items: List[RenderItem] = []
    for laid in layout:
        node = laid.node
        w, h = laid.rect.width, laid.rect.height
        if node.is_collapsed:
            # Collapsed folders are narrow slivers; their label runs vertically.
            label_visible = h > 20
        else:
            label_visible = w > 35 and h > 15
        items.append(
            RenderItem(
                key=laid.key,
                path=node.path,
                name=node.name,
                type=node.type,
                x0=laid.rect.x0,
                y0=laid.rect.y0,
                x1=laid.rect.x1,
                y1=laid.rect.y1,
                fill=node_fill(node, ctx),
                label_visible=label_visible,
                label_rotated=node.is_collapsed,
            )
        )
    return items


@dataclass
class _Running:
    kind: str
    start: RenderItem
    end: RenderItem
    started_at: float
    duration_ms: int

    def progress(self, now: float) -> float:
        if self.duration_ms <= 0:
            return 1.0
        return min(1.0, max(0.0, (now - self.started_at) * 1000 / self.duration_ms))

    def finished(self, now: float) -> bool:
        return self.progress(now) >= 1.0

    def current(self, now: float) -> RenderItem:
        return interpolate_item(self.start, self.end, ease_cubic_in_out(self.progress(now)))


class Reconciler:
    """
    Remembers what was drawn last and turns each new frame into a RenderPlan.

    ``clock`` returns seconds; it is injectable so tests can step time.
    """

    def __init__(self, clock: Optional[Callable[[], float]] = None) -> None:
        self._clock = clock or time.monotonic
        self._rendered: Dict[str, RenderItem] = {}
        self._running: Dict[str, _Running] = {}

    def _on_screen(self, key: str, now: float) -> Optional[RenderItem]:
        running = self._running.get(key)
        if running is not None and not running.finished(now):
            return running.current(now)
        return self._rendered.get(key)

    def reconcile(self, items: Sequence[RenderItem]) -> RenderPlan:
        now = self._clock()
        new_items = {item.key: item for item in items}
        diff = diff_keys(self._rendered.keys(), new_items.keys())
        plan = RenderPlan()
        running: Dict[str, _Running] = {}

        def start(kind: str, key: str, begin: RenderItem, end: RenderItem, duration: int) -> RenderOp:
            interrupted = key in self._running and not self._running[key].finished(now)
            running[key] = _Running(kind, begin, end, now, duration)
            return RenderOp(
                kind=kind,
                key=key,
                start=begin,
                end=end,
                duration_ms=duration,
                ease=TRANSITION_EASE,
                interrupted=interrupted,
            )

        for key in diff.enter:
            end = new_items[key]
            # Something still fading out under this key fades back in from where it is.
            begin = self._on_screen(key, now) or end.model_copy(update={"opacity": 0.0})
            plan.enter.append(start("enter", key, begin, end, ENTER_DURATION_MS))

        for key in diff.update:
            end = new_items[key]
            begin = self._on_screen(key, now) or self._rendered[key]
            plan.update.append(start("update", key, begin, end, UPDATE_DURATION_MS))

        for key in diff.exit:
            begin = self._on_screen(key, now) or self._rendered[key]
            end = begin.model_copy(update={"opacity": 0.0})
            plan.exit.append(start("exit", key, begin, end, EXIT_DURATION_MS))

        # Fade-outs from earlier renders that are still running stay alive
        # until they finish; then the element is gone for good.
        for key, old in self._running.items():
            if key not in running and key not in new_items and old.kind == "exit" and not old.finished(now):
                running[key] = old

        self._running = running
        self._rendered = dict(new_items)
        return plan
